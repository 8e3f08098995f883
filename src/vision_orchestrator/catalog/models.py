"""Pydantic model describing one vision provider in the catalog."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

MB = 1024 * 1024

COMMON_FORMATS = ["jpg", "jpeg", "png", "gif", "bmp", "webp"]


class ProviderCategory(str, Enum):
    COMPLETELY_FREE = "completely_free"
    FREE_TRIAL = "free_trial"
    FREEMIUM = "freemium"
    PREMIUM_OPTIONAL = "premium_optional"
    SPECIALIZED = "specialized"


class ProviderTier(str, Enum):
    LOCAL = "local"
    FREE_CLOUD = "free_cloud"
    FREE_CREDITS = "free_credits"
    FREEMIUM = "freemium"
    PREMIUM = "premium"


class Capability(str, Enum):
    OCR = "ocr"
    OBJECT = "object"
    SCENE = "scene"
    UI = "ui"
    DOCUMENT = "document"


ALL_CAPABILITIES = {c for c in Capability}


class ProviderDescriptor(BaseModel):
    id: str
    name: str
    category: ProviderCategory
    tier: ProviderTier
    # Credential pool key; None for keyless providers
    service: str | None = None
    endpoint: str = ""
    region: str = "global"  # "global" | "us" | "eu" | "asia" | "china"
    is_local: bool = False
    available: bool = True
    daily_limit: int | None = None
    monthly_limit: int | None = None
    free_credits: float = 0.0  # USD
    max_image_size: int = 20 * MB  # bytes
    supported_formats: list[str] = Field(default_factory=lambda: list(COMMON_FORMATS))
    max_concurrent_requests: int = 1
    avg_response_time_ms: int = 3000
    quality_score: float = 5.0  # 1-10
    capabilities: set[Capability] = Field(default_factory=lambda: set(ALL_CAPABILITIES))
    cost_per_request: float = 0.0  # USD; 0 = free
    requires_api_key: bool = True
    requires_credit_card: bool = False
    setup_complexity: str = "easy"  # "none" | "easy" | "medium" | "hard"
    supported_models: list[str] = Field(default_factory=list)
    default_model: str = ""
    custom_model_support: bool = False
    # GET target whose 200 answer means the provider is up (local daemons)
    probe_url: str = ""
    description: str = ""
    strengths: list[str] = Field(default_factory=list)
    limitations: list[str] = Field(default_factory=list)
    best_use_cases: list[str] = Field(default_factory=list)

    @property
    def is_free(self) -> bool:
        return self.cost_per_request <= 0

    def accepts(self, image_size: int, image_format: str) -> bool:
        return (
            image_size <= self.max_image_size
            and image_format.lower() in self.supported_formats
        )

    def supports(self, capability: Capability | str) -> bool:
        try:
            return Capability(capability) in self.capabilities
        except ValueError:
            return False
