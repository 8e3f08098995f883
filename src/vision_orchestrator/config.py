"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from .exceptions import ConfigError

DEFAULT_CONFIG_PATH = "~/.vision-orchestrator/config.yaml"


class ProviderMode(str, Enum):
    FREE_ONLY = "free_only"
    HYBRID = "hybrid"
    PREMIUM_PREFERRED = "premium_preferred"


class Preferences(BaseModel):
    """Selection preferences read on every routing decision."""

    mode: ProviderMode = ProviderMode.FREE_ONLY
    # USD; 0 = paid providers never eligible
    max_monthly_budget: float = Field(default=0.0, ge=0)
    quality_threshold: float = Field(default=7.0, ge=0, le=10)
    speed_threshold_ms: int = Field(default=5000, gt=0)
    preferred_regions: list[str] = Field(default_factory=lambda: ["global"])
    blacklisted_providers: list[str] = Field(default_factory=list)
    whitelisted_providers: list[str] = Field(default_factory=list)
    enable_specialized: bool = True


class AnalysisOptions(BaseModel):
    max_retries: int = 3
    retry_delay_seconds: float = 1.0  # Base for retry_delay * 2**attempt
    call_timeout_seconds: float = 30.0  # Max time for a single provider call
    free_frame_delay_seconds: float = 0.1
    paid_frame_delay_seconds: float = 0.5
    fallback_to_free: bool = True
    # Order in which paid services are tried after the free chain
    paid_services: list[str] = Field(
        default_factory=lambda: ["openai", "google", "anthropic", "azure"]
    )
    custom_prompt: str = ""
    use_case: str | None = None  # "ocr" | "document" | "ui" | "scene" | "object"


class ProbeConfig(BaseModel):
    timeout_seconds: float = 5.0
    min_interval_seconds: float = 60.0  # Skip opportunistic refreshes closer than this


class ProviderOverride(BaseModel):
    endpoint: str = ""
    model: str = ""


class APIConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8095
    auth_token: str = ""  # Bearer token for API access (empty = no auth)


class OrchestratorConfig(BaseModel):
    analysis: AnalysisOptions = Field(default_factory=AnalysisOptions)
    preferences: Preferences = Field(default_factory=Preferences)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    providers: dict[str, ProviderOverride] = Field(default_factory=dict)
    settings_file: str = "~/.vision-orchestrator/settings.yaml"


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


def _config_from_env() -> OrchestratorConfig:
    """Build config from environment variables (for headless deployment).

    Falls back to defaults when env vars are not set.
    """
    try:
        return OrchestratorConfig(
            preferences=Preferences(
                mode=ProviderMode(
                    os.environ.get("VISION_ORCHESTRATOR_MODE", "free_only")
                ),
                max_monthly_budget=float(
                    os.environ.get("VISION_ORCHESTRATOR_MONTHLY_BUDGET", "0")
                ),
            ),
            api=APIConfig(
                host=os.environ.get("VISION_ORCHESTRATOR_HOST", "127.0.0.1"),
                port=int(os.environ.get("VISION_ORCHESTRATOR_PORT", "8095")),
                auth_token=os.environ.get("VISION_ORCHESTRATOR_AUTH_TOKEN", ""),
            ),
            settings_file=os.environ.get(
                "VISION_ORCHESTRATOR_SETTINGS", "~/.vision-orchestrator/settings.yaml"
            ),
        )
    except ValueError as e:
        raise ConfigError(f"Invalid environment configuration: {e}") from e


def load_config(path: str | Path | None = None) -> OrchestratorConfig:
    """Load config from YAML file, env vars, or defaults.

    Priority: config.yaml (with ${ENV} interpolation) > env vars > defaults.
    """
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()

    if not path.exists():
        if any(k.startswith("VISION_ORCHESTRATOR_") for k in os.environ):
            return _config_from_env()
        return OrchestratorConfig()

    raw_text = path.read_text()
    interpolated = _interpolate_env_vars(raw_text)
    try:
        data = yaml.safe_load(interpolated)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if data is None:
        return OrchestratorConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    try:
        return OrchestratorConfig(**data)
    except ValueError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def save_config(config: OrchestratorConfig, path: str | Path | None = None) -> Path:
    """Save config to YAML file."""
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json")
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path
