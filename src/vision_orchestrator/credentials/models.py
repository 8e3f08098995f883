"""Pydantic models for service credentials."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class CredentialTier(str, Enum):
    FREE = "free"
    TRIAL = "trial"
    PAID = "paid"


# Requests per day by service and account tier. None = unlimited.
DEFAULT_DAILY_LIMITS: dict[str, dict[str, int | None]] = {
    "openai": {"free": 100, "trial": 1000, "paid": 10000},
    "anthropic": {"free": 100, "trial": 1000, "paid": 10000},
    "google": {"free": 1000, "trial": 5000, "paid": 50000},
    "azure": {"free": 5000, "trial": 20000, "paid": 100000},
    "huggingface": {"free": 1000, "trial": 10000, "paid": 100000},
    "ollama": {"free": None, "trial": None, "paid": None},
}
FALLBACK_DAILY_LIMIT = 100


def default_daily_limit(service: str, tier: CredentialTier | str) -> int | None:
    tier_key = CredentialTier(tier).value
    limits = DEFAULT_DAILY_LIMITS.get(service)
    if limits is None:
        return FALLBACK_DAILY_LIMIT
    return limits.get(tier_key, FALLBACK_DAILY_LIMIT)


class CredentialStats(BaseModel):
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rate_limit_hits: int = 0
    last_reset: datetime | None = None


class Credential(BaseModel):
    id: str
    service: str
    secret: str
    name: str
    is_active: bool = True
    tier: CredentialTier = CredentialTier.FREE
    daily_limit: int | None = FALLBACK_DAILY_LIMIT  # None = unlimited
    usage_count: int = 0
    last_used: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    expires_at: datetime | None = None
    rate_limited_until: datetime | None = None
    region: str | None = None
    stats: CredentialStats = Field(default_factory=CredentialStats)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_rate_limited(self, now: datetime) -> bool:
        return self.rate_limited_until is not None and self.rate_limited_until > now

    def is_quota_exceeded(self) -> bool:
        return self.daily_limit is not None and self.usage_count >= self.daily_limit

    def is_usable(self, now: datetime) -> bool:
        return (
            self.is_active
            and not self.is_expired(now)
            and not self.is_rate_limited(now)
            and not self.is_quota_exceeded()
        )


class CredentialStatus(BaseModel):
    """Read-only view of one credential, safe to show in a UI."""

    id: str
    service: str
    name: str
    secret_preview: str
    tier: CredentialTier
    is_active: bool
    is_rate_limited: bool
    is_expired: bool
    is_daily_limit_exceeded: bool
    usage_count: int
    daily_limit: int | None
    last_used: datetime | None = None
    rate_limited_until: datetime | None = None


def mask_secret(secret: str) -> str:
    if len(secret) <= 10:
        return "*" * len(secret)
    return f"{secret[:6]}...{secret[-4:]}"
