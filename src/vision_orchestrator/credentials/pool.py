"""Credential pool: per-service key rotation with quota and rate-limit tracking.

The pool owns every credential. Callers get copies; state only changes
through the mutation methods below, each of which persists the whole pool
to the settings store before returning. All mutations (and the daily reset
fired by the scheduler) share one re-entrant lock.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any

from ..clock import Clock, SystemClock
from ..settings_store import SettingsStore
from .models import (
    Credential,
    CredentialStats,
    CredentialStatus,
    CredentialTier,
    default_daily_limit,
    mask_secret,
)

logger = logging.getLogger("vision-orchestrator")

STORE_KEY = "credential_pool"
DEFAULT_RATE_LIMIT_SECONDS = 3600


class CredentialPool:
    def __init__(self, store: SettingsStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._credentials: dict[str, Credential] = {}
        self._cursors: dict[str, int] = {}
        self._load()

    # ── Persistence ─────────────────────────────────────

    def _load(self) -> None:
        data = self._store.get(STORE_KEY) or {}
        for raw in data.get("credentials", []):
            try:
                cred = Credential(**raw)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable stored credential: %s", e)
                continue
            self._credentials[cred.id] = cred
        cursors = data.get("cursors", {})
        if isinstance(cursors, dict):
            self._cursors = {str(k): int(v) for k, v in cursors.items()}
        if self._credentials:
            logger.info("Loaded %d credentials", len(self._credentials))

    def _save(self) -> None:
        data: dict[str, Any] = {
            "credentials": [
                c.model_dump(mode="json") for c in self._credentials.values()
            ],
            "cursors": dict(self._cursors),
        }
        self._store.set(STORE_KEY, data)

    # ── Mutations ───────────────────────────────────────

    def add(
        self,
        service: str,
        secret: str,
        *,
        name: str = "",
        tier: CredentialTier | str = CredentialTier.FREE,
        daily_limit: int | None = None,
        expires_at: datetime | None = None,
        region: str | None = None,
    ) -> str:
        """Register a credential. Returns its id."""
        if not service or not secret:
            raise ValueError("service and secret are required")
        tier = CredentialTier(tier)
        cred_id = f"key_{uuid.uuid4().hex[:12]}"
        with self._lock:
            cred = Credential(
                id=cred_id,
                service=service,
                secret=secret,
                name=name or f"{service}-{cred_id[-4:]}",
                tier=tier,
                daily_limit=(
                    daily_limit
                    if daily_limit is not None
                    else default_daily_limit(service, tier)
                ),
                created_at=self._clock.now(),
                expires_at=expires_at,
                region=region,
            )
            self._credentials[cred_id] = cred
            self._save()
        logger.info("Added credential '%s' for %s", cred.name, service)
        return cred_id

    def remove(self, cred_id: str) -> bool:
        with self._lock:
            cred = self._credentials.pop(cred_id, None)
            if cred is None:
                return False
            self._save()
        logger.info("Removed credential '%s' (%s)", cred.name, cred.service)
        return True

    def set_active(self, cred_id: str, active: bool) -> bool:
        with self._lock:
            cred = self._credentials.get(cred_id)
            if cred is None:
                return False
            cred.is_active = active
            self._save()
        return True

    def next(self, service: str) -> Credential | None:
        """Next usable credential for ``service`` in round-robin order.

        Returns None when the service has nothing usable; that is normal
        control flow, not an error.
        """
        with self._lock:
            now = self._clock.now()
            usable = [
                c
                for c in self._credentials.values()
                if c.service == service and c.is_usable(now)
            ]
            if not usable:
                logger.debug("No usable credential for %s", service)
                return None
            idx = self._cursors.get(service, 0) % len(usable)
            self._cursors[service] = (idx + 1) % len(usable)
            self._save()
            return usable[idx].model_copy(deep=True)

    def mark_used(self, cred_id: str, success: bool) -> bool:
        with self._lock:
            cred = self._credentials.get(cred_id)
            if cred is None:
                logger.debug("mark_used on unknown credential %s", cred_id)
                return False
            cred.usage_count += 1
            cred.last_used = self._clock.now()
            cred.stats.total_calls += 1
            if success:
                cred.stats.successful_calls += 1
            else:
                cred.stats.failed_calls += 1
            self._save()
        return True

    def mark_rate_limited(
        self, cred_id: str, retry_after_seconds: float = DEFAULT_RATE_LIMIT_SECONDS
    ) -> bool:
        with self._lock:
            cred = self._credentials.get(cred_id)
            if cred is None:
                return False
            cred.rate_limited_until = self._clock.now() + timedelta(
                seconds=retry_after_seconds
            )
            cred.stats.rate_limit_hits += 1
            self._save()
        logger.warning(
            "Credential '%s' (%s) rate limited for %ds",
            cred.name,
            cred.service,
            int(retry_after_seconds),
        )
        return True

    def reset_daily(self) -> None:
        """Zero every usage counter. Fired by the scheduler at local midnight."""
        with self._lock:
            now = self._clock.now()
            for cred in self._credentials.values():
                cred.usage_count = 0
                cred.stats.last_reset = now
            self._save()
        logger.info("Daily credential usage reset (%d credentials)", len(self))

    # ── Views ───────────────────────────────────────────

    def get(self, cred_id: str) -> Credential | None:
        with self._lock:
            cred = self._credentials.get(cred_id)
            return cred.model_copy(deep=True) if cred else None

    def services(self) -> list[str]:
        with self._lock:
            return sorted({c.service for c in self._credentials.values()})

    def usage(self, cred_id: str) -> CredentialStats | None:
        with self._lock:
            cred = self._credentials.get(cred_id)
            return cred.stats.model_copy() if cred else None

    def status(self, service: str | None = None) -> list[CredentialStatus]:
        with self._lock:
            now = self._clock.now()
            return [
                CredentialStatus(
                    id=c.id,
                    service=c.service,
                    name=c.name,
                    secret_preview=mask_secret(c.secret),
                    tier=c.tier,
                    is_active=c.is_active,
                    is_rate_limited=c.is_rate_limited(now),
                    is_expired=c.is_expired(now),
                    is_daily_limit_exceeded=c.is_quota_exceeded(),
                    usage_count=c.usage_count,
                    daily_limit=c.daily_limit,
                    last_used=c.last_used,
                    rate_limited_until=c.rate_limited_until,
                )
                for c in self._credentials.values()
                if service is None or c.service == service
            ]

    def __len__(self) -> int:
        return len(self._credentials)
