"""Ranking & selection engine.

Filters the catalog down to providers eligible for one image under the
current preferences, orders them, and applies the mode-specific pick:

    free_only          first zero-cost provider, else nothing
    hybrid             first zero-cost provider, else first paid one
    premium_preferred  first paid provider, else first zero-cost one

Ordering: zero-cost first (except premium_preferred), then quality (ties
within 0.5), then latency (ties within 500 ms), then historical success
rate (0.5 when there is no history).
"""

from __future__ import annotations

import logging
import threading
from functools import cmp_to_key
from typing import Any

from .catalog.models import Capability, ProviderCategory, ProviderDescriptor
from .catalog.registry import ProviderCatalog
from .config import Preferences, ProviderMode
from .exceptions import ConfigError
from .settings_store import SettingsStore
from .usage import UsageTracker

logger = logging.getLogger("vision-orchestrator")

STORE_KEY = "provider_preferences"
QUALITY_TIE = 0.5
LATENCY_TIE_MS = 500

_CAPABILITY_TAGS = {c.value for c in Capability}


class ProviderSelector:
    def __init__(
        self,
        catalog: ProviderCatalog,
        tracker: UsageTracker,
        preferences: Preferences | None = None,
        store: SettingsStore | None = None,
    ) -> None:
        self._catalog = catalog
        self._tracker = tracker
        self._store = store
        self._lock = threading.RLock()
        prefs = preferences or Preferences()
        if store is not None:
            stored = store.get(STORE_KEY)
            if isinstance(stored, dict):
                try:
                    prefs = Preferences(**{**prefs.model_dump(), **stored})
                except ValueError as e:
                    logger.warning("Ignoring unreadable stored preferences: %s", e)
        self._prefs = prefs
        tracker.set_monthly_budget(prefs.max_monthly_budget)

    @property
    def preferences(self) -> Preferences:
        with self._lock:
            return self._prefs.model_copy(deep=True)

    def update_preferences(self, **changes: Any) -> Preferences:
        """Apply a partial update; unknown keys or bad values raise ConfigError."""
        unknown = set(changes) - set(Preferences.model_fields)
        if unknown:
            raise ConfigError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        with self._lock:
            try:
                updated = Preferences(**{**self._prefs.model_dump(), **changes})
            except ValueError as e:
                raise ConfigError(f"Invalid preferences: {e}") from e
            self._prefs = updated
            self._tracker.set_monthly_budget(updated.max_monthly_budget)
            if self._store is not None:
                self._store.set(STORE_KEY, updated.model_dump(mode="json"))
        logger.info("Preferences updated: %s", ", ".join(sorted(changes)))
        return updated.model_copy(deep=True)

    # ── Filtering ───────────────────────────────────────

    def _is_eligible(
        self,
        d: ProviderDescriptor,
        image_size: int,
        image_format: str,
        use_case: str | None,
        remaining_budget: float,
        apply_thresholds: bool = True,
    ) -> bool:
        p = self._prefs
        if not d.available or not d.accepts(image_size, image_format):
            return False
        if d.id in p.blacklisted_providers:
            return False
        if p.whitelisted_providers and d.id not in p.whitelisted_providers:
            return False
        if p.preferred_regions and d.region not in p.preferred_regions:
            return False
        if apply_thresholds and d.quality_score < p.quality_threshold:
            return False
        if apply_thresholds and d.avg_response_time_ms > p.speed_threshold_ms:
            return False
        if not p.enable_specialized and d.category == ProviderCategory.SPECIALIZED:
            return False
        if not d.is_free:
            if p.mode == ProviderMode.FREE_ONLY:
                return False
            if d.cost_per_request > remaining_budget:
                return False
        if use_case in _CAPABILITY_TAGS and not d.supports(use_case):
            return False
        return True

    def eligible_providers(
        self,
        image_size: int,
        image_format: str,
        use_case: str | None = None,
        apply_thresholds: bool = True,
    ) -> list[ProviderDescriptor]:
        """Catalog entries the preferences allow for this image, in catalog order.

        With ``apply_thresholds`` off the quality and speed floors are skipped;
        the free chain uses that so any allowed free provider can answer.
        """
        remaining = self._tracker.remaining_budget
        with self._lock:
            return [
                d
                for d in self._catalog.descriptors()
                if self._is_eligible(
                    d, image_size, image_format, use_case, remaining, apply_thresholds
                )
            ]

    # ── Ordering ────────────────────────────────────────

    def _compare(self, a: ProviderDescriptor, b: ProviderDescriptor) -> int:
        if self._prefs.mode != ProviderMode.PREMIUM_PREFERRED:
            if a.is_free and not b.is_free:
                return -1
            if b.is_free and not a.is_free:
                return 1
        quality_diff = b.quality_score - a.quality_score
        if abs(quality_diff) > QUALITY_TIE:
            return 1 if quality_diff > 0 else -1
        latency_diff = a.avg_response_time_ms - b.avg_response_time_ms
        if abs(latency_diff) > LATENCY_TIE_MS:
            return 1 if latency_diff > 0 else -1
        rate_a = self._tracker.success_rate(a.id)
        rate_b = self._tracker.success_rate(b.id)
        if rate_a != rate_b:
            return 1 if rate_b > rate_a else -1
        return 0

    def rank(self, providers: list[ProviderDescriptor]) -> list[ProviderDescriptor]:
        with self._lock:
            return sorted(providers, key=cmp_to_key(self._compare))

    # ── Selection ───────────────────────────────────────

    def select_provider(
        self, image_size: int, image_format: str, use_case: str | None = None
    ) -> ProviderDescriptor | None:
        ranked = self.rank(self.eligible_providers(image_size, image_format, use_case))
        free = [d for d in ranked if d.is_free]
        paid = [d for d in ranked if not d.is_free]
        mode = self._prefs.mode
        if mode == ProviderMode.FREE_ONLY:
            choice = free[0] if free else None
        elif mode == ProviderMode.PREMIUM_PREFERRED:
            choice = paid[0] if paid else (free[0] if free else None)
        else:
            choice = free[0] if free else (paid[0] if paid else None)
        logger.debug(
            "Selected %s for %s image (%d bytes, %d eligible)",
            choice.id if choice else "nothing",
            image_format,
            image_size,
            len(ranked),
        )
        return choice

    def best_for_service(
        self,
        service: str,
        image_size: int,
        image_format: str,
        use_case: str | None = None,
    ) -> ProviderDescriptor | None:
        """Best-ranked eligible paid provider served by ``service``'s credentials."""
        candidates = [
            d
            for d in self.eligible_providers(image_size, image_format, use_case)
            if d.service == service and not d.is_free
        ]
        ranked = self.rank(candidates)
        return ranked[0] if ranked else None
