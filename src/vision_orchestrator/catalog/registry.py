"""Provider catalog: descriptors paired with the adapter that serves them.

Adding a provider means registering a (descriptor, adapter) pair; nothing
else in the routing path switches on provider names. The catalog owns the
``available`` flag (written by the availability probe) and the per-provider
model selection (persisted in the settings store).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from ..exceptions import ConfigError
from ..reasoning.providers.base import VisionAdapter
from ..settings_store import SettingsStore
from .models import Capability, ProviderDescriptor

logger = logging.getLogger("vision-orchestrator")

MODELS_STORE_KEY = "selected_models"

RECOMMENDATION_GOALS = (
    "cost_optimization",
    "quality_focused",
    "speed_focused",
    "document_analysis",
    "ui_analysis",
)


@dataclass
class CatalogEntry:
    descriptor: ProviderDescriptor
    adapter: VisionAdapter


class ProviderCatalog:
    def __init__(self, store: SettingsStore | None = None) -> None:
        self._store = store
        self._entries: dict[str, CatalogEntry] = {}
        self._selected_models: dict[str, str] = {}
        self._lock = threading.RLock()
        if store is not None:
            stored = store.get(MODELS_STORE_KEY) or {}
            if isinstance(stored, dict):
                self._selected_models = {str(k): str(v) for k, v in stored.items()}

    # ── Registration ────────────────────────────────────

    def register(self, descriptor: ProviderDescriptor, adapter: VisionAdapter) -> None:
        with self._lock:
            if descriptor.id in self._entries:
                raise ValueError(f"Provider '{descriptor.id}' is already registered")
            self._entries[descriptor.id] = CatalogEntry(
                descriptor.model_copy(deep=True), adapter
            )
        logger.debug("Registered provider %s (%s)", descriptor.id, adapter.family)

    # ── Lookups (copies only) ───────────────────────────

    def get(self, provider_id: str) -> ProviderDescriptor | None:
        with self._lock:
            entry = self._entries.get(provider_id)
            return entry.descriptor.model_copy(deep=True) if entry else None

    def adapter_for(self, provider_id: str) -> VisionAdapter:
        with self._lock:
            entry = self._entries.get(provider_id)
        if entry is None:
            raise ConfigError(f"Unknown provider '{provider_id}'")
        return entry.adapter

    def descriptors(self) -> list[ProviderDescriptor]:
        with self._lock:
            return [e.descriptor.model_copy(deep=True) for e in self._entries.values()]

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def for_service(self, service: str) -> list[ProviderDescriptor]:
        return [d for d in self.descriptors() if d.service == service]

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ── Mutations ───────────────────────────────────────

    def set_available(self, provider_id: str, available: bool) -> None:
        with self._lock:
            entry = self._entries.get(provider_id)
            if entry is None:
                raise ConfigError(f"Unknown provider '{provider_id}'")
            if entry.descriptor.available != available:
                logger.info(
                    "Provider %s is now %s",
                    provider_id,
                    "available" if available else "unavailable",
                )
            entry.descriptor.available = available

    # ── Model selection ─────────────────────────────────

    def selected_model(self, provider_id: str) -> str:
        with self._lock:
            entry = self._entries.get(provider_id)
            default = entry.descriptor.default_model if entry else ""
            return self._selected_models.get(provider_id, default)

    def set_selected_model(self, provider_id: str, model: str) -> None:
        """Pick the model a provider should use; persisted across restarts."""
        with self._lock:
            entry = self._entries.get(provider_id)
            if entry is None:
                raise ConfigError(f"Unknown provider '{provider_id}'")
            d = entry.descriptor
            if not model:
                raise ConfigError("Model name must not be empty")
            if (
                d.supported_models
                and model not in d.supported_models
                and not d.custom_model_support
            ):
                raise ConfigError(
                    f"Provider '{provider_id}' does not support model '{model}'"
                )
            self._selected_models[provider_id] = model
            if self._store is not None:
                self._store.set(MODELS_STORE_KEY, dict(self._selected_models))
        logger.info("Provider %s now uses model %s", provider_id, model)

    # ── Views ───────────────────────────────────────────

    def providers_by_category(self) -> dict[str, list[ProviderDescriptor]]:
        categories: dict[str, list[ProviderDescriptor]] = {}
        for d in self.descriptors():
            categories.setdefault(d.category.value, []).append(d)
        return categories

    def recommendations(self, goal: str = "") -> list[ProviderDescriptor]:
        """Providers suited to a goal, best first."""
        providers = self.descriptors()

        def by_quality(d: ProviderDescriptor) -> float:
            return -d.quality_score

        if goal == "cost_optimization":
            return sorted((d for d in providers if d.is_free), key=by_quality)
        if goal == "quality_focused":
            return sorted(providers, key=by_quality)[:5]
        if goal == "speed_focused":
            return sorted(providers, key=lambda d: d.avg_response_time_ms)[:5]
        if goal == "document_analysis":
            return sorted(
                (d for d in providers if d.supports(Capability.DOCUMENT)), key=by_quality
            )
        if goal == "ui_analysis":
            return sorted(
                (d for d in providers if d.supports(Capability.UI)), key=by_quality
            )
        return sorted(providers, key=by_quality)

    async def close(self) -> None:
        """Close every distinct adapter once."""
        seen: set[int] = set()
        for entry in list(self._entries.values()):
            if id(entry.adapter) in seen:
                continue
            seen.add(id(entry.adapter))
            await entry.adapter.close()
