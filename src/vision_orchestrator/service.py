"""VisionService: the surface the application shell talks to.

Wires the credential pool, catalog, probe, tracker, selector and
orchestrator together, and owns the daily reset schedule.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from .catalog.defaults import build_default_catalog
from .catalog.models import ProviderDescriptor
from .catalog.probe import AvailabilityProbe
from .catalog.registry import ProviderCatalog
from .clock import Clock, Scheduler, SystemClock, next_midnight
from .config import AnalysisOptions, OrchestratorConfig, Preferences
from .credentials.models import CredentialStats, CredentialStatus, CredentialTier
from .credentials.pool import CredentialPool
from .frames import FrameImage, FrameRef
from .models import FrameAnalysisResult
from .ranking import ProviderSelector
from .reasoning.free_chain import FreeProviderChain
from .reasoning.invoker import ProviderInvoker
from .reasoning.orchestrator import VisionOrchestrator
from .reporting import ErrorReporter
from .settings_store import SettingsStore, YAMLSettingsStore
from .usage import BudgetState, UsageRecord, UsageTracker

logger = logging.getLogger("vision-orchestrator")

DAILY_RESET_TASK = "daily-usage-reset"


class VisionService:
    def __init__(
        self,
        *,
        pool: CredentialPool,
        catalog: ProviderCatalog,
        tracker: UsageTracker,
        selector: ProviderSelector,
        orchestrator: VisionOrchestrator,
        probe: AvailabilityProbe,
        reporter: ErrorReporter,
        clock: Clock | None = None,
        options: AnalysisOptions | None = None,
    ) -> None:
        self.pool = pool
        self.catalog = catalog
        self.tracker = tracker
        self.selector = selector
        self.orchestrator = orchestrator
        self.probe = probe
        self.reporter = reporter
        self.clock = clock or SystemClock()
        self.options = options or AnalysisOptions()
        self.scheduler = Scheduler(self.clock)
        self._scheduler_task: asyncio.Task | None = None

    @classmethod
    def from_config(
        cls,
        config: OrchestratorConfig,
        *,
        store: SettingsStore | None = None,
        clock: Clock | None = None,
        reporter: ErrorReporter | None = None,
        catalog: ProviderCatalog | None = None,
    ) -> VisionService:
        clock = clock or SystemClock()
        store = store or YAMLSettingsStore(Path(config.settings_file).expanduser())
        reporter = reporter or ErrorReporter(clock)
        catalog = catalog or build_default_catalog(config, clock, store)

        pool = CredentialPool(store, clock)
        tracker = UsageTracker(catalog.ids(), store, clock)
        selector = ProviderSelector(catalog, tracker, config.preferences, store)
        probe = AvailabilityProbe(
            catalog,
            clock,
            timeout_seconds=config.probe.timeout_seconds,
            min_interval_seconds=config.probe.min_interval_seconds,
        )
        invoker = ProviderInvoker(
            catalog,
            pool,
            tracker,
            reporter,
            clock,
            call_timeout_seconds=config.analysis.call_timeout_seconds,
        )
        chain = FreeProviderChain(catalog, pool, invoker, selector, probe)
        orchestrator = VisionOrchestrator(pool, selector, invoker, chain, reporter, clock)
        return cls(
            pool=pool,
            catalog=catalog,
            tracker=tracker,
            selector=selector,
            orchestrator=orchestrator,
            probe=probe,
            reporter=reporter,
            clock=clock,
            options=config.analysis,
        )

    # ── Lifecycle ───────────────────────────────────────

    def schedule_daily_reset(self) -> datetime:
        """Schedule usage resets at the next local midnight, then every 24h."""
        first = next_midnight(self.clock.now())
        self.scheduler.schedule(
            DAILY_RESET_TASK, self.reset_daily_usage, first, timedelta(hours=24)
        )
        logger.info("Daily usage reset scheduled for %s", first.isoformat())
        return first

    async def start(self) -> None:
        if self._scheduler_task is not None:
            return
        self.schedule_daily_reset()
        self._scheduler_task = asyncio.create_task(self.scheduler.run())
        await self.probe.refresh(force=True)

    async def close(self) -> None:
        if self._scheduler_task is not None:
            self._scheduler_task.cancel()
            try:
                await self._scheduler_task
            except asyncio.CancelledError:
                pass
            self._scheduler_task = None
        await self.probe.close()
        await self.catalog.close()

    # ── Credentials ─────────────────────────────────────

    def add_credential(
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
        return self.pool.add(
            service,
            secret,
            name=name,
            tier=tier,
            daily_limit=daily_limit,
            expires_at=expires_at,
            region=region,
        )

    def remove_credential(self, cred_id: str) -> bool:
        return self.pool.remove(cred_id)

    def set_credential_active(self, cred_id: str, active: bool) -> bool:
        return self.pool.set_active(cred_id, active)

    def get_credential_status(self, service: str | None = None) -> list[CredentialStatus]:
        return self.pool.status(service)

    def get_credential_usage(self, cred_id: str) -> CredentialStats | None:
        return self.pool.usage(cred_id)

    # ── Usage, budget, preferences ──────────────────────

    def get_usage_statistics(self) -> dict[str, UsageRecord]:
        return self.tracker.snapshot()

    def reset_daily_usage(self) -> None:
        """Zero every credential's daily count and stamp usage records."""
        self.pool.reset_daily()
        self.tracker.reset_daily()
        logger.info("Daily usage counters reset")

    def update_preferences(self, **changes: Any) -> Preferences:
        return self.selector.update_preferences(**changes)

    def get_preferences(self) -> Preferences:
        return self.selector.preferences

    def get_budget_status(self) -> BudgetState:
        return self.tracker.budget_status()

    # ── Catalog ─────────────────────────────────────────

    def get_catalog(self) -> list[ProviderDescriptor]:
        return self.catalog.descriptors()

    def get_recommendations(self, goal: str = "") -> list[ProviderDescriptor]:
        return self.catalog.recommendations(goal)

    def get_free_provider_status(self) -> dict[str, bool]:
        return {d.id: d.available for d in self.catalog.descriptors() if d.is_free}

    async def refresh_availability(self, force: bool = True) -> dict[str, bool]:
        return await self.probe.refresh(force=force)

    def set_selected_model(self, provider_id: str, model: str) -> None:
        self.catalog.set_selected_model(provider_id, model)

    def get_selected_model(self, provider_id: str) -> str:
        return self.catalog.selected_model(provider_id)

    # ── Analysis ────────────────────────────────────────

    async def analyze_frames(
        self,
        frames: Sequence[FrameRef | FrameImage],
        options: AnalysisOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[FrameAnalysisResult]:
        return await self.orchestrator.analyze_frames(
            frames, options or self.options, cancel
        )
