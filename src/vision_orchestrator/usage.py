"""Per-provider usage tracking and the monthly budget."""

from __future__ import annotations

import calendar
import logging
import threading
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel

from .clock import Clock, SystemClock
from .settings_store import SettingsStore

logger = logging.getLogger("vision-orchestrator")

STORE_KEY = "provider_usage"
DEFAULT_SUCCESS_RATE = 0.5


class UsageRecord(BaseModel):
    provider_id: str
    request_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    rate_limit_hits: int = 0
    total_cost: float = 0.0
    avg_response_time_ms: float = 0.0
    quality_rating: float | None = None
    last_used: datetime | None = None
    last_reset: datetime | None = None

    @property
    def success_rate(self) -> float:
        if self.request_count == 0:
            return DEFAULT_SUCCESS_RATE
        return self.success_count / self.request_count


class BudgetState(BaseModel):
    monthly_budget: float = 0.0
    current_spend: float = 0.0
    remaining_budget: float = 0.0
    projected_monthly_spend: float = 0.0
    current_month: str = ""  # "YYYY-MM"


class UsageTracker:
    """Owns usage records and budget state; hands out copies only.

    Spend resets when the calendar month changes. Remaining budget is
    clamped at zero.
    """

    def __init__(
        self,
        provider_ids: Iterable[str] = (),
        store: SettingsStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._records: dict[str, UsageRecord] = {}
        self._budget = BudgetState(current_month=self._month())
        self._load()
        now = self._clock.now()
        for provider_id in provider_ids:
            if provider_id not in self._records:
                self._records[provider_id] = UsageRecord(
                    provider_id=provider_id, last_reset=now
                )

    def _month(self) -> str:
        return self._clock.now().strftime("%Y-%m")

    def _load(self) -> None:
        if self._store is None:
            return
        data = self._store.get(STORE_KEY) or {}
        for raw in data.get("records", []):
            try:
                record = UsageRecord(**raw)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable usage record: %s", e)
                continue
            self._records[record.provider_id] = record
        if isinstance(data.get("budget"), dict):
            self._budget = BudgetState(**data["budget"])

    def _save(self) -> None:
        if self._store is None:
            return
        self._store.set(
            STORE_KEY,
            {
                "records": [r.model_dump(mode="json") for r in self._records.values()],
                "budget": self._budget.model_dump(mode="json"),
            },
        )

    def _check_month_rollover(self) -> None:
        month = self._month()
        if month != self._budget.current_month:
            logger.info(
                "Budget month rolled over %s -> %s (spent $%.4f)",
                self._budget.current_month or "-",
                month,
                self._budget.current_spend,
            )
            self._budget.current_month = month
            self._budget.current_spend = 0.0
            self._recompute()

    def _recompute(self) -> None:
        b = self._budget
        b.remaining_budget = max(b.monthly_budget - b.current_spend, 0.0)
        now = self._clock.now()
        days_in_month = calendar.monthrange(now.year, now.month)[1]
        b.projected_monthly_spend = round(b.current_spend / now.day * days_in_month, 6)

    def _record_for(self, provider_id: str) -> UsageRecord:
        record = self._records.get(provider_id)
        if record is None:
            record = UsageRecord(provider_id=provider_id, last_reset=self._clock.now())
            self._records[provider_id] = record
        return record

    # ── Mutations ───────────────────────────────────────

    def record(
        self, provider_id: str, success: bool, latency_ms: float, cost: float = 0.0
    ) -> None:
        with self._lock:
            self._check_month_rollover()
            record = self._record_for(provider_id)
            record.request_count += 1
            if success:
                record.success_count += 1
            else:
                record.failure_count += 1
            record.last_used = self._clock.now()
            if record.request_count == 1:
                record.avg_response_time_ms = latency_ms
            else:
                record.avg_response_time_ms = (
                    record.avg_response_time_ms + latency_ms
                ) / 2
            if cost > 0:
                record.total_cost += cost
                self._budget.current_spend += cost
            self._recompute()
            self._save()

    def record_rate_limit(self, provider_id: str) -> None:
        with self._lock:
            self._record_for(provider_id).rate_limit_hits += 1
            self._save()

    def rate(self, provider_id: str, quality: float) -> None:
        """Store a user quality rating (1-10) for a provider."""
        if not 1 <= quality <= 10:
            raise ValueError("quality rating must be between 1 and 10")
        with self._lock:
            self._record_for(provider_id).quality_rating = quality
            self._save()

    def set_monthly_budget(self, monthly_budget: float) -> None:
        if monthly_budget < 0:
            raise ValueError("monthly budget cannot be negative")
        with self._lock:
            self._check_month_rollover()
            self._budget.monthly_budget = monthly_budget
            self._recompute()
            self._save()

    def reset_daily(self) -> None:
        with self._lock:
            now = self._clock.now()
            for record in self._records.values():
                record.last_reset = now
            self._save()

    # ── Views ───────────────────────────────────────────

    def success_rate(self, provider_id: str) -> float:
        with self._lock:
            record = self._records.get(provider_id)
            return record.success_rate if record else DEFAULT_SUCCESS_RATE

    def get(self, provider_id: str) -> UsageRecord | None:
        with self._lock:
            record = self._records.get(provider_id)
            return record.model_copy() if record else None

    def snapshot(self) -> dict[str, UsageRecord]:
        with self._lock:
            return {k: r.model_copy() for k, r in self._records.items()}

    def budget_status(self) -> BudgetState:
        with self._lock:
            self._check_month_rollover()
            self._recompute()
            return self._budget.model_copy()

    @property
    def remaining_budget(self) -> float:
        return self.budget_status().remaining_budget
