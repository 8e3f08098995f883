"""Tests for per-provider usage records and the monthly budget."""

from __future__ import annotations

from datetime import datetime

import pytest

from vision_orchestrator.clock import ManualClock
from vision_orchestrator.settings_store import MemorySettingsStore
from vision_orchestrator.usage import UsageTracker


@pytest.fixture
def clock():
    return ManualClock(datetime(2024, 1, 15, 9, 0))


@pytest.fixture
def tracker(clock):
    return UsageTracker(["ollama_llava", "openai_gpt4o"], MemorySettingsStore(), clock)


class TestRecords:
    def test_records_exist_for_catalog_providers(self, tracker):
        record = tracker.get("openai_gpt4o")
        assert record.request_count == 0
        assert record.last_reset == datetime(2024, 1, 15, 9, 0)

    def test_success_and_failure_counts(self, tracker):
        tracker.record("ollama_llava", True, 800)
        tracker.record("ollama_llava", False, 1200)
        record = tracker.get("ollama_llava")
        assert (record.request_count, record.success_count, record.failure_count) == (2, 1, 1)

    def test_latency_is_two_sample_average(self, tracker):
        tracker.record("ollama_llava", True, 1000)
        assert tracker.get("ollama_llava").avg_response_time_ms == 1000
        tracker.record("ollama_llava", True, 3000)
        assert tracker.get("ollama_llava").avg_response_time_ms == 2000
        tracker.record("ollama_llava", True, 1000)
        assert tracker.get("ollama_llava").avg_response_time_ms == 1500

    def test_success_rate_defaults_to_half(self, tracker):
        assert tracker.success_rate("ollama_llava") == 0.5
        assert tracker.success_rate("never_seen") == 0.5
        tracker.record("ollama_llava", True, 10)
        tracker.record("ollama_llava", True, 10)
        tracker.record("ollama_llava", False, 10)
        assert tracker.success_rate("ollama_llava") == pytest.approx(2 / 3)

    def test_rate_limit_hits(self, tracker):
        tracker.record_rate_limit("openai_gpt4o")
        assert tracker.get("openai_gpt4o").rate_limit_hits == 1

    def test_snapshot_is_detached(self, tracker):
        snap = tracker.snapshot()
        snap["ollama_llava"].request_count = 42
        assert tracker.get("ollama_llava").request_count == 0

    def test_reset_daily_stamps_every_record(self, tracker, clock):
        clock.advance(86400)
        tracker.reset_daily()
        assert all(r.last_reset == clock.now() for r in tracker.snapshot().values())

    def test_quality_rating_bounds(self, tracker):
        tracker.rate("ollama_llava", 8)
        assert tracker.get("ollama_llava").quality_rating == 8
        with pytest.raises(ValueError):
            tracker.rate("ollama_llava", 11)


class TestBudget:
    def test_spend_reduces_remaining(self, tracker):
        tracker.set_monthly_budget(1.0)
        tracker.record("openai_gpt4o", True, 900, cost=0.015)
        state = tracker.budget_status()
        assert state.current_spend == pytest.approx(0.015)
        assert state.remaining_budget == pytest.approx(0.985)
        assert tracker.get("openai_gpt4o").total_cost == pytest.approx(0.015)

    def test_remaining_never_negative(self, tracker):
        tracker.set_monthly_budget(0.01)
        tracker.record("openai_gpt4o", True, 900, cost=0.015)
        state = tracker.budget_status()
        assert state.remaining_budget == 0.0
        assert state.current_spend == pytest.approx(0.015)

    def test_lowering_cap_below_spend_clamps(self, tracker):
        tracker.set_monthly_budget(5.0)
        tracker.record("openai_gpt4o", True, 900, cost=1.0)
        tracker.set_monthly_budget(0.5)
        assert tracker.remaining_budget == 0.0

    def test_negative_cap_rejected(self, tracker):
        with pytest.raises(ValueError):
            tracker.set_monthly_budget(-1)

    def test_projection_scales_to_month(self, tracker):
        # 2024-01-15: 15 of 31 days elapsed
        tracker.set_monthly_budget(10.0)
        tracker.record("openai_gpt4o", True, 900, cost=1.5)
        assert tracker.budget_status().projected_monthly_spend == pytest.approx(1.5 / 15 * 31)

    def test_month_rollover_resets_spend(self, tracker, clock):
        tracker.set_monthly_budget(2.0)
        tracker.record("openai_gpt4o", True, 900, cost=1.5)
        clock.set(datetime(2024, 2, 1, 0, 0, 1))
        state = tracker.budget_status()
        assert state.current_month == "2024-02"
        assert state.current_spend == 0.0
        assert state.remaining_budget == 2.0
        # Lifetime per-provider cost is kept
        assert tracker.get("openai_gpt4o").total_cost == pytest.approx(1.5)

    def test_free_calls_cost_nothing(self, tracker):
        tracker.set_monthly_budget(1.0)
        tracker.record("ollama_llava", True, 500)
        assert tracker.remaining_budget == 1.0


class TestPersistence:
    def test_reload(self, clock):
        store = MemorySettingsStore()
        tracker = UsageTracker(["openai_gpt4o"], store, clock)
        tracker.set_monthly_budget(3.0)
        tracker.record("openai_gpt4o", True, 700, cost=0.5)

        reloaded = UsageTracker(["openai_gpt4o", "new_provider"], store, clock)
        assert reloaded.get("openai_gpt4o").success_count == 1
        assert reloaded.get("new_provider").request_count == 0
        assert reloaded.budget_status().current_spend == pytest.approx(0.5)
        assert reloaded.budget_status().monthly_budget == 3.0
