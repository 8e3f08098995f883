"""Tests for frame routing: free chain, paid retries, fallback and batches."""

import asyncio
from datetime import timedelta

import pytest

from fakes import ScriptedAdapter, descriptor, frame_image, make_service

from vision_orchestrator.config import AnalysisOptions
from vision_orchestrator.exceptions import (
    AllProvidersExhausted,
    ImageValidationError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderTransientError,
)
from vision_orchestrator.frames import FrameRef
from vision_orchestrator.models import FrameAnalysisResult, ProviderResult
from vision_orchestrator.reasoning.orchestrator import backoff_delay, log_batch_summary

PAID = descriptor("paid_vision", cost=0.015, service="openai", quality=9.5)
OPTIONS = AnalysisOptions(retry_delay_seconds=1.0, max_retries=3)


class CancellingAdapter(ScriptedAdapter):
    """Sets ``event`` once it has answered ``after`` calls."""

    def __init__(self, event: asyncio.Event, after: int):
        super().__init__()
        self.event = event
        self.after = after

    async def analyze(self, image, prompt, *, descriptor, secret, model):
        result = await super().analyze(
            image, prompt, descriptor=descriptor, secret=secret, model=model
        )
        if len(self.calls) >= self.after:
            self.event.set()
        return result


class HangingAdapter(ScriptedAdapter):
    async def analyze(self, image, prompt, *, descriptor, secret, model):
        await asyncio.sleep(10)


def _codes(service):
    return [r.code for r in service.reporter.recent()]


class TestBackoff:
    def test_doubles_per_attempt(self):
        assert [backoff_delay(1.0, a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]
        assert backoff_delay(0.5, 2) == 2.0


class TestInvoker:
    @pytest.mark.asyncio
    async def test_success_updates_credential_and_usage(self):
        service = make_service((PAID, ScriptedAdapter()), mode="hybrid", max_monthly_budget=1)
        cred_id = service.add_credential("openai", "sk-1", daily_limit=10)
        cred = service.pool.next("openai")
        result, _ = await service.orchestrator._invoker.invoke(
            service.catalog.get("paid_vision"), frame_image(), "p", credential=cred
        )
        assert result.description == "seen by paid_vision"
        assert service.pool.get(cred_id).usage_count == 1
        assert service.tracker.get("paid_vision").success_count == 1
        assert service.get_budget_status().current_spend == pytest.approx(0.015)

    @pytest.mark.asyncio
    async def test_selected_model_and_secret_are_passed(self):
        adapter = ScriptedAdapter()
        d = descriptor("paid_vision", cost=0.01, service="openai", custom_model_support=True)
        service = make_service((d, adapter))
        service.set_selected_model("paid_vision", "gpt-4o-mini")
        service.add_credential("openai", "sk-secret")
        await service.orchestrator._invoker.invoke(
            service.catalog.get("paid_vision"),
            frame_image(),
            "p",
            credential=service.pool.next("openai"),
        )
        assert adapter.calls[0]["model"] == "gpt-4o-mini"
        assert adapter.calls[0]["secret"] == "sk-secret"

    @pytest.mark.asyncio
    async def test_timeout_is_transient_and_recorded(self):
        service = make_service((descriptor("slow_free"), HangingAdapter()))
        with pytest.raises(ProviderTransientError, match="timed out"):
            await service.orchestrator._invoker.invoke(
                service.catalog.get("slow_free"), frame_image(), "p", timeout=0.01
            )
        assert service.tracker.get("slow_free").failure_count == 1
        assert _codes(service) == ["provider_failed"]

    @pytest.mark.asyncio
    async def test_raw_exceptions_are_classified(self):
        service = make_service(
            (descriptor("flaky"), ScriptedAdapter(RuntimeError("429 Too Many Requests")))
        )
        with pytest.raises(ProviderRateLimitError):
            await service.orchestrator._invoker.invoke(
                service.catalog.get("flaky"), frame_image(), "p"
            )
        assert service.tracker.get("flaky").rate_limit_hits == 1


class TestFreeChain:
    @pytest.mark.asyncio
    async def test_rotates_across_free_providers(self):
        a, b = ScriptedAdapter(), ScriptedAdapter()
        service = make_service((descriptor("free_a"), a), (descriptor("free_b"), b))
        results = await service.analyze_frames([frame_image(i) for i in range(3)])
        assert [r.provider for r in results] == ["free_a", "free_b", "free_a"]
        assert all(r.used_free_provider for r in results)

    @pytest.mark.asyncio
    async def test_fails_over_to_next_free_provider(self):
        a = ScriptedAdapter(ProviderTransientError("HTTP 503"))
        service = make_service((descriptor("free_a"), a), (descriptor("free_b"), ScriptedAdapter()))
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider == "free_b"
        assert "provider_failed" in _codes(service)

    @pytest.mark.asyncio
    async def test_keyed_free_tier_needs_a_key(self):
        keyed = ScriptedAdapter()
        service = make_service(
            (descriptor("gemini_flash_free", service="google"), keyed),
            (descriptor("ollama"), ScriptedAdapter()),
        )
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider == "ollama"
        assert keyed.calls == []

        service.add_credential("google", "AIza-free")
        results = await service.analyze_frames([frame_image(i) for i in range(2)])
        assert {r.provider for r in results} == {"gemini_flash_free", "ollama"}
        assert keyed.calls[0]["secret"] == "AIza-free"

    @pytest.mark.asyncio
    async def test_blacklisted_and_oversized_are_skipped(self):
        banned, small = ScriptedAdapter(), ScriptedAdapter()
        service = make_service(
            (descriptor("banned"), banned),
            (descriptor("small", max_image_size=1024), small),
            (descriptor("ok"), ScriptedAdapter()),
            blacklisted_providers=["banned"],
        )
        result = await service.orchestrator.analyze_frame(frame_image(size=4096), OPTIONS)
        assert result.provider == "ok"
        assert banned.calls == small.calls == []

    @pytest.mark.asyncio
    async def test_whitelist_limits_free_providers(self):
        other = ScriptedAdapter()
        service = make_service(
            (descriptor("other"), other),
            (descriptor("allowed"), ScriptedAdapter()),
            whitelisted_providers=["allowed"],
        )
        results = await service.analyze_frames([frame_image(i) for i in range(2)])
        assert [r.provider for r in results] == ["allowed", "allowed"]
        assert other.calls == []

    @pytest.mark.asyncio
    async def test_free_chain_honors_preferred_regions(self):
        china = ScriptedAdapter()
        service = make_service(
            (descriptor("cn_only", region="china"), china),
            (descriptor("glob"), ScriptedAdapter()),
        )
        image = frame_image()
        assert service.selector.select_provider(image.size, image.format).id == "glob"
        result = await service.orchestrator.analyze_frame(image, OPTIONS)
        assert result.provider == "glob"
        assert china.calls == []

    @pytest.mark.asyncio
    async def test_free_chain_ignores_quality_and_speed_floors(self):
        service = make_service(
            (descriptor("slow_basic", quality=4.0, latency=9000), ScriptedAdapter()),
            quality_threshold=8.0,
        )
        image = frame_image()
        assert service.selector.select_provider(image.size, image.format) is None
        result = await service.orchestrator.analyze_frame(image, OPTIONS)
        assert result.provider == "slow_basic"


class TestPaidRetry:
    @pytest.mark.asyncio
    async def test_paid_result_names_the_credential(self):
        service = make_service((PAID, ScriptedAdapter()), mode="hybrid", max_monthly_budget=5)
        service.add_credential("openai", "sk-1", name="work", daily_limit=100)
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider == "paid_vision (work)"
        assert result.used_free_provider is False

    @pytest.mark.asyncio
    async def test_transient_failures_back_off_exponentially(self):
        service = make_service(
            (
                PAID,
                ScriptedAdapter(
                    ProviderTransientError("HTTP 502"),
                    ProviderTransientError("HTTP 502"),
                    ProviderTransientError("HTTP 502"),
                ),
            ),
            mode="hybrid",
            max_monthly_budget=5,
        )
        service.add_credential("openai", "sk-1", daily_limit=100)
        with pytest.raises(AllProvidersExhausted):
            await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert service.clock.sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_recovers_on_later_attempt(self):
        adapter = ScriptedAdapter(ProviderTransientError("HTTP 500"))
        service = make_service((PAID, adapter), mode="hybrid", max_monthly_budget=5)
        service.add_credential("openai", "sk-1", daily_limit=100)
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider.startswith("paid_vision")
        assert service.clock.sleeps == [1.0]
        assert len(adapter.calls) == 2

    @pytest.mark.asyncio
    async def test_rate_limited_key_rotates_without_delay(self):
        adapter = ScriptedAdapter(ProviderRateLimitError("slow down", retry_after=60))
        service = make_service((PAID, adapter), mode="hybrid", max_monthly_budget=5)
        first = service.add_credential("openai", "sk-1", name="first", daily_limit=100)
        service.add_credential("openai", "sk-2", name="second", daily_limit=100)

        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider == "paid_vision (second)"
        assert service.clock.sleeps == []
        assert [c["secret"] for c in adapter.calls] == ["sk-1", "sk-2"]
        limited = service.pool.get(first)
        assert limited.rate_limited_until == service.clock.now() + timedelta(seconds=60)
        service.clock.advance(60)
        assert not service.pool.get(first).is_rate_limited(service.clock.now())
        assert "rate_limited" in _codes(service)

    @pytest.mark.asyncio
    async def test_rejected_key_is_deactivated(self):
        adapter = ScriptedAdapter(ProviderAuthError("invalid key", status=401))
        service = make_service((PAID, adapter), mode="hybrid", max_monthly_budget=5)
        bad = service.add_credential("openai", "sk-revoked", daily_limit=100)
        service.add_credential("openai", "sk-good", daily_limit=100)

        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider.startswith("paid_vision")
        assert service.pool.get(bad).is_active is False
        assert service.clock.sleeps == []
        assert "credential_rejected" in _codes(service)

    @pytest.mark.asyncio
    async def test_image_rejection_stops_the_service(self):
        adapter = ScriptedAdapter(ImageValidationError("image too large", status=413))
        service = make_service((PAID, adapter), mode="hybrid", max_monthly_budget=5)
        service.add_credential("openai", "sk-1", daily_limit=100)
        with pytest.raises(AllProvidersExhausted):
            await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert len(adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_no_credentials_means_no_paid_call(self):
        adapter = ScriptedAdapter()
        service = make_service((PAID, adapter), mode="hybrid", max_monthly_budget=5)
        with pytest.raises(AllProvidersExhausted):
            await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_services_tried_in_configured_order(self):
        openai, google = ScriptedAdapter(), ScriptedAdapter()
        service = make_service(
            (PAID, openai),
            (descriptor("gemini_pro", cost=0.01, service="google"), google),
            mode="hybrid",
            max_monthly_budget=5,
        )
        service.add_credential("openai", "sk-1")
        service.add_credential("google", "AIza")
        options = AnalysisOptions(paid_services=["google", "openai"])
        result = await service.orchestrator.analyze_frame(frame_image(), options)
        assert result.provider.startswith("gemini_pro")
        assert openai.calls == []


class TestModes:
    def _service(self, mode, free_outcomes=(), budget=5):
        free, paid = ScriptedAdapter(*free_outcomes), ScriptedAdapter()
        service = make_service(
            (descriptor("free_vision"), free),
            (PAID, paid),
            mode=mode,
            max_monthly_budget=budget,
        )
        service.add_credential("openai", "sk-1", daily_limit=100)
        return service, free, paid

    @pytest.mark.asyncio
    async def test_free_only_never_calls_paid(self):
        service, free, paid = self._service(
            "free_only", [ProviderTransientError("down")]
        )
        with pytest.raises(AllProvidersExhausted):
            await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert paid.calls == []
        assert len(free.calls) == 1

    @pytest.mark.asyncio
    async def test_hybrid_tries_free_first(self):
        service, free, paid = self._service("hybrid")
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider == "free_vision"
        assert paid.calls == []

    @pytest.mark.asyncio
    async def test_hybrid_falls_back_to_paid(self):
        service, _, paid = self._service("hybrid", [ProviderTransientError("down")])
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider.startswith("paid_vision")
        assert len(paid.calls) == 1

    @pytest.mark.asyncio
    async def test_premium_preferred_uses_paid_first(self):
        service, free, _ = self._service("premium_preferred")
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider.startswith("paid_vision")
        assert free.calls == []

    @pytest.mark.asyncio
    async def test_premium_preferred_falls_back_to_free(self):
        service, free, paid = self._service("premium_preferred", budget=0)
        result = await service.orchestrator.analyze_frame(frame_image(), OPTIONS)
        assert result.provider == "free_vision"
        assert paid.calls == []

    @pytest.mark.asyncio
    async def test_fallback_to_free_can_be_disabled(self):
        service, free, _ = self._service("premium_preferred", budget=0)
        with pytest.raises(AllProvidersExhausted):
            await service.orchestrator.analyze_frame(
                frame_image(), AnalysisOptions(fallback_to_free=False)
            )
        assert free.calls == []

    @pytest.mark.asyncio
    async def test_budget_stops_paid_calls(self):
        paid = ScriptedAdapter()
        service = make_service((PAID, paid), mode="hybrid", max_monthly_budget=0.02)
        service.add_credential("openai", "sk-1", daily_limit=100)
        results = await service.analyze_frames([frame_image(i) for i in range(3)])
        assert [r.is_fallback for r in results] == [False, True, True]
        assert len(paid.calls) == 1
        budget = service.get_budget_status()
        assert budget.current_spend == pytest.approx(0.015)
        assert budget.remaining_budget >= 0


class TestBatch:
    @pytest.mark.asyncio
    async def test_partial_failure_keeps_one_result_per_frame(self):
        adapter = ScriptedAdapter(
            ProviderResult(description="frame 0", confidence=0.9),
            ProviderResult(description="frame 1", confidence=0.9),
            ProviderTransientError("HTTP 503"),
            ProviderResult(description="frame 3", confidence=0.9),
            ProviderResult(description="frame 4", confidence=0.9),
        )
        service = make_service((descriptor("only_free"), adapter))
        results = await service.analyze_frames([frame_image(i) for i in range(5)])

        assert [r.frame_index for r in results] == [0, 1, 2, 3, 4]
        assert sum(not r.is_fallback for r in results) == 4
        failed = results[2]
        assert failed.is_fallback
        assert failed.provider == "fallback"
        assert failed.confidence == 0.0
        assert failed.timestamp == 1.0
        assert "frame_failed" in _codes(service)
        usage = service.tracker.get("only_free")
        assert usage.success_count == 4
        assert usage.failure_count == 1
        # Delay only after analyzed frames
        assert service.clock.sleeps == [0.1] * 4

    @pytest.mark.asyncio
    async def test_paid_frames_use_paid_delay(self):
        service = make_service((PAID, ScriptedAdapter()), mode="hybrid", max_monthly_budget=5)
        service.add_credential("openai", "sk-1", daily_limit=100)
        await service.analyze_frames([frame_image(0), frame_image(1)])
        assert service.clock.sleeps == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_unreadable_frame_file_becomes_fallback(self, tmp_path):
        service = make_service((descriptor("only_free"), ScriptedAdapter()))
        frames = [
            FrameRef(path=str(tmp_path / "missing.png"), index=0, timestamp=0.0),
            frame_image(1),
        ]
        results = await service.analyze_frames(frames)
        assert results[0].is_fallback
        assert results[1].provider == "only_free"

    @pytest.mark.asyncio
    async def test_cancel_returns_partial_results(self):
        cancel = asyncio.Event()
        adapter = CancellingAdapter(cancel, after=2)
        service = make_service((descriptor("only_free"), adapter))
        results = await service.analyze_frames(
            [frame_image(i) for i in range(5)], cancel=cancel
        )
        assert [r.frame_index for r in results] == [0, 1]

    @pytest.mark.asyncio
    async def test_custom_prompt_reaches_adapter(self):
        adapter = ScriptedAdapter()
        service = make_service((descriptor("only_free"), adapter))
        await service.analyze_frames(
            [frame_image()], AnalysisOptions(custom_prompt="Only read the clock")
        )
        assert adapter.calls[0]["prompt"] == "Only read the clock"

    def test_summary(self):
        results = [
            FrameAnalysisResult(
                frame_index=0, timestamp=0, provider="a", confidence=0.8,
                processing_time_ms=100, used_free_provider=True,
            ),
            FrameAnalysisResult(
                frame_index=1, timestamp=0.5, provider="b (k)", confidence=0.6,
                processing_time_ms=300,
            ),
            FrameAnalysisResult.fallback(2, 1.0),
        ]
        summary = log_batch_summary(results)
        assert summary["frames"] == 3
        assert summary["succeeded"] == 2
        assert summary["failed"] == 1
        assert (summary["free"], summary["paid"]) == (1, 1)
        assert summary["avg_confidence"] == pytest.approx(0.7)
        assert summary["avg_processing_ms"] == 200

    def test_empty_summary(self):
        assert log_batch_summary([])["avg_confidence"] == 0.0
