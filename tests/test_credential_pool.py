"""Tests for the credential pool: rotation, quotas, quarantine and persistence."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from vision_orchestrator.clock import ManualClock
from vision_orchestrator.credentials import CredentialPool, CredentialTier
from vision_orchestrator.credentials.models import default_daily_limit, mask_secret
from vision_orchestrator.exceptions import PersistenceError
from vision_orchestrator.settings_store import MemorySettingsStore, SettingsStore


@pytest.fixture
def clock():
    return ManualClock(datetime(2024, 1, 15, 9, 0))


@pytest.fixture
def pool(clock):
    return CredentialPool(MemorySettingsStore(), clock)


def _assert_usable(cred, now):
    assert cred.is_active
    assert not cred.is_expired(now)
    assert not cred.is_rate_limited(now)
    assert cred.daily_limit is None or cred.usage_count < cred.daily_limit


class TestAdd:
    def test_returns_id_and_applies_tier_defaults(self, pool):
        cred_id = pool.add("openai", "sk-test-1234567890", tier="trial")
        cred = pool.get(cred_id)
        assert cred_id.startswith("key_")
        assert cred.daily_limit == 1000
        assert cred.name == f"openai-{cred_id[-4:]}"
        assert cred.tier == CredentialTier.TRIAL

    def test_unknown_service_uses_fallback_limit(self, pool):
        cred = pool.get(pool.add("groq", "gsk_abcdefghijkl"))
        assert cred.daily_limit == default_daily_limit("groq", "free") == 100

    def test_explicit_limit_wins(self, pool):
        cred = pool.get(pool.add("openai", "sk-x", daily_limit=3))
        assert cred.daily_limit == 3

    def test_missing_secret_rejected(self, pool):
        with pytest.raises(ValueError):
            pool.add("openai", "")

    def test_remove(self, pool):
        cred_id = pool.add("openai", "sk-x")
        assert pool.remove(cred_id) is True
        assert pool.remove(cred_id) is False
        assert pool.next("openai") is None


class TestRoundRobin:
    def test_visits_each_usable_credential_once_per_cycle(self, pool):
        ids = [pool.add("google", f"AIza-key-{i}") for i in range(3)]
        first_cycle = [pool.next("google").id for _ in range(3)]
        second_cycle = [pool.next("google").id for _ in range(3)]
        assert sorted(first_cycle) == sorted(ids)
        assert second_cycle == first_cycle

    def test_services_rotate_independently(self, pool):
        a1 = pool.add("openai", "sk-a1")
        a2 = pool.add("openai", "sk-a2")
        g1 = pool.add("google", "g1")
        assert pool.next("openai").id == a1
        assert pool.next("google").id == g1
        assert pool.next("openai").id == a2

    def test_no_usable_credential_is_none(self, pool):
        assert pool.next("anthropic") is None

    def test_returned_credential_is_a_copy(self, pool):
        cred_id = pool.add("openai", "sk-x")
        cred = pool.next("openai")
        cred.usage_count = 999
        cred.is_active = False
        assert pool.get(cred_id).usage_count == 0
        assert pool.next("openai").id == cred_id


class TestUsability:
    def test_every_returned_credential_is_usable(self, pool, clock):
        ok = pool.add("openai", "sk-ok")
        disabled = pool.add("openai", "sk-off")
        pool.set_active(disabled, False)
        expired = pool.add("openai", "sk-old", expires_at=clock.now() - timedelta(days=1))
        limited = pool.add("openai", "sk-429")
        pool.mark_rate_limited(limited, 600)
        spent = pool.add("openai", "sk-spent", daily_limit=1)
        pool.mark_used(spent, True)

        seen = set()
        for _ in range(10):
            cred = pool.next("openai")
            _assert_usable(cred, clock.now())
            seen.add(cred.id)
        assert seen == {ok}
        assert expired not in seen

    def test_quota_exhaustion(self, pool):
        cred_id = pool.add("openai", "sk-x", daily_limit=2)
        pool.mark_used(cred_id, True)
        pool.mark_used(cred_id, False)
        assert pool.next("openai") is None
        status = pool.status("openai")[0]
        assert status.is_daily_limit_exceeded
        assert status.usage_count == 2

    def test_unlimited_credential_never_exhausts(self, pool):
        cred_id = pool.add("ollama", "local-token")
        for _ in range(50):
            pool.mark_used(cred_id, True)
        assert pool.next("ollama").id == cred_id


class TestRateLimitQuarantine:
    def test_excluded_until_retry_after_elapses(self, pool, clock):
        cred_id = pool.add("openai", "sk-x")
        pool.mark_rate_limited(cred_id, 60)

        clock.advance(59)
        assert pool.next("openai") is None
        clock.advance(1)
        assert pool.next("openai").id == cred_id

    def test_default_quarantine_is_one_hour(self, pool, clock):
        cred_id = pool.add("openai", "sk-x")
        pool.mark_rate_limited(cred_id)
        assert pool.get(cred_id).rate_limited_until == clock.now() + timedelta(hours=1)

    def test_rotation_skips_quarantined_key(self, pool):
        a = pool.add("openai", "sk-a")
        b = pool.add("openai", "sk-b")
        pool.mark_rate_limited(a, 300)
        assert {pool.next("openai").id for _ in range(4)} == {b}

    def test_counts_rate_limit_hits(self, pool):
        cred_id = pool.add("openai", "sk-x")
        pool.mark_rate_limited(cred_id, 10)
        assert pool.usage(cred_id).rate_limit_hits == 1

    def test_unknown_id(self, pool):
        assert pool.mark_rate_limited("key_missing", 10) is False
        assert pool.mark_used("key_missing", True) is False


class TestDailyReset:
    def test_zeroes_counts_and_restores_exhausted_keys(self, pool, clock):
        cred_id = pool.add("openai", "sk-x", daily_limit=1)
        pool.mark_used(cred_id, True)
        assert pool.next("openai") is None

        clock.advance(3600)
        pool.reset_daily()
        assert pool.get(cred_id).usage_count == 0
        assert pool.usage(cred_id).last_reset == clock.now()
        assert pool.next("openai").id == cred_id

    def test_rate_limit_survives_reset(self, pool):
        cred_id = pool.add("openai", "sk-x", daily_limit=1)
        pool.mark_used(cred_id, True)
        pool.mark_rate_limited(cred_id, 7200)
        pool.reset_daily()
        assert pool.next("openai") is None


class TestMarkUsed:
    def test_updates_counts_and_last_used(self, pool, clock):
        cred_id = pool.add("openai", "sk-x")
        clock.advance(5)
        pool.mark_used(cred_id, True)
        pool.mark_used(cred_id, False)
        cred = pool.get(cred_id)
        assert cred.usage_count == 2
        assert cred.last_used == clock.now()
        stats = pool.usage(cred_id)
        assert (stats.total_calls, stats.successful_calls, stats.failed_calls) == (2, 1, 1)


class TestStatus:
    def test_secret_is_masked(self, pool):
        pool.add("openai", "sk-proj-abcdefghijklmnop")
        preview = pool.status()[0].secret_preview
        assert preview == "sk-pro...mnop"
        assert "abcdefghijkl" not in preview

    def test_short_secret_fully_masked(self):
        assert mask_secret("short") == "*****"

    def test_filter_by_service(self, pool):
        pool.add("openai", "sk-1")
        pool.add("google", "g-1")
        assert [s.service for s in pool.status("google")] == ["google"]
        assert len(pool.status()) == 2

    def test_services_are_sorted_and_unique(self, pool):
        assert pool.services() == []
        pool.add("openai", "sk-1")
        pool.add("google", "g-1")
        pool.add("openai", "sk-2")
        assert pool.services() == ["google", "openai"]


class TestPersistence:
    def test_reload_keeps_credentials_and_counts(self, clock):
        store = MemorySettingsStore()
        pool = CredentialPool(store, clock)
        cred_id = pool.add("openai", "sk-x", daily_limit=5, name="work")
        pool.mark_used(cred_id, True)
        pool.mark_rate_limited(cred_id, 120)

        reloaded = CredentialPool(store, clock)
        cred = reloaded.get(cred_id)
        assert cred.name == "work"
        assert cred.usage_count == 1
        assert cred.rate_limited_until == clock.now() + timedelta(seconds=120)

    def test_every_mutation_is_saved(self, clock):
        store = MemorySettingsStore()
        pool = CredentialPool(store, clock)
        cred_id = pool.add("openai", "sk-x")
        pool.set_active(cred_id, False)
        saved = store.get("credential_pool")["credentials"][0]
        assert saved["is_active"] is False

    def test_rotation_resumes_after_reload(self, clock):
        store = MemorySettingsStore()
        pool = CredentialPool(store, clock)
        first = pool.add("openai", "sk-1")
        second = pool.add("openai", "sk-2")
        assert pool.next("openai").id == first
        assert store.get("credential_pool")["cursors"] == {"openai": 1}

        reloaded = CredentialPool(store, clock)
        assert reloaded.next("openai").id == second

    def test_unreadable_entries_are_skipped(self, clock):
        store = MemorySettingsStore(
            {"credential_pool": {"credentials": [{"id": "broken"}], "cursors": {}}}
        )
        assert len(CredentialPool(store, clock)) == 0

    def test_persistence_failure_propagates(self, clock):
        class FailingStore(SettingsStore):
            def get(self, key, default=None):
                return default

            def set(self, key, value):
                raise PersistenceError("disk full")

            def delete(self, key):
                pass

        pool = CredentialPool(FailingStore(), clock)
        with pytest.raises(PersistenceError):
            pool.add("openai", "sk-x")
