"""Tests for the HTTP API."""

from __future__ import annotations

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from fakes import ScriptedAdapter, descriptor, make_service

from vision_orchestrator.api import create_api_routes
from vision_orchestrator.clock import ManualClock

PAID = descriptor(
    "paid_vision", cost=0.015, service="openai", quality=9.5, supported_models=["m1", "m2"]
)


@pytest.fixture
def service():
    return make_service(
        (descriptor("free_vision", quality=8.0), ScriptedAdapter()),
        (PAID, ScriptedAdapter()),
        clock=ManualClock(),
    )


@pytest_asyncio.fixture
async def client(service):
    app = create_api_routes(service, manage_lifecycle=False)
    async with TestClient(TestServer(app)) as client:
        yield client


@pytest_asyncio.fixture
async def authed_client(service):
    app = create_api_routes(service, auth_token="s3cret", manage_lifecycle=False)
    async with TestClient(TestServer(app)) as client:
        yield client


class TestIndex:
    @pytest.mark.asyncio
    async def test_overview(self, client):
        resp = await client.get("/")
        assert resp.status == 200
        data = await resp.json()
        assert data["name"] == "vision-orchestrator"
        assert data["providers"] == 2
        assert data["credential_services"] == []

    @pytest.mark.asyncio
    async def test_overview_lists_credential_services(self, client, service):
        service.add_credential("openai", "sk-1")
        data = await (await client.get("/")).json()
        assert data["credential_services"] == ["openai"]
        assert "POST /analyze" in data["endpoints"]


class TestCredentials:
    @pytest.mark.asyncio
    async def test_add_list_remove(self, client):
        resp = await client.post(
            "/credentials",
            json={"service": "openai", "secret": "sk-proj-abcdefghijklmnop", "name": "work"},
        )
        assert resp.status == 201
        cred_id = (await resp.json())["id"]

        listed = await (await client.get("/credentials")).json()
        assert listed[0]["id"] == cred_id
        assert listed[0]["secret_preview"] == "sk-pro...mnop"
        assert "secret" not in listed[0]

        assert await (await client.get("/credentials/google")).json() == []

        resp = await client.delete(f"/credentials/{cred_id}")
        assert resp.status == 200
        resp = await client.delete(f"/credentials/{cred_id}")
        assert resp.status == 404
        assert (await resp.json())["code"] == "credential_not_found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, code",
        [
            ({"service": "openai"}, "missing_fields"),
            ({"service": "openai", "secret": "k", "expires_at": "soon"}, "invalid_expiry"),
            ({"service": "openai", "secret": "k", "daily_limit": "lots"}, "invalid_limit"),
            ({"service": "openai", "secret": "k", "tier": "platinum"}, "invalid_credential"),
        ],
    )
    async def test_add_validation(self, client, body, code):
        resp = await client.post("/credentials", json=body)
        assert resp.status == 400
        assert (await resp.json())["code"] == code

    @pytest.mark.asyncio
    async def test_add_rejects_non_json(self, client):
        resp = await client.post("/credentials", data="not json")
        assert resp.status == 400
        assert (await resp.json())["code"] == "invalid_json"

    @pytest.mark.asyncio
    async def test_toggle_active(self, client, service):
        cred_id = service.add_credential("openai", "sk-1")
        resp = await client.put(f"/credentials/{cred_id}/active", json={"active": False})
        assert resp.status == 200
        assert service.pool.get(cred_id).is_active is False

        resp = await client.put(f"/credentials/{cred_id}/active", json={"active": "no"})
        assert resp.status == 400
        resp = await client.put("/credentials/key_missing/active", json={"active": True})
        assert resp.status == 404


class TestUsageAndBudget:
    @pytest.mark.asyncio
    async def test_usage_and_reset(self, client, service):
        cred_id = service.add_credential("openai", "sk-1", daily_limit=5)
        service.pool.mark_used(cred_id, True)
        service.tracker.record("free_vision", True, 1200)

        usage = await (await client.get("/usage")).json()
        assert usage["free_vision"]["success_count"] == 1

        resp = await client.post("/usage/reset")
        assert (await resp.json()) == {"status": "reset"}
        assert service.pool.get(cred_id).usage_count == 0

    @pytest.mark.asyncio
    async def test_budget(self, client, service):
        service.update_preferences(max_monthly_budget=10)
        data = await (await client.get("/budget")).json()
        assert data["monthly_budget"] == 10
        assert data["remaining_budget"] == 10
        assert data["current_month"] == "2024-01"


class TestPreferences:
    @pytest.mark.asyncio
    async def test_get_and_update(self, client):
        prefs = await (await client.get("/preferences")).json()
        assert prefs["mode"] == "free_only"

        resp = await client.put("/preferences", json={"mode": "hybrid", "quality_threshold": 8})
        assert resp.status == 200
        assert (await resp.json())["mode"] == "hybrid"

    @pytest.mark.asyncio
    async def test_invalid_update(self, client):
        resp = await client.put("/preferences", json={"mode": "luxury"})
        assert resp.status == 400
        assert (await resp.json())["code"] == "invalid_preferences"


class TestProviders:
    @pytest.mark.asyncio
    async def test_catalog_includes_selected_model(self, client):
        data = await (await client.get("/providers")).json()
        paid = next(p for p in data if p["id"] == "paid_vision")
        assert paid["selected_model"] == ""
        assert paid["cost_per_request"] == 0.015

    @pytest.mark.asyncio
    async def test_recommendations(self, client):
        data = await (await client.get("/providers/recommendations?goal=cost_optimization")).json()
        assert [p["id"] for p in data] == ["free_vision"]

    @pytest.mark.asyncio
    async def test_set_model(self, client, service):
        resp = await client.put("/providers/paid_vision/model", json={"model": "m2"})
        assert resp.status == 200
        assert service.get_selected_model("paid_vision") == "m2"

        resp = await client.put("/providers/paid_vision/model", json={"model": "m9"})
        assert (await resp.json())["code"] == "unsupported_model"
        resp = await client.put("/providers/nope/model", json={"model": "m1"})
        assert resp.status == 404
        resp = await client.put("/providers/paid_vision/model", json={})
        assert (await resp.json())["code"] == "missing_model"


class TestErrors:
    @pytest.mark.asyncio
    async def test_recent_reports(self, client, service):
        for i in range(3):
            service.reporter.report("provider_failed", f"failure {i}", component="test")
        data = await (await client.get("/errors?limit=2")).json()
        assert [r["message"] for r in data] == ["failure 1", "failure 2"]


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_missing_frame_yields_fallback(self, client, tmp_path):
        resp = await client.post(
            "/analyze",
            json={"frames": [{"path": str(tmp_path / "gone.png"), "index": 7, "timestamp": 3.5}]},
        )
        assert resp.status == 200
        results = await resp.json()
        assert results[0]["frame_index"] == 7
        assert results[0]["is_fallback"] is True
        assert results[0]["provider"] == "fallback"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, code",
        [
            ({}, "missing_frames"),
            ({"frames": []}, "missing_frames"),
            ({"frames": [{"index": 0}]}, "invalid_frames"),
            ({"frames": ["a.png"]}, "invalid_frames"),
            ({"frames": [{"path": "a.png"}], "options": {"max_retries": "many"}}, "invalid_options"),
        ],
    )
    async def test_validation(self, client, body, code):
        resp = await client.post("/analyze", json=body)
        assert resp.status == 400
        assert (await resp.json())["code"] == code


class TestAuth:
    @pytest.mark.asyncio
    async def test_rejects_missing_token(self, authed_client):
        resp = await authed_client.get("/budget")
        assert resp.status == 401
        assert (await resp.json())["code"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_accepts_bearer_token(self, authed_client):
        resp = await authed_client.get("/budget", headers={"Authorization": "Bearer s3cret"})
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_preflight_skips_auth(self, authed_client):
        resp = await authed_client.options("/budget")
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
