"""HTTP API: the RPC surface the application shell calls.

Endpoints:
    GET    /                               API overview
    GET    /credentials                    Status of every credential
    GET    /credentials/{service}          Status of one service's credentials
    POST   /credentials                    Register a credential
    DELETE /credentials/{cred_id}          Remove a credential
    PUT    /credentials/{cred_id}/active   Enable / disable a credential
    GET    /usage                          Per-provider usage records
    POST   /usage/reset                    Reset daily usage counters
    GET    /budget                         Monthly budget state
    GET    /preferences                    Current preferences
    PUT    /preferences                    Partial preference update
    GET    /providers                      Provider catalog
    GET    /providers/recommendations      Providers for ?goal=
    PUT    /providers/{provider_id}/model  Pick a provider's model
    GET    /errors                         Recent error reports
    POST   /analyze                        Analyze a list of frames
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from aiohttp import web

from .config import AnalysisOptions
from .exceptions import ConfigError, PersistenceError
from .frames import FrameRef
from .service import VisionService

logger = logging.getLogger("vision-orchestrator")


def _json_error(status: int, code: str, message: str) -> web.Response:
    """Consistent JSON error payload."""
    return web.json_response({"code": code, "message": message}, status=status)


def _parse_int(value: str, *, default: int, minimum: int | None = None) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None:
        parsed = max(parsed, minimum)
    return parsed


async def _read_json(request: web.Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def create_api_routes(
    service: VisionService, auth_token: str = "", manage_lifecycle: bool = True
) -> web.Application:
    """Create the aiohttp app.

    Args:
        service: The wired VisionService all handlers delegate to.
        auth_token: Bearer token required on every request (empty = no auth).
        manage_lifecycle: Start the service (daily reset schedule, first
            availability probe) on app startup and close it on cleanup.
    """
    routes = web.RouteTableDef()

    @routes.get("/")
    async def index(request: web.Request) -> web.Response:
        return web.json_response(
            {
                "name": "vision-orchestrator",
                "description": "Vision provider orchestration API",
                "providers": len(service.catalog),
                "credentials": len(service.pool),
                "credential_services": service.pool.services(),
                "endpoints": {
                    "GET /credentials": "Status of every credential",
                    "GET /credentials/{service}": "Status of one service's credentials",
                    "POST /credentials": "Register a credential",
                    "DELETE /credentials/{cred_id}": "Remove a credential",
                    "PUT /credentials/{cred_id}/active": "Enable or disable a credential",
                    "GET /usage": "Per-provider usage records",
                    "POST /usage/reset": "Reset daily usage counters",
                    "GET /budget": "Monthly budget state",
                    "GET /preferences": "Current preferences",
                    "PUT /preferences": "Partial preference update",
                    "GET /providers": "Provider catalog",
                    "GET /providers/recommendations": "Providers for ?goal=",
                    "PUT /providers/{provider_id}/model": "Pick a provider's model",
                    "GET /errors": "Recent error reports",
                    "POST /analyze": "Analyze a list of frames",
                },
            }
        )

    # ── Credentials ─────────────────────────────────────

    @routes.get("/credentials")
    @routes.get("/credentials/{service}")
    async def list_credentials(request: web.Request) -> web.Response:
        name = request.match_info.get("service")
        statuses = service.get_credential_status(name)
        return web.json_response([s.model_dump(mode="json") for s in statuses])

    @routes.post("/credentials")
    async def add_credential(request: web.Request) -> web.Response:
        """Register a credential.

        JSON body: {service, secret, name?, tier?, daily_limit?, expires_at?, region?}
        """
        body = await _read_json(request)
        if body is None:
            return _json_error(400, "invalid_json", "Request body must be a JSON object")

        svc = str(body.get("service", "")).strip()
        secret = str(body.get("secret", "")).strip()
        if not svc or not secret:
            return _json_error(
                400, "missing_fields", "Both 'service' and 'secret' are required"
            )

        expires_at = None
        if body.get("expires_at"):
            try:
                expires_at = datetime.fromisoformat(str(body["expires_at"]))
            except ValueError:
                return _json_error(400, "invalid_expiry", "expires_at must be ISO 8601")

        daily_limit = body.get("daily_limit")
        if daily_limit is not None and not isinstance(daily_limit, int):
            return _json_error(400, "invalid_limit", "daily_limit must be an integer")

        try:
            cred_id = service.add_credential(
                svc,
                secret,
                name=str(body.get("name", "")),
                tier=body.get("tier", "free"),
                daily_limit=daily_limit,
                expires_at=expires_at,
                region=body.get("region"),
            )
        except ValueError as e:
            return _json_error(400, "invalid_credential", str(e))
        except PersistenceError as e:
            return _json_error(500, "persistence_failed", str(e))
        return web.json_response({"id": cred_id}, status=201)

    @routes.delete("/credentials/{cred_id}")
    async def remove_credential(request: web.Request) -> web.Response:
        cred_id = request.match_info["cred_id"]
        try:
            removed = service.remove_credential(cred_id)
        except PersistenceError as e:
            return _json_error(500, "persistence_failed", str(e))
        if not removed:
            return _json_error(
                404, "credential_not_found", f"Credential '{cred_id}' not found"
            )
        return web.json_response({"deleted": cred_id})

    @routes.put("/credentials/{cred_id}/active")
    async def set_credential_active(request: web.Request) -> web.Response:
        """JSON body: {active: bool}"""
        cred_id = request.match_info["cred_id"]
        body = await _read_json(request)
        if body is None or not isinstance(body.get("active"), bool):
            return _json_error(400, "invalid_body", "Body must be {\"active\": true|false}")
        try:
            found = service.set_credential_active(cred_id, body["active"])
        except PersistenceError as e:
            return _json_error(500, "persistence_failed", str(e))
        if not found:
            return _json_error(
                404, "credential_not_found", f"Credential '{cred_id}' not found"
            )
        return web.json_response({"id": cred_id, "active": body["active"]})

    # ── Usage, budget, preferences ──────────────────────

    @routes.get("/usage")
    async def usage(request: web.Request) -> web.Response:
        stats = service.get_usage_statistics()
        return web.json_response(
            {pid: r.model_dump(mode="json") for pid, r in stats.items()}
        )

    @routes.post("/usage/reset")
    async def reset_usage(request: web.Request) -> web.Response:
        try:
            service.reset_daily_usage()
        except PersistenceError as e:
            return _json_error(500, "persistence_failed", str(e))
        return web.json_response({"status": "reset"})

    @routes.get("/budget")
    async def budget(request: web.Request) -> web.Response:
        return web.json_response(service.get_budget_status().model_dump(mode="json"))

    @routes.get("/preferences")
    async def get_preferences(request: web.Request) -> web.Response:
        return web.json_response(service.get_preferences().model_dump(mode="json"))

    @routes.put("/preferences")
    async def update_preferences(request: web.Request) -> web.Response:
        body = await _read_json(request)
        if body is None:
            return _json_error(400, "invalid_json", "Request body must be a JSON object")
        try:
            prefs = service.update_preferences(**body)
        except ConfigError as e:
            return _json_error(400, "invalid_preferences", str(e))
        except PersistenceError as e:
            return _json_error(500, "persistence_failed", str(e))
        return web.json_response(prefs.model_dump(mode="json"))

    # ── Providers ───────────────────────────────────────

    @routes.get("/providers")
    async def providers(request: web.Request) -> web.Response:
        return web.json_response(
            [
                {
                    **d.model_dump(mode="json"),
                    "selected_model": service.get_selected_model(d.id),
                }
                for d in service.get_catalog()
            ]
        )

    @routes.get("/providers/recommendations")
    async def recommendations(request: web.Request) -> web.Response:
        goal = request.query.get("goal", "").strip()
        return web.json_response(
            [
                {
                    "id": d.id,
                    "name": d.name,
                    "quality_score": d.quality_score,
                    "cost_per_request": d.cost_per_request,
                }
                for d in service.get_recommendations(goal)
            ]
        )

    @routes.put("/providers/{provider_id}/model")
    async def set_model(request: web.Request) -> web.Response:
        """JSON body: {model: str}"""
        provider_id = request.match_info["provider_id"]
        body = await _read_json(request)
        if body is None or not body.get("model"):
            return _json_error(400, "missing_model", "'model' is required")
        if provider_id not in service.catalog:
            return _json_error(
                404, "provider_not_found", f"Provider '{provider_id}' not found"
            )
        try:
            service.set_selected_model(provider_id, str(body["model"]))
        except ConfigError as e:
            return _json_error(400, "unsupported_model", str(e))
        return web.json_response({"id": provider_id, "model": body["model"]})

    @routes.get("/errors")
    async def errors(request: web.Request) -> web.Response:
        limit = _parse_int(request.query.get("limit", "50"), default=50, minimum=1)
        return web.json_response(
            [r.model_dump(mode="json") for r in service.reporter.recent(limit)]
        )

    # ── Analysis ────────────────────────────────────────

    @routes.post("/analyze")
    async def analyze(request: web.Request) -> web.Response:
        """Analyze frames already written to disk.

        JSON body: {frames: [{path, index, timestamp?}], options?: {...}}
        """
        body = await _read_json(request)
        if body is None:
            return _json_error(400, "invalid_json", "Request body must be a JSON object")
        raw_frames = body.get("frames")
        if not isinstance(raw_frames, list) or not raw_frames:
            return _json_error(400, "missing_frames", "'frames' must be a non-empty list")

        try:
            frames = [
                FrameRef(
                    path=str(f["path"]),
                    index=int(f.get("index", i)),
                    timestamp=float(f.get("timestamp", 0.0)),
                )
                for i, f in enumerate(raw_frames)
            ]
        except (KeyError, TypeError, ValueError, AttributeError):
            return _json_error(
                400, "invalid_frames", "Each frame needs a 'path' and numeric index"
            )

        try:
            options = AnalysisOptions(
                **{**service.options.model_dump(), **(body.get("options") or {})}
            )
        except (TypeError, ValueError) as e:
            return _json_error(400, "invalid_options", str(e))

        results = await service.analyze_frames(frames, options)
        return web.json_response([r.model_dump(mode="json") for r in results])

    # ── Auth middleware ─────────────────────────────────

    @web.middleware
    async def auth_middleware(
        request: web.Request,
        handler: Any,
    ) -> web.Response:
        """Optional bearer token authentication."""
        if not auth_token or request.method == "OPTIONS":
            return await handler(request)
        if request.headers.get("Authorization", "") == f"Bearer {auth_token}":
            return await handler(request)
        return _json_error(401, "unauthorized", "Invalid or missing auth token")

    # ── CORS middleware ─────────────────────────────────

    @web.middleware
    async def cors_middleware(
        request: web.Request,
        handler: Any,
    ) -> web.Response:
        if request.method == "OPTIONS":
            resp = web.Response()
        else:
            resp = await handler(request)
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = "*, Authorization"
        return resp

    async def _start_service(app: web.Application) -> None:
        await service.start()

    async def _stop_service(app: web.Application) -> None:
        await service.close()

    app = web.Application(middlewares=[auth_middleware, cors_middleware])
    app.add_routes(routes)
    if manage_lifecycle:
        app.on_startup.append(_start_service)
        app.on_cleanup.append(_stop_service)
    return app
