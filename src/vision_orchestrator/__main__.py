"""CLI entry point for Vision Orchestrator."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from . import __version__
from .exceptions import ConfigError, VisionOrchestratorError

logger = logging.getLogger("vision-orchestrator")


# ── Helpers ──────────────────────────────────────────────


def _configure_logging(verbose: bool) -> None:
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(log_format, datefmt="%Y-%m-%d %H:%M:%S"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        handlers=[console],
        force=True,
    )
    for noisy in ("aiohttp.access", "httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _service(ctx: click.Context):
    """Build the VisionService for this invocation (once)."""
    from .config import load_config
    from .service import VisionService

    obj = ctx.ensure_object(dict)
    if "service" not in obj:
        try:
            config = load_config(obj.get("config_path"))
        except ConfigError as e:
            raise click.ClickException(str(e))
        obj["config"] = config
        obj["service"] = VisionService.from_config(config)
    return obj["service"]


def _money(value: float) -> str:
    return f"${value:,.4f}"


# ── Root group ───────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="vision-orchestrator")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Vision Orchestrator: route screen frames across AI vision services."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)["config_path"] = config_path


@main.command()
@click.option("--host", default=None, help="Override API host")
@click.option("--port", default=None, type=int, help="Override API port")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    from aiohttp import web

    from .api import create_api_routes

    service = _service(ctx)
    config = ctx.obj["config"]
    host = host or config.api.host
    port = port or config.api.port

    app = create_api_routes(service, config.api.auth_token)
    click.echo(f"Vision Orchestrator API: http://{host}:{port}")
    if config.api.auth_token:
        click.echo("  Authorization: Bearer <api.auth_token>")
    web.run_app(app, host=host, port=port, print=None)


# ── Credentials ──────────────────────────────────────────


@main.group()
def keys() -> None:
    """Manage API credentials."""


@keys.command("add")
@click.argument("service_name")
@click.argument("secret")
@click.option("--name", default="", help="Display name")
@click.option(
    "--tier",
    type=click.Choice(["free", "trial", "paid"]),
    default="free",
    show_default=True,
)
@click.option("--daily-limit", type=int, default=None, help="Requests per day")
@click.pass_context
def keys_add(
    ctx: click.Context,
    service_name: str,
    secret: str,
    name: str,
    tier: str,
    daily_limit: int | None,
) -> None:
    """Register SECRET as a credential for SERVICE_NAME."""
    service = _service(ctx)
    try:
        cred_id = service.add_credential(
            service_name, secret, name=name, tier=tier, daily_limit=daily_limit
        )
    except (ValueError, VisionOrchestratorError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Added {cred_id}")


@keys.command("remove")
@click.argument("cred_id")
@click.pass_context
def keys_remove(ctx: click.Context, cred_id: str) -> None:
    """Remove credential CRED_ID."""
    if not _service(ctx).remove_credential(cred_id):
        raise click.ClickException(f"No credential '{cred_id}'")
    click.echo(f"Removed {cred_id}")


@keys.command("list")
@click.argument("service_name", required=False)
@click.pass_context
def keys_list(ctx: click.Context, service_name: str | None) -> None:
    """Show credential status, optionally for one service."""
    statuses = _service(ctx).get_credential_status(service_name)
    if not statuses:
        click.echo("No credentials registered.")
        return
    for s in statuses:
        if not s.is_active:
            state = click.style("disabled", fg="red")
        elif s.is_expired:
            state = click.style("expired", fg="red")
        elif s.is_rate_limited:
            state = click.style("rate-limited", fg="yellow")
        elif s.is_daily_limit_exceeded:
            state = click.style("quota used", fg="yellow")
        else:
            state = click.style("ready", fg="green")
        limit = "unlimited" if s.daily_limit is None else str(s.daily_limit)
        click.echo(
            f"  {s.id}  {s.service:<12} {s.name:<20} {s.secret_preview:<14} "
            f"{s.usage_count}/{limit}  {state}"
        )


# ── Providers, usage, budget ─────────────────────────────


@main.command()
@click.option("--goal", default="", help="cost_optimization, quality_focused, ...")
@click.option("--refresh", is_flag=True, help="Probe availability first")
@click.pass_context
def providers(ctx: click.Context, goal: str, refresh: bool) -> None:
    """List the provider catalog."""
    service = _service(ctx)
    if refresh:
        asyncio.run(_refresh_and_close(service))
    for d in service.get_recommendations(goal):
        flag = (
            click.style("up", fg="green") if d.available else click.style("down", fg="red")
        )
        cost = "free" if d.is_free else _money(d.cost_per_request)
        click.echo(
            f"  {d.id:<30} {d.tier.value:<12} q={d.quality_score:<4} "
            f"{d.avg_response_time_ms:>5}ms  {cost:<10} {flag}"
        )


async def _refresh_and_close(service) -> None:
    try:
        await service.refresh_availability()
    finally:
        await service.probe.close()


@main.command()
@click.option("--reset", is_flag=True, help="Reset daily counters")
@click.pass_context
def usage(ctx: click.Context, reset: bool) -> None:
    """Show per-provider usage."""
    service = _service(ctx)
    if reset:
        service.reset_daily_usage()
        click.echo("Daily usage reset.")
        return
    records = [r for r in service.get_usage_statistics().values() if r.request_count]
    if not records:
        click.echo("No provider calls recorded yet.")
        return
    for r in sorted(records, key=lambda r: -r.request_count):
        click.echo(
            f"  {r.provider_id:<30} {r.success_count}/{r.request_count} ok  "
            f"{r.rate_limit_hits} rate-limited  {r.avg_response_time_ms:.0f}ms  "
            f"{_money(r.total_cost)}"
        )


@main.command()
@click.option("--set", "monthly", type=float, default=None, help="New monthly cap")
@click.option(
    "--mode",
    type=click.Choice(["free_only", "hybrid", "premium_preferred"]),
    default=None,
    help="Provider mode",
)
@click.pass_context
def budget(ctx: click.Context, monthly: float | None, mode: str | None) -> None:
    """Show (or change) the monthly budget and provider mode."""
    service = _service(ctx)
    changes: dict = {}
    if monthly is not None:
        changes["max_monthly_budget"] = monthly
    if mode is not None:
        changes["mode"] = mode
    if changes:
        try:
            service.update_preferences(**changes)
        except VisionOrchestratorError as e:
            raise click.ClickException(str(e))

    state = service.get_budget_status()
    prefs = service.get_preferences()
    click.echo(f"Mode:       {prefs.mode.value}")
    click.echo(f"Month:      {state.current_month}")
    click.echo(f"Budget:     {_money(state.monthly_budget)}")
    click.echo(f"Spent:      {_money(state.current_spend)}")
    click.echo(f"Remaining:  {_money(state.remaining_budget)}")
    click.echo(f"Projected:  {_money(state.projected_monthly_spend)}")


# ── Analysis ─────────────────────────────────────────────


@main.command()
@click.argument("frames", nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    "--use-case",
    type=click.Choice(["ocr", "document", "ui", "scene", "object"]),
    default=None,
)
@click.option("--prompt", default="", help="Custom prompt")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def analyze(
    ctx: click.Context,
    frames: tuple[str, ...],
    use_case: str | None,
    prompt: str,
    as_json: bool,
) -> None:
    """Analyze image FRAMES in order."""
    from .frames import FrameRef

    service = _service(ctx)
    options = service.options.model_copy(
        update={"use_case": use_case, "custom_prompt": prompt}
    )
    refs = [FrameRef(path=str(Path(p)), index=i) for i, p in enumerate(frames)]

    async def _run():
        try:
            await service.refresh_availability()
            return await service.analyze_frames(refs, options)
        finally:
            await service.close()

    results = asyncio.run(_run())
    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in results], indent=2))
        return
    for r in results:
        if r.is_fallback:
            click.echo(click.style(f"[{r.frame_index}] no provider succeeded", fg="red"))
            continue
        click.echo(
            f"[{r.frame_index}] {r.provider} ({r.confidence:.2f}, "
            f"{r.processing_time_ms:.0f}ms): {r.description[:100]}"
        )


if __name__ == "__main__":
    main()
