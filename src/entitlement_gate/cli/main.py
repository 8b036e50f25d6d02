"""entitlement-gate CLI: command-line interface for the gating engine.

Commands:
    resolve             Resolve trial/plan entitlement for a user snapshot
    check-access        Decide what happens when a user opens a path
    milestone           Show the expiry reminder that would fire now
    maintenance check   Evaluate a maintenance config for a tier/role
    maintenance status  Fetch maintenance status from the backend
    watch               Poll the backend and print toasts and reminders
    serve               Run the maintenance service
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError

from entitlement_gate import __version__
from entitlement_gate.access.policy import (
    DEFAULT_PAGE_POLICY,
    PagePolicy,
    PagePolicyError,
    evaluate_route,
    load_page_policy,
)
from entitlement_gate.api.client import BackendClient, BackendError
from entitlement_gate.clock import utc_now
from entitlement_gate.config import GateConfig, load_config
from entitlement_gate.entitlement.resolver import resolve_entitlement
from entitlement_gate.events.bus import UIEvent
from entitlement_gate.maintenance.gate import is_affected, parse_status
from entitlement_gate.milestones.tracker import next_milestone
from entitlement_gate.models import (
    MaintenanceConfig,
    MaintenanceStatus,
    RouteOutcome,
    UserSnapshot,
    ensure_utc,
)
from entitlement_gate.sdk.client import EntitlementGate
from entitlement_gate.sync.poller import Poller


def _resolve_cfg() -> GateConfig:
    """Load config from entitlement-gate.yaml (auto-discover, never error)."""
    try:
        return load_config().with_env_overrides()
    except Exception:
        return GateConfig().with_env_overrides()


def _or(explicit: Any, cfg_val: Any, fallback: Any = None) -> Any:
    """Return first non-None value: explicit CLI flag > config > fallback."""
    if explicit is not None:
        return explicit
    if cfg_val is not None:
        return cfg_val
    return fallback


def _parse_ts(value: str | None, name: str) -> datetime | None:
    if value is None:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        click.echo(f"Error: {name} must be an ISO-8601 timestamp, got: {value}", err=True)
        sys.exit(1)


def _read_mapping(path: str) -> dict[str, Any]:
    """Read a JSON or YAML mapping from *path*."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        click.echo(f"Error: could not parse {path}: {e}", err=True)
        sys.exit(1)
    if not isinstance(data, dict):
        click.echo(f"Error: {path} must contain a mapping", err=True)
        sys.exit(1)
    return data


def _snapshot_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that builds a user snapshot."""
    options = [
        click.option("--user-file", default=None, type=click.Path(exists=True),
                     help="JSON/YAML user snapshot (camelCase or snake_case keys)"),
        click.option("--plan", default=None, help="Plan tier (none/free/silver/gold)"),
        click.option("--role", default=None, help="User role (user/admin/superadmin)"),
        click.option("--created-at", default=None, help="Account creation time (ISO-8601)"),
        click.option("--plan-activated-at", default=None,
                     help="Paid plan activation time (ISO-8601)"),
        click.option("--days-remaining", default=None, type=int,
                     help="Subscription days remaining reported by billing"),
        click.option("--end-date", default=None, help="Subscription end date (ISO-8601)"),
        click.option("--now", default=None, help="Evaluate at this time (ISO-8601)"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _build_snapshot(
    user_file: str | None,
    plan: str | None,
    role: str | None,
    created_at: str | None,
    plan_activated_at: str | None,
    days_remaining: int | None,
    end_date: str | None,
) -> UserSnapshot:
    data: dict[str, Any] = {}
    if user_file:
        try:
            # Round-trip so file keys (camelCase or snake_case) match the overrides.
            data = UserSnapshot.model_validate(_read_mapping(user_file)).model_dump(
                exclude_none=True,
            )
        except ValidationError as e:
            click.echo(f"Error: invalid user snapshot: {e}", err=True)
            sys.exit(1)
    overrides: dict[str, Any] = {
        "plan": plan,
        "role": role,
        "created_at": _parse_ts(created_at, "--created-at"),
        "plan_activated_at": _parse_ts(plan_activated_at, "--plan-activated-at"),
    }
    data.update({k: v for k, v in overrides.items() if v is not None})

    if days_remaining is not None or end_date is not None:
        sub = dict(data.get("subscription") or {})
        if days_remaining is not None:
            sub["days_remaining"] = days_remaining
        if end_date is not None:
            sub["end_date"] = _parse_ts(end_date, "--end-date")
        data["subscription"] = sub

    try:
        return UserSnapshot.model_validate(data)
    except ValidationError as e:
        click.echo(f"Error: invalid user snapshot: {e}", err=True)
        sys.exit(1)


def _load_policy(policy_path: str | None) -> PagePolicy:
    if policy_path is None:
        return DEFAULT_PAGE_POLICY
    try:
        return load_page_policy(policy_path)
    except PagePolicyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _outcome_badge(outcome: RouteOutcome) -> str:
    colors = {
        RouteOutcome.ALLOW: "green",
        RouteOutcome.UPGRADE_REQUIRED: "yellow",
        RouteOutcome.NOT_PERMITTED: "yellow",
        RouteOutcome.TRIAL_EXPIRED: "red",
        RouteOutcome.MAINTENANCE: "magenta",
    }
    return click.style(outcome.value.upper(), fg=colors.get(outcome, "white"), bold=True)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING...)")
def cli(log_level: str | None) -> None:
    """entitlement-gate: trial, plan and maintenance gating."""
    cfg = _resolve_cfg()
    level = _or(log_level, cfg.log_level, "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# --- resolve command ---


@cli.command()
@_snapshot_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def resolve(
    user_file: str | None,
    plan: str | None,
    role: str | None,
    created_at: str | None,
    plan_activated_at: str | None,
    days_remaining: int | None,
    end_date: str | None,
    now: str | None,
    json_output: bool,
) -> None:
    """Resolve trial/plan entitlement for a user snapshot."""
    user = _build_snapshot(
        user_file, plan, role, created_at, plan_activated_at, days_remaining, end_date,
    )
    ent = resolve_entitlement(user, _parse_ts(now, "--now") or utc_now())

    if json_output:
        data = ent.model_dump(mode="json")
        data["plan_title"] = ent.plan_title
        data["days_expired"] = ent.days_expired
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"Plan:            {ent.plan_title} ({ent.tier.value})")
    if ent.has_paid_plan:
        click.echo(f"Days remaining:  {ent.days_remaining}")
    else:
        status = click.style("EXPIRED", fg="red", bold=True) if ent.is_expired else "active"
        click.echo(f"Trial:           {status}")
        click.echo(f"Days remaining:  {ent.days_remaining} ({ent.percent_remaining}%)")
        click.echo(f"Days used:       {ent.days_used}")
        if ent.days_expired:
            click.echo(f"Expired for:     {ent.days_expired} day(s)")


# --- check-access command ---


@cli.command("check-access")
@click.argument("path")
@_snapshot_options
@click.option("--page-policy", default=None, help="Path to a page policy YAML override")
@click.option("--maintenance", "maintenance_affected", is_flag=True,
              help="Treat the user as blocked by maintenance")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def check_access(
    path: str,
    user_file: str | None,
    plan: str | None,
    role: str | None,
    created_at: str | None,
    plan_activated_at: str | None,
    days_remaining: int | None,
    end_date: str | None,
    now: str | None,
    page_policy: str | None,
    maintenance_affected: bool,
    json_output: bool,
) -> None:
    """Decide what happens when a user opens PATH."""
    cfg = _resolve_cfg()
    policy = _load_policy(_or(page_policy, cfg.page_policy))
    user = _build_snapshot(
        user_file, plan, role, created_at, plan_activated_at, days_remaining, end_date,
    )
    ent = resolve_entitlement(user, _parse_ts(now, "--now") or utc_now())
    maintenance = MaintenanceStatus(is_affected=True, is_enabled=True) if maintenance_affected else None

    decision = evaluate_route(ent, path, maintenance, policy)

    if json_output:
        click.echo(json.dumps(decision.model_dump(mode="json"), indent=2))
        return

    click.echo(f"{_outcome_badge(decision.outcome)}  {decision.path}")
    click.echo(f"  {decision.reason}")


# --- milestone command ---


@cli.command()
@_snapshot_options
@click.option("--fired", multiple=True, help="Milestone id already announced (repeatable)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def milestone(
    user_file: str | None,
    plan: str | None,
    role: str | None,
    created_at: str | None,
    plan_activated_at: str | None,
    days_remaining: int | None,
    end_date: str | None,
    now: str | None,
    fired: tuple[str, ...],
    json_output: bool,
) -> None:
    """Show the expiry reminder that would fire now."""
    user = _build_snapshot(
        user_file, plan, role, created_at, plan_activated_at, days_remaining, end_date,
    )
    at = _parse_ts(now, "--now") or utc_now()
    event = next_milestone(resolve_entitlement(user, at), set(fired), now=at)

    if json_output:
        click.echo(json.dumps(event.model_dump(mode="json") if event else None, indent=2))
        return

    if event is None:
        click.echo("No milestone due.")
        return
    click.echo(f"{event.milestone_id}: {event.title}")
    click.echo(f"  {event.message}")


# --- maintenance commands ---


@cli.group()
def maintenance() -> None:
    """Maintenance mode commands."""


@maintenance.command("check")
@click.argument("config_file", type=click.Path(exists=True))
@click.option("--tier", default="free", help="User plan tier")
@click.option("--role", default="user", help="User role")
@click.option("--anonymous", is_flag=True, help="Evaluate for a visitor who is not logged in")
def maintenance_check(config_file: str, tier: str, role: str, anonymous: bool) -> None:
    """Evaluate the maintenance config in CONFIG_FILE for a tier/role."""
    try:
        config = MaintenanceConfig.model_validate(_read_mapping(config_file))
    except ValidationError as e:
        click.echo(f"Error: invalid maintenance config: {e}", err=True)
        sys.exit(1)

    affected = is_affected(config, tier, role, is_authenticated=not anonymous)
    who = "anonymous visitor" if anonymous else f"{role} on {tier}"
    if affected:
        click.echo(click.style("AFFECTED", fg="red", bold=True) + f"  {who}")
        click.echo(f"  {config.title}: {config.message}")
    else:
        click.echo(click.style("NOT AFFECTED", fg="green", bold=True) + f"  {who}")


@maintenance.command("status")
@click.option("--api-url", default=None, help="Backend base URL")
@click.option("--token", default=None, help="Bearer token (omit for the public status)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def maintenance_status(api_url: str | None, token: str | None, json_output: bool) -> None:
    """Fetch maintenance status from the backend."""
    cfg = _resolve_cfg()
    base_url = _or(api_url, cfg.api_base_url)
    if base_url is None:
        click.echo("Error: --api-url is required (or set api_base_url in config)", err=True)
        sys.exit(1)
    token = _or(token, cfg.token)

    client = BackendClient(base_url, token=token, timeout=cfg.request_timeout)
    try:
        payload = client.maintenance_check() if token else client.maintenance_status()
    except BackendError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    status = parse_status(payload, is_authenticated=bool(token))
    if json_output:
        click.echo(json.dumps(status.model_dump(mode="json"), indent=2))
        return

    state = "enabled" if status.is_enabled else "disabled"
    click.echo(f"Maintenance: {state}")
    click.echo(f"Affected:    {'yes' if status.is_affected else 'no'}")
    if status.is_enabled:
        click.echo(f"  {status.title}: {status.message}")


# --- watch command ---


@cli.command()
@click.option("--api-url", default=None, help="Backend base URL")
@click.option("--token", default=None, help="Bearer token")
@click.option("--user-file", required=True, type=click.Path(exists=True),
              help="JSON/YAML user snapshot for the session")
@click.option("--unread-interval", default=None, type=float, help="Seconds between unread polls")
@click.option("--maintenance-interval", default=None, type=float,
              help="Seconds between maintenance polls")
def watch(
    api_url: str | None,
    token: str | None,
    user_file: str,
    unread_interval: float | None,
    maintenance_interval: float | None,
) -> None:
    """Poll the backend and print toasts and reminders until interrupted."""
    cfg = _resolve_cfg()
    base_url = _or(api_url, cfg.api_base_url)
    if base_url is None:
        click.echo("Error: --api-url is required (or set api_base_url in config)", err=True)
        sys.exit(1)

    try:
        user = UserSnapshot.model_validate(_read_mapping(user_file))
    except ValidationError as e:
        click.echo(f"Error: invalid user snapshot: {e}", err=True)
        sys.exit(1)

    client = BackendClient(base_url, token=_or(token, cfg.token), timeout=cfg.request_timeout)
    gate = EntitlementGate(
        user=user,
        client=client,
        page_policy=_load_policy(cfg.page_policy),
    )
    gate.bus.subscribe(
        UIEvent.TOAST,
        lambda toast: click.echo(f"[{toast.level}] {toast.title}: {toast.message}"),
    )
    gate.bus.subscribe(
        UIEvent.MILESTONE,
        lambda event: click.echo(f"[billing] {event.title}: {event.message}"),
    )
    gate.bus.subscribe(
        UIEvent.MAINTENANCE_CHANGED,
        lambda status: click.echo(
            f"[maintenance] {'blocked' if status.is_affected else 'cleared'}: {status.title}",
        ),
    )

    poller = Poller(
        gate,
        unread_interval=_or(unread_interval, cfg.unread_interval),
        maintenance_interval=_or(maintenance_interval, cfg.maintenance_interval),
    )

    async def _run() -> None:
        async with poller:
            await asyncio.Event().wait()

    click.echo(f"Watching {base_url} (Ctrl-C to stop)")
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("Stopped.")


# --- serve command ---


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8430, type=int, help="Port number")
@click.option("--dev", is_flag=True, help="Enable CORS for a local frontend dev server")
def serve(host: str, port: int, dev: bool) -> None:
    """Run the maintenance service."""
    try:
        import uvicorn
    except ImportError:
        click.echo(
            "The service requires extra dependencies. Install with:\n"
            "  pip install entitlement-gate[server]",
            err=True,
        )
        sys.exit(1)

    from entitlement_gate.server.app import create_app
    from entitlement_gate.server.config import ServerConfig

    config = ServerConfig.from_env()
    config.host = host
    config.port = port
    config.dev_mode = dev or config.dev_mode

    if not config.signing_key:
        click.echo(
            "Error: set ENTITLEMENT_GATE_SERVER_SIGNING_KEY to verify bearer tokens",
            err=True,
        )
        sys.exit(1)

    app = create_app(config)
    click.echo(f"entitlement-gate maintenance service: http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")
