"""
wellwell: CLI entrypoint.

Usage:
    wellwell --help
    wellwell plan
    wellwell apply core:paths shell:zshrc
    wellwell status --detailed --json
    wellwell theme nord
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from wellwell import __version__
from wellwell.core.config.loader import ConfigError, load_settings
from wellwell.core.engine.executor import Engine, EngineHooks, ModuleMessage
from wellwell.core.engine.graph import GraphError
from wellwell.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    ENV_LOG_LEVEL,
    resolve_level,
    setup_logging,
)
from wellwell.core.persistence.audit import AuditWriter
from wellwell.core.persistence.state_file import JsonFileStateStore, default_state_path

EXIT_FAILED = 1
EXIT_GRAPH_ERROR = 2

_STATUS_STYLE = {
    "applied": ("✓", "green"),
    "stale": ("●", "yellow"),
    "pending": ("…", "cyan"),
    "skipped": ("⊘", "white"),
    "failed": ("✗", "red"),
}


@click.group()
@click.version_option(version=__version__, prog_name="wellwell")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: ~/.wellwell/config.yml).",
)
@click.option(
    "--state-file",
    type=click.Path(exists=False),
    default=None,
    help="Path to the state file (default: ~/.wellwell/state.json).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    state_file: str | None,
) -> None:
    """wellwell: reconcile your workstation with its declared configuration."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    try:
        settings = load_settings(Path(config_path) if config_path else None)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_FAILED)
    ctx.obj["settings"] = settings
    ctx.obj["state_file"] = Path(state_file) if state_file else None

    # ── Logging setup (once, at process start) ──────────────────
    flag = "DEBUG" if debug else "INFO" if verbose else "ERROR" if quiet else None
    setup_logging(
        level=resolve_level(flag, os.environ.get(ENV_LOG_LEVEL), settings.log_level),
        log_file=os.environ.get(ENV_LOG_FILE) or settings.log_file,
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


def _state_path(ctx: click.Context) -> Path:
    settings = ctx.obj["settings"]
    return ctx.obj.get("state_file") or settings.state_file or default_state_path()


def _build_engine(ctx: click.Context, hooks: EngineHooks | None = None) -> Engine:
    """Engine wired from settings, with the default (or injected) units."""
    settings = ctx.obj["settings"]
    state_path = _state_path(ctx)
    audit = AuditWriter(settings.audit_file) if settings.audit_file else None

    engine = Engine(
        JsonFileStateStore(state_path),
        platform=settings.platform,
        home_dir=ctx.obj.get("home_dir"),
        hooks=hooks,
        audit=audit,
    )

    units_factory = ctx.obj.get("units_factory")
    if units_factory is None:
        from wellwell.units.defaults import default_units as units_factory

    try:
        engine.register_all(units_factory())
    except GraphError as e:
        _graph_error(e)
    return engine


def _graph_error(error: GraphError) -> None:
    click.secho(f"❌ {error}", fg="red", err=True)
    sys.exit(EXIT_GRAPH_ERROR)


def _ids(unit_ids: tuple[str, ...]) -> list[str] | None:
    return list(unit_ids) if unit_ids else None


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def units(ctx: click.Context, as_json: bool) -> None:
    """List registered units in execution order."""
    engine = _build_engine(ctx)
    try:
        order = engine.order()
    except GraphError as e:
        _graph_error(e)
        return

    if as_json:
        data = [
            {
                "id": unit_id,
                "description": engine.get(unit_id).description,
                "depends_on": list(engine.get(unit_id).depends_on),
            }
            for unit_id in order
        ]
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"\n📦 Units: {len(order)}", fg="cyan", bold=True)
    for unit_id in order:
        unit = engine.get(unit_id)
        deps = f"  ← {', '.join(unit.depends_on)}" if unit.depends_on else ""
        click.echo(f"   • {unit_id}{deps}")
        if ctx.obj.get("verbose") and unit.description:
            click.echo(f"     {unit.description}")
    click.echo()


@cli.command()
@click.argument("unit_ids", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, unit_ids: tuple[str, ...], as_json: bool) -> None:
    """Show what apply would change."""
    engine = _build_engine(ctx)
    try:
        plans = engine.plan(_ids(unit_ids))
    except GraphError as e:
        _graph_error(e)
        return

    if as_json:
        click.echo(json.dumps({k: p.model_dump(mode="json") for k, p in plans.items()}, indent=2))
        return

    pending = sum(1 for p in plans.values() if p.has_changes)
    click.secho(f"\n📋 Plan: {pending} of {len(plans)} units have changes", fg="cyan", bold=True)
    for unit_id, result in plans.items():
        if result.error:
            click.secho(f"   ✗ {unit_id}", fg="red", nl=False)
            click.echo(f"  ({result.error})")
        elif result.has_changes:
            click.secho(f"   ● {unit_id}", fg="yellow")
            for change in result.changes:
                click.echo(f"     │ {change.summary}")
        elif not ctx.obj.get("quiet"):
            click.secho(f"   ✓ {unit_id}", fg="green")
    click.echo()


@cli.command()
@click.argument("unit_ids", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(ctx: click.Context, unit_ids: tuple[str, ...], as_json: bool) -> None:
    """Apply units in dependency order."""
    hooks = EngineHooks()
    if not as_json and not ctx.obj.get("quiet"):
        def _echo_message(msg: ModuleMessage) -> None:
            click.echo(f"     │ {msg.id}: {msg.message}")
        hooks.on_module_message = _echo_message

    engine = _build_engine(ctx, hooks)
    try:
        summary = engine.run_apply(_ids(unit_ids))
    except GraphError as e:
        _graph_error(e)
        return

    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
        if not summary.all_ok:
            sys.exit(EXIT_FAILED)
        return

    click.secho(f"\n⚡ Apply {summary.run_id}", fg="cyan", bold=True)
    for unit_id, result in summary.results.items():
        if summary.is_skipped(unit_id):
            click.secho(f"   ⊘ {unit_id} ", fg="yellow", nl=False)
            click.echo(f"(skipped: {summary.skipped_by[unit_id]} failed)")
        elif result.success:
            marker = "changed" if result.changed else "unchanged"
            click.secho(f"   ✓ {unit_id} ", fg="green", nl=False)
            click.echo(f"({result.message or marker})")
        else:
            click.secho(f"   ✗ {unit_id} ", fg="red", nl=False)
            click.echo(f"({result.error or result.message})")

    click.echo()
    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(summary.status, "white")
    click.secho(f"   Result: {summary.status}", fg=status_color, bold=True, nl=False)
    click.echo(
        f"  ({summary.succeeded} ok, {summary.failed} failed, "
        f"{summary.skipped} skipped, {summary.duration_ms}ms)"
    )
    if summary.flush_error:
        click.secho(f"   ⚠️  State not saved: {summary.flush_error}", fg="yellow")
    click.echo()

    if not summary.all_ok:
        sys.exit(EXIT_FAILED)


@cli.command()
@click.argument("unit_ids", nargs=-1)
@click.option("--detailed", is_flag=True, help="Compare recorded and current state.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, unit_ids: tuple[str, ...], detailed: bool, as_json: bool) -> None:
    """Show whether each unit matches its declared state."""
    engine = _build_engine(ctx)
    try:
        if detailed:
            results = engine.detailed_statuses(_ids(unit_ids))
            statuses = {k: r.status for k, r in results.items()}
        else:
            results = {}
            statuses = engine.statuses(_ids(unit_ids))
    except GraphError as e:
        _graph_error(e)
        return

    if as_json:
        if detailed:
            data = {k: r.model_dump(mode="json") for k, r in results.items()}
        else:
            data = dict(statuses)
        click.echo(json.dumps(data, indent=2))
        return

    applied = sum(1 for s in statuses.values() if s == "applied")
    click.secho(f"\n🩺 Status: {applied}/{len(statuses)} applied", fg="cyan", bold=True)
    for unit_id, unit_status in statuses.items():
        symbol, color = _STATUS_STYLE.get(unit_status, ("?", "white"))
        click.secho(f"   {symbol} {unit_id} ", fg=color, nl=False)
        click.echo(f"[{unit_status}]")
        if detailed:
            result = results[unit_id]
            if result.message and unit_status != "applied":
                click.echo(f"     │ {result.message}")
            if result.details and ctx.obj.get("verbose"):
                for issue in result.details.issues + result.details.diff:
                    click.echo(f"     │ {issue}")
    click.echo()


@cli.command()
@click.argument("unit_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def details(ctx: click.Context, unit_id: str, as_json: bool) -> None:
    """Describe what a unit manages."""
    engine = _build_engine(ctx)
    try:
        lines = engine.details(unit_id)
    except GraphError as e:
        _graph_error(e)
        return

    unit = engine.get(unit_id)
    if as_json:
        click.echo(json.dumps({
            "id": unit.id,
            "description": unit.description,
            "depends_on": list(unit.depends_on),
            "details": lines,
        }, indent=2))
        return

    click.secho(f"\n🔎 {unit.id}", fg="cyan", bold=True)
    if unit.description:
        click.echo(f"   {unit.description}")
    for line in lines:
        click.echo(f"     │ {line}")
    click.echo()


@cli.command()
@click.argument("name", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def theme(ctx: click.Context, name: str | None, as_json: bool) -> None:
    """Show the active theme, or switch to NAME.

    Switching only records the choice. Themed configs report stale
    until the next apply.
    """
    from wellwell.units.themes import THEMES, UnknownThemeError, current_theme_name, switch_theme

    store = JsonFileStateStore(_state_path(ctx))
    previous = current_theme_name(store)
    if name:
        try:
            switch_theme(store, name)
        except UnknownThemeError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(EXIT_FAILED)
        try:
            store.flush()
        except OSError as e:
            click.secho(f"❌ Could not save theme: {e}", fg="red", err=True)
            sys.exit(EXIT_FAILED)
    active = current_theme_name(store)

    if as_json:
        click.echo(json.dumps({
            "current": active,
            "previous": previous,
            "available": [t.name for t in THEMES],
        }, indent=2))
        return

    if name and active != previous:
        click.secho(f"\n🎨 Theme switched: {previous} → {active}", fg="green", bold=True)
        click.echo("   Run `wellwell apply` to re-render themed configs.")
    else:
        click.secho(f"\n🎨 Theme: {active}", fg="cyan", bold=True)
    for t in THEMES:
        marker = "●" if t.name == active else " "
        click.echo(f"   {marker} {t.name:<16} {t.description}")
    click.echo()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
