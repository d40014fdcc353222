"""
App-config units: keep an application's config file equal to a rendered template.

The unit owns the whole file. Its content is rendered from a Jinja2
template with the platform, the home directory and, for themed configs,
the colors of the active base16 theme. The unit also contributes the
packages the application needs and any shell-init snippets.
"""

from __future__ import annotations

import difflib
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from wellwell.core.context import Context
from wellwell.core.models.contribution import PackageEntry, ShellInitEntry
from wellwell.core.models.results import ModuleResult, PlanResult, StatusDetails, StatusResult
from wellwell.core.models.unit import Unit
from wellwell.core.rendering import render_template
from wellwell.units.themes import current_theme, theme_context

logger = logging.getLogger(__name__)

THEMES_UNIT_ID = "themes:base16"


@dataclass(frozen=True)
class PackageDependency:
    name: str
    manager: str
    platforms: tuple[str, ...] | None = None


@dataclass(frozen=True)
class AppConfigSpec:
    """Declaration of one rendered config file."""

    unit_id: str
    config_dir: str                    # relative to the home directory
    config_file: str
    template: str
    description: str = ""
    platforms: tuple[str, ...] | None = None
    packages: tuple[PackageDependency, ...] = ()
    shell_init: Mapping[str, str] = field(default_factory=dict)
    themed: bool = True
    depends_on: tuple[str, ...] = (THEMES_UNIT_ID,)
    details: tuple[str, ...] = ()


def config_path(spec: AppConfigSpec, ctx: Context) -> Path:
    return ctx.home_dir / spec.config_dir / spec.config_file


def render_config(spec: AppConfigSpec, ctx: Context) -> str:
    """Desired file content for the current context."""
    variables = {"platform": ctx.platform, "home": str(ctx.home_dir)}
    if spec.themed:
        variables.update(theme_context(current_theme(ctx)))
    return render_template(spec.template, variables)


def line_diff(current: str, desired: str, name: str) -> list[str]:
    return [
        line.rstrip("\n")
        for line in difflib.unified_diff(
            current.splitlines(keepends=True),
            desired.splitlines(keepends=True),
            fromfile=f"{name} (current)",
            tofile=f"{name} (desired)",
        )
    ]


def _contribute(spec: AppConfigSpec, ctx: Context) -> int:
    store = ctx.contributions
    added = 0
    for dep in spec.packages:
        if dep.platforms is None or ctx.platform in dep.platforms:
            added += store.packages.add(PackageEntry(name=dep.name, manager=dep.manager), dep.platforms)
    for name, code in spec.shell_init.items():
        added += store.shell_init.add(ShellInitEntry(name=name, init_code=code))
    return added


def make_app_config_unit(spec: AppConfigSpec) -> Unit:
    """Build the unit that maintains ``~/<config_dir>/<config_file>``."""

    def read(ctx: Context) -> str | None:
        path = config_path(spec, ctx)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def is_applicable(ctx: Context) -> bool:
        return spec.platforms is None or ctx.platform in spec.platforms

    def plan(ctx: Context) -> PlanResult:
        _contribute(spec, ctx)
        current = read(ctx)
        if current is None:
            return PlanResult.of(f"Create {spec.config_file} configuration")
        if current != render_config(spec, ctx):
            return PlanResult.of(f"Update {spec.config_file} configuration")
        return PlanResult()

    def apply(ctx: Context) -> ModuleResult:
        _contribute(spec, ctx)
        desired = render_config(spec, ctx)
        if read(ctx) == desired:
            return ModuleResult.ok(changed=False, message=f"{spec.config_file} up to date")

        path = config_path(spec, ctx)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.is_symlink() and not path.exists():
            logger.warning("Replacing broken symlink %s", path)
            path.unlink()
        path.write_text(desired, encoding="utf-8")
        ctx.progress(spec.unit_id, f"Wrote {path}")
        return ModuleResult.ok(changed=True, message=f"{spec.config_file} written")

    def status(ctx: Context) -> StatusResult:
        current = read(ctx)
        if current is None:
            return StatusResult(
                status="stale",
                message=f"{spec.config_file} missing",
                details=StatusDetails(
                    issues=[f"Configuration file {spec.config_file} does not exist"],
                    recommendations=["Run apply to create the configuration"],
                ),
            )
        desired = render_config(spec, ctx)
        if current == desired:
            return StatusResult(status="applied", message=f"{spec.config_file} is up to date")
        return StatusResult(
            status="stale",
            message=f"{spec.config_file} needs update",
            details=StatusDetails(
                diff=line_diff(current, desired, spec.config_file),
                issues=["Configuration content differs from expected"],
                recommendations=["Run apply to update the configuration"],
            ),
        )

    def capture_state(ctx: Context) -> dict:
        content = read(ctx)
        return {"exists": content is not None, "content": content}

    def get_expected_state(ctx: Context) -> dict:
        return {"exists": True, "content": render_config(spec, ctx)}

    def get_details(ctx: Context) -> list[str]:
        lines = list(spec.details) or ["App configuration:"]
        lines.append(f"  • Config file: ~/{spec.config_dir}/{spec.config_file}")
        if spec.themed:
            lines.append(f"  • Theme: {current_theme(ctx).name}")
        if spec.packages:
            lines.append(f"  • Package dependencies: {len(spec.packages)}")
        return lines

    return Unit(
        id=spec.unit_id,
        description=spec.description or f"Rendered ~/{spec.config_dir}/{spec.config_file}",
        depends_on=spec.depends_on,
        is_applicable=is_applicable,
        plan=plan,
        apply=apply,
        status=status,
        capture_state=capture_state,
        get_expected_state=get_expected_state,
        get_details=get_details,
    )


def package_deps(*entries: tuple[str, str, Sequence[str] | None]) -> tuple[PackageDependency, ...]:
    return tuple(
        PackageDependency(name=name, manager=manager, platforms=tuple(platforms) if platforms else None)
        for name, manager, platforms in entries
    )
