"""
Resolver units: one per contribution namespace.

A resolver registers the namespace's built-in defaults, merges every
contribution, and writes the result under ``resolved.<namespace>``.
It must depend on every contributor so it runs after them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel

from wellwell.core.context import Context
from wellwell.core.contrib.store import ContributionTable
from wellwell.core.models.contribution import AliasEntry, EnvVarEntry, PathEntry
from wellwell.core.models.results import ModuleResult, PlanResult, StatusResult
from wellwell.core.models.unit import Unit

logger = logging.getLogger(__name__)

# (entry, platforms) pairs; platforms None means every platform.
Defaults = Callable[[Context], list[tuple[BaseModel, Sequence[str] | None]]]

ALL_PLATFORMS = ("macos", "ubuntu", "al2")


# ── Built-in defaults ───────────────────────────────────────────


def common_paths(ctx: Context) -> list[tuple[BaseModel, Sequence[str] | None]]:
    home = ctx.home_dir
    return [
        (PathEntry(path=f"{home}/bin", prepend=True), None),
        (PathEntry(path=f"{home}/.local/bin", prepend=True), None),
        (PathEntry(path=f"{home}/.cargo/bin"), None),
        (PathEntry(path=f"{home}/go/bin"), None),
        (PathEntry(path="/usr/local/bin", prepend=True), ALL_PLATFORMS),
        (PathEntry(path="/opt/homebrew/bin", prepend=True), ("macos",)),
        (PathEntry(path="/opt/homebrew/sbin"), ("macos",)),
        (PathEntry(path="/snap/bin"), ("ubuntu",)),
    ]


def common_aliases(ctx: Context) -> list[tuple[BaseModel, Sequence[str] | None]]:
    return [
        (AliasEntry(name="ll", value="ls -alF"), None),
        (AliasEntry(name="la", value="ls -A"), None),
        (AliasEntry(name="l", value="ls -CF"), None),
    ]


def common_env_vars(ctx: Context) -> list[tuple[BaseModel, Sequence[str] | None]]:
    return [
        (EnvVarEntry(name="EDITOR", value="nvim"), ALL_PLATFORMS),
        (EnvVarEntry(name="VISUAL", value="nvim"), ALL_PLATFORMS),
        (EnvVarEntry(name="PAGER", value="less"), ALL_PLATFORMS),
        (EnvVarEntry(name="LANG", value="en_US.UTF-8"), ALL_PLATFORMS),
    ]


# ── Factory ─────────────────────────────────────────────────────


def make_resolver_unit(
    unit_id: str,
    namespace: str,
    *,
    depends_on: Sequence[str] = (),
    defaults: Defaults | None = None,
    description: str = "",
) -> Unit:
    """Build the unit that resolves and writes one namespace.

    Args:
        unit_id: Unit id, e.g. ``core:paths``.
        namespace: Contribution namespace (paths, aliases, env_vars,
            packages, shell_init).
        depends_on: Every unit that contributes to the namespace.
        defaults: Built-in entries registered before resolving.
    """

    def table(ctx: Context) -> ContributionTable[Any]:
        return ctx.contributions.table(namespace)

    def register_defaults(ctx: Context) -> int:
        if defaults is None:
            return 0
        t = table(ctx)
        return sum(1 for entry, platforms in defaults(ctx) if t.add(entry, platforms))

    def plan(ctx: Context) -> PlanResult:
        added = register_defaults(ctx)
        summaries = []
        if added:
            summaries.append(f"Register {added} default {namespace} entries")
        if not table(ctx).is_current():
            summaries.append(f"Recompute {namespace}")
        return PlanResult.of(*summaries)

    def apply(ctx: Context) -> ModuleResult:
        register_defaults(ctx)
        t = table(ctx)
        changed = not t.is_current()
        resolved = t.resolve()
        t.write(resolved)
        ctx.progress(unit_id, f"Resolved {len(resolved)} {namespace} entries")
        return ModuleResult.ok(changed=changed, message=f"{namespace} resolved")

    def status(ctx: Context) -> StatusResult:
        t = table(ctx)
        if t.read() is None:
            return StatusResult(status="stale", message=f"{namespace} never resolved")
        if not t.is_current():
            return StatusResult(status="stale", message=f"{namespace} contributions changed")
        return StatusResult(status="applied")

    def capture_state(ctx: Context) -> Any:
        return {"resolved": ctx.state.get(table(ctx).resolved_key)}

    def get_expected_state(ctx: Context) -> Any:
        register_defaults(ctx)
        t = table(ctx)
        return {"resolved": t.dump(t.resolve())}

    def get_details(ctx: Context) -> list[str]:
        resolved = table(ctx).read()
        if not resolved:
            return [f"No {namespace} configured"]
        return [f"Managing {len(resolved)} {namespace} entries:"] + [
            f"  • {_describe(item, resolved)}" for item in resolved
        ]

    return Unit(
        id=unit_id,
        description=description or f"Collect {namespace} contributions and compute the final set",
        depends_on=tuple(depends_on),
        is_applicable=lambda ctx: True,
        plan=plan,
        apply=apply,
        status=status,
        capture_state=capture_state,
        get_expected_state=get_expected_state,
        get_details=get_details,
    )


def _describe(item: Any, resolved: Any) -> str:
    if isinstance(resolved, dict):
        value = resolved[item]
        if isinstance(value, list):
            return f"{item}: {', '.join(p.name for p in value)}"
        return f"{item}={value}"
    if isinstance(item, BaseModel):
        return getattr(item, "name", str(item))
    return str(item)
