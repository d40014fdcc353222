"""
Engine executor: the reconciliation loop.

The engine owns the registered units. For every operation it builds a
fresh Context, validates the dependency graph, and walks units one at
a time in dependency order.

Flow (apply):
    build order → per unit: applicable? → pending → record_apply(apply)
                → applied | failed (+ skip every dependent) → flush → ledger

Nothing runs concurrently: later units read contribution-store state
written by earlier ones.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from wellwell.core.context import Context
from wellwell.core.engine.graph import (
    DuplicateModuleError,
    UnknownModuleError,
    build_order,
    transitive_dependents,
)
from wellwell.core.models.results import (
    EXCEPTION_MESSAGE,
    ModuleResult,
    PlanResult,
    Status,
    StatusResult,
)
from wellwell.core.models.unit import Unit
from wellwell.core.persistence.audit import AuditWriter, RunEntry
from wellwell.core.persistence.state_file import StateStore
from wellwell.core.platform import Platform, detect_platform
from wellwell.core.state.comparison import StateComparator

logger = logging.getLogger(__name__)


# ── Hooks ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class StatusChange:
    id: str
    status: Status


@dataclass(frozen=True)
class ModuleMessage:
    id: str
    message: str


@dataclass
class EngineHooks:
    """Optional callbacks for UI integration."""

    on_module_status_change: Callable[[StatusChange], None] | None = None
    on_module_message: Callable[[ModuleMessage], None] | None = None


# ── Run summary ─────────────────────────────────────────────────


@dataclass
class RunSummary:
    """Result of one apply run."""

    run_id: str = ""
    platform: str = ""
    results: dict[str, ModuleResult] = field(default_factory=dict)
    # skipped unit id → the failed dependency that caused the skip
    skipped_by: dict[str, str] = field(default_factory=dict)
    duration_ms: int = 0
    flush_error: str | None = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def skipped(self) -> int:
        return len(self.skipped_by)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results.values() if not r.success)

    @property
    def succeeded(self) -> int:
        return self.total - self.failed - self.skipped

    @property
    def changed(self) -> int:
        return sum(1 for r in self.results.values() if r.success and r.changed)

    def skip(self, unit_id: str, cause: str) -> None:
        self.results[unit_id] = ModuleResult.skipped()
        self.skipped_by[unit_id] = cause

    def is_skipped(self, unit_id: str) -> bool:
        return unit_id in self.skipped_by

    @property
    def all_ok(self) -> bool:
        return self.failed == 0 and self.flush_error is None

    @property
    def status(self) -> str:
        if self.all_ok:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    @property
    def errors(self) -> list[str]:
        errors = [
            f"{unit_id}: {r.error or r.message or 'failed'}"
            for unit_id, r in self.results.items()
            if not r.success
        ]
        if self.flush_error:
            errors.append(f"state flush: {self.flush_error}")
        return errors

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "skipped_by": dict(self.skipped_by),
            "changed": self.changed,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "results": {k: r.model_dump(mode="json") for k, r in self.results.items()},
        }

    def to_entry(self) -> RunEntry:
        return RunEntry(
            run_id=self.run_id,
            operation="apply",
            platform=self.platform,
            status=self.status,
            units_total=self.total,
            units_succeeded=self.succeeded,
            units_failed=self.failed,
            units_skipped=self.skipped,
            units_changed=self.changed,
            duration_ms=self.duration_ms,
            units=list(self.results),
            errors=self.errors,
        )


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


def _env_is_ci() -> bool:
    return os.environ.get("CI", "").strip().lower() not in ("", "0", "false", "no")


# ── Engine ──────────────────────────────────────────────────────


class Engine:
    """Registers units and runs plan/apply/status over them."""

    def __init__(
        self,
        state: StateStore,
        *,
        platform: Platform | None = None,
        home_dir: Path | None = None,
        cwd: Path | None = None,
        is_ci: bool | None = None,
        hooks: EngineHooks | None = None,
        comparator: StateComparator | None = None,
        audit: AuditWriter | None = None,
    ):
        self._state = state
        self._platform = platform
        self._home_dir = home_dir
        self._cwd = cwd
        self._is_ci = is_ci
        self.hooks = hooks or EngineHooks()
        self._comparator = comparator or StateComparator()
        self._audit = audit
        self._units: dict[str, Unit] = {}

    # ── Registration ────────────────────────────────────────────

    def register(self, unit: Unit) -> None:
        """Add a unit. Ids must be unique."""
        if unit.id in self._units:
            raise DuplicateModuleError(unit.id)
        self._units[unit.id] = unit
        logger.debug("Registered unit %s (depends on: %s)", unit.id, ", ".join(unit.depends_on) or "-")

    def register_all(self, units: Iterable[Unit]) -> None:
        for unit in units:
            self.register(unit)

    @property
    def units(self) -> list[Unit]:
        """Registered units in registration order."""
        return list(self._units.values())

    def get(self, unit_id: str) -> Unit:
        return self._units[unit_id]

    def order(self, ids: Iterable[str] | None = None) -> list[str]:
        """Execution order for ``ids`` (default: every unit).

        Raises:
            GraphError: On missing dependencies, cycles or unknown ids.
        """
        edges = {unit_id: unit.depends_on for unit_id, unit in self._units.items()}
        return build_order(edges, ids)

    # ── Context ─────────────────────────────────────────────────

    def build_context(self) -> Context:
        """A fresh Context for one operation."""
        return Context(
            platform=self._platform or detect_platform(),
            home_dir=self._home_dir or Path.home(),
            cwd=self._cwd or Path.cwd(),
            is_ci=_env_is_ci() if self._is_ci is None else self._is_ci,
            state=self._state,
            message_sink=self._dispatch_message,
        )

    # ── Plan ────────────────────────────────────────────────────

    def plan(self, ids: Iterable[str] | None = None) -> dict[str, PlanResult]:
        """Collect plans for every applicable unit, in dependency order."""
        order = self.order(ids)
        ctx = self.build_context()
        plans: dict[str, PlanResult] = {}

        for unit_id in order:
            unit = self._units[unit_id]
            try:
                if not unit.is_applicable(ctx):
                    logger.debug("Unit %s not applicable on %s", unit_id, ctx.platform)
                    continue
                plans[unit_id] = unit.plan(ctx)
            except Exception as e:
                logger.error("Planning %s failed: %s", unit_id, e)
                plans[unit_id] = PlanResult(error=str(e))

        logger.info(
            "Planned %d units, %d with changes",
            len(plans), sum(1 for p in plans.values() if p.has_changes),
        )
        return plans

    # ── Apply ───────────────────────────────────────────────────

    def apply(self, ids: Iterable[str] | None = None) -> dict[str, ModuleResult]:
        """Apply units in dependency order and return their results."""
        return self.run_apply(ids).results

    def run_apply(self, ids: Iterable[str] | None = None) -> RunSummary:
        """Apply units and return the full run summary.

        A unit that raises or returns ``success=False`` immediately marks
        all of its dependents in this run as skipped; they are never
        invoked.
        """
        order = self.order(ids)
        ctx = self.build_context()
        summary = RunSummary(run_id=generate_run_id(), platform=ctx.platform)
        results = summary.results
        edges = {unit_id: unit.depends_on for unit_id, unit in self._units.items()}
        start = time.monotonic()

        logger.info("Apply %s: %d units in order", summary.run_id, len(order))

        for unit_id in order:
            if unit_id in results:
                continue
            unit = self._units[unit_id]

            try:
                applicable = unit.is_applicable(ctx)
            except Exception as e:
                logger.error("Applicability check for %s raised: %s", unit_id, e)
                applicable = True
                result = ModuleResult.failure(str(e), EXCEPTION_MESSAGE)
            else:
                result = None

            if not applicable:
                logger.debug("Unit %s not applicable on %s", unit_id, ctx.platform)
                continue

            if result is None:
                self._emit(unit, "pending")
                result = self._apply_unit(unit, ctx)

            results[unit_id] = result

            if result.success:
                logger.info("Applied %s (changed=%s)", unit_id, result.changed)
                self._emit(unit, "applied")
                continue

            logger.warning("Unit %s failed: %s", unit_id, result.error or result.message)
            self._emit(unit, "failed")
            dependents = transitive_dependents(edges, unit_id)
            for dependent_id in order:
                if dependent_id in dependents and dependent_id not in results:
                    summary.skip(dependent_id, unit_id)
                    logger.info("Skipping %s: dependency %s failed", dependent_id, unit_id)
                    self._emit(self._units[dependent_id], "skipped")

        try:
            ctx.state.flush()
        except Exception as e:
            logger.error("Failed to flush state after apply: %s", e)
            summary.flush_error = str(e)

        summary.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Apply %s finished: %s (%d ok, %d failed, %d skipped)",
            summary.run_id, summary.status, summary.succeeded, summary.failed, summary.skipped,
        )

        if self._audit is not None:
            self._audit.write(summary.to_entry())

        return summary

    def _apply_unit(self, unit: Unit, ctx: Context) -> ModuleResult:
        try:
            return self._comparator.record_apply(unit, ctx, lambda: unit.apply(ctx))
        except Exception as e:
            logger.error("Unit %s raised during apply: %s", unit.id, e, exc_info=logger.isEnabledFor(logging.DEBUG))
            return ModuleResult.failure(str(e), EXCEPTION_MESSAGE)

    # ── Status ──────────────────────────────────────────────────

    def statuses(self, ids: Iterable[str] | None = None) -> dict[str, Status]:
        """Coarse status for every applicable unit."""
        order = self.order(ids)
        ctx = self.build_context()
        statuses: dict[str, Status] = {}

        for unit_id in order:
            unit = self._units[unit_id]
            try:
                if not unit.is_applicable(ctx):
                    continue
            except Exception as e:
                logger.error("Applicability check for %s raised: %s", unit_id, e)
                statuses[unit_id] = "failed"
                continue
            statuses[unit_id] = self._coarse_status(unit, ctx)

        return statuses

    def _coarse_status(self, unit: Unit, ctx: Context) -> Status:
        if unit.supports("status"):
            try:
                return unit.status(ctx).status
            except Exception as e:
                logger.warning("Status of %s raised, falling back to plan: %s", unit.id, e)

        try:
            plan = unit.plan(ctx)
        except Exception as e:
            logger.warning("Plan of %s raised, assuming stale: %s", unit.id, e)
            return "stale"

        if plan.has_changes:
            return "stale"
        # Empty plan without a status check: nothing to do, but unverified.
        logger.debug("Unit %s reported applied from an empty plan (unverified)", unit.id)
        return "applied"

    def detailed_statuses(self, ids: Iterable[str] | None = None) -> dict[str, StatusResult]:
        """Full StatusResult for every applicable unit, via the comparator."""
        order = self.order(ids)
        ctx = self.build_context()
        statuses: dict[str, StatusResult] = {}

        for unit_id in order:
            unit = self._units[unit_id]
            try:
                if not unit.is_applicable(ctx):
                    continue
            except Exception as e:
                logger.error("Applicability check for %s raised: %s", unit_id, e)
                statuses[unit_id] = StatusResult(status="failed", message=str(e))
                continue
            statuses[unit_id] = self._comparator.resolve(unit, ctx)

        return statuses

    def details(self, unit_id: str) -> list[str]:
        """Descriptive lines for a unit, if it provides any.

        Raises:
            UnknownModuleError: If no unit has that id.
        """
        unit = self._units.get(unit_id)
        if unit is None:
            raise UnknownModuleError([unit_id])
        if not unit.supports("get_details"):
            return []
        return unit.get_details(self.build_context())

    # ── Hook dispatch ───────────────────────────────────────────

    def _emit(self, unit: Unit, status: Status) -> None:
        if self.hooks.on_module_status_change is not None:
            try:
                self.hooks.on_module_status_change(StatusChange(id=unit.id, status=status))
            except Exception as e:
                logger.warning("Status hook raised for %s: %s", unit.id, e)
        if unit.supports("on_status_change"):
            try:
                unit.on_status_change(status)
            except Exception as e:
                logger.warning("on_status_change of %s raised: %s", unit.id, e)

    def _dispatch_message(self, unit_id: str, message: str) -> None:
        unit = self._units.get(unit_id)
        if unit is not None and unit.supports("on_progress"):
            try:
                unit.on_progress(message)
            except Exception as e:
                logger.warning("on_progress of %s raised: %s", unit_id, e)
        if self.hooks.on_module_message is not None:
            try:
                self.hooks.on_module_message(ModuleMessage(id=unit_id, message=message))
            except Exception as e:
                logger.warning("Message hook raised for %s: %s", unit_id, e)
