"""
State comparator: turns a unit's plan and state hooks into a drift verdict.

Snapshots are checksummed captures of a unit's state. ``resolve`` checks,
in order: pending plan changes, current vs expected state, and drift
since the last recorded apply. ``record_apply`` wraps every apply and
persists before/after/expected snapshots under ``apply_metadata:<id>``.

Capture and comparison failures never propagate: they are logged and
treated as drift.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from wellwell.core.context import Context
from wellwell.core.models.results import (
    Checksums,
    ModuleResult,
    PlanResult,
    StateComparison,
    StatusDetails,
    StatusMetadata,
    StatusResult,
    Timestamps,
)
from wellwell.core.models.snapshot import (
    ERROR_CHECKSUM,
    ModuleApplyMetadata,
    ModuleStateSnapshot,
)
from wellwell.core.models.unit import Unit

logger = logging.getLogger(__name__)

METADATA_KEY_PREFIX = "apply_metadata:"

CHECKSUM_LENGTH = 16


def checksum(state: Any) -> str:
    """SHA-256 over canonical JSON, truncated to 16 hex chars.

    Equality testing only. Keys are sorted so dict ordering never
    changes the result.
    """
    canonical = json.dumps(state, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:CHECKSUM_LENGTH]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def metadata_key(unit_id: str) -> str:
    return f"{METADATA_KEY_PREFIX}{unit_id}"


def _make_snapshot(unit_id: str, state: Any) -> ModuleStateSnapshot:
    return ModuleStateSnapshot(unit_id=unit_id, checksum=checksum(state), state=state)


class StateComparator:
    """Snapshot, compare and judge units against their recorded history."""

    # ── Snapshots ───────────────────────────────────────────────

    def snapshot(self, unit: Unit, ctx: Context) -> ModuleStateSnapshot:
        """Capture the unit's current state.

        Prefers ``capture_state``, then the unit's own status, then
        ``{unit_id, applicable}``. Failures yield a fallback snapshot.
        """
        try:
            state = self._observed_state(unit, ctx)
        except Exception as e:
            logger.warning("Failed to capture state of %s, using fallback: %s", unit.id, e)
            state = {"unit_id": unit.id, "error": str(e), "fallback": True}
        return _make_snapshot(unit.id, state)

    def _observed_state(self, unit: Unit, ctx: Context) -> Any:
        if unit.supports("capture_state"):
            return unit.capture_state(ctx)
        if unit.supports("status"):
            return {"status": unit.status(ctx).status}
        return {"unit_id": unit.id, "applicable": bool(unit.is_applicable(ctx))}

    def expected_snapshot(
        self,
        unit: Unit,
        ctx: Context,
        plan: PlanResult | None = None,
    ) -> ModuleStateSnapshot:
        """The state the unit should be in once applied.

        Prefers ``get_expected_state``. Otherwise derived from the plan:
        no changes means the shape ``snapshot`` produces for a settled
        unit; pending changes mean a "stale" shape listing them.
        """
        try:
            if unit.supports("get_expected_state"):
                return _make_snapshot(unit.id, unit.get_expected_state(ctx))

            if plan is None:
                plan = unit.plan(ctx)
            if plan.has_changes:
                return _make_snapshot(unit.id, {"status": "stale", "changes": plan.summaries})

            if unit.supports("capture_state"):
                state = unit.capture_state(ctx)
            elif unit.supports("status"):
                state = {"status": "applied"}
            else:
                state = {"unit_id": unit.id, "applicable": True}
            return _make_snapshot(unit.id, state)
        except Exception as e:
            logger.warning("Failed to compute expected state of %s: %s", unit.id, e)
            return ModuleStateSnapshot(
                unit_id=unit.id,
                checksum=ERROR_CHECKSUM,
                state={"unit_id": unit.id, "error": str(e)},
            )

    def compare(self, unit: Unit, a: ModuleStateSnapshot, b: ModuleStateSnapshot) -> bool:
        """Whether two snapshots differ. Any doubt counts as a difference."""
        if a.is_error or b.is_error:
            return True
        if not unit.supports("compare_state"):
            return a.checksum != b.checksum
        try:
            return bool(unit.compare_state(a, b))
        except Exception as e:
            logger.warning("State comparison failed for %s, assuming drift: %s", unit.id, e)
            return True

    # ── Apply metadata ──────────────────────────────────────────

    def load_metadata(self, ctx: Context, unit_id: str) -> ModuleApplyMetadata | None:
        raw = ctx.state.get(metadata_key(unit_id))
        if raw is None:
            return None
        try:
            return ModuleApplyMetadata.model_validate(raw)
        except ValidationError as e:
            logger.warning("Ignoring unreadable apply metadata for %s: %s", unit_id, e)
            return None

    def store_metadata(self, ctx: Context, metadata: ModuleApplyMetadata) -> None:
        ctx.state.set(metadata_key(metadata.unit_id), metadata.model_dump(mode="json"))

    def record_apply(
        self,
        unit: Unit,
        ctx: Context,
        apply_fn: Callable[[], ModuleResult],
    ) -> ModuleResult:
        """Run ``apply_fn`` and persist before/after/expected snapshots.

        Metadata is stored and flushed whether ``apply_fn`` returns or
        raises. A flush failure is raised after a successful apply; after
        a failed apply the original exception wins.
        """
        before = self.snapshot(unit, ctx)
        expected = self.expected_snapshot(unit, ctx)

        try:
            result = apply_fn()
        except Exception:
            self._record(unit, ctx, before, expected, reraise_flush=False)
            raise

        self._record(unit, ctx, before, expected, reraise_flush=True)
        return result

    def _record(
        self,
        unit: Unit,
        ctx: Context,
        before: ModuleStateSnapshot,
        expected: ModuleStateSnapshot,
        reraise_flush: bool,
    ) -> None:
        try:
            after = self._after_snapshot(unit, ctx)
        except Exception as e:
            logger.warning("Failed to capture post-apply state of %s: %s", unit.id, e)
            after = before

        self.store_metadata(ctx, ModuleApplyMetadata(
            unit_id=unit.id,
            before_state=before,
            after_state=after,
            expected_state=expected,
            plan_checksum=expected.checksum,
        ))

        try:
            ctx.state.flush()
        except Exception as e:
            if reraise_flush:
                raise
            logger.error("Failed to flush apply metadata for %s: %s", unit.id, e)

    def _after_snapshot(self, unit: Unit, ctx: Context) -> ModuleStateSnapshot:
        return _make_snapshot(unit.id, self._observed_state(unit, ctx))

    # ── Status ──────────────────────────────────────────────────

    def resolve(self, unit: Unit, ctx: Context) -> StatusResult:
        """Judge whether the unit is applied, with supporting evidence."""
        try:
            return self._resolve(unit, ctx)
        except Exception as e:
            logger.error("Status check failed for %s: %s", unit.id, e)
            error = str(e)

        if unit.supports("status"):
            try:
                return unit.status(ctx)
            except Exception as e:
                logger.error("Fallback status check also failed for %s: %s", unit.id, e)

        return StatusResult(
            status="stale",
            message="Unable to determine status due to errors",
            details=StatusDetails(issues=[error]),
            metadata=StatusMetadata(timestamps=Timestamps(last_checked=_now_iso())),
        )

    def _resolve(self, unit: Unit, ctx: Context) -> StatusResult:
        plan = unit.plan(ctx)
        current = self.snapshot(unit, ctx)
        expected = self.expected_snapshot(unit, ctx, plan=plan)
        last = self.load_metadata(ctx, unit.id)

        def verdict(status: str, message: str, issues: list[str], diff: list[str] | None = None) -> StatusResult:
            now = _now_iso()
            return StatusResult(
                status=status,  # type: ignore[arg-type]
                message=message,
                details=StatusDetails(
                    current=current.state,
                    desired=expected.state,
                    diff=diff or [],
                    issues=issues,
                    recommendations=["Run apply to reconcile"] if status == "stale" else [],
                ),
                metadata=StatusMetadata(
                    checksums=Checksums(actual=current.checksum, expected=expected.checksum),
                    timestamps=Timestamps(
                        last_applied=last.applied_at if last else None,
                        last_checked=now,
                    ),
                    state_comparison=StateComparison(
                        before_apply=last.before_state.checksum if last else None,
                        after_apply=last.after_state.checksum if last else None,
                        expected_after_apply=last.expected_state.checksum if last else None,
                        differs=status != "applied",
                        last_validated=now,
                    ),
                ),
            )

        # 1. Declared intent outranks snapshot comparison
        if plan.has_changes:
            count = len(plan.changes)
            return verdict(
                "stale",
                f"Unit has {count} planned change{'' if count == 1 else 's'}",
                ["Unit has planned changes that need to be applied"],
                diff=plan.summaries,
            )

        # 2. Current vs expected
        if self.compare(unit, current, expected):
            return verdict(
                "stale",
                "Current state differs from expected state",
                ["Unit state differs from expected state"],
            )

        # 3. Drift since the last recorded apply
        if last is not None:
            state_changed = self.compare(unit, last.after_state, current)
            expected_changed = self.compare(unit, last.expected_state, expected)
            if state_changed or expected_changed:
                issues = []
                if state_changed:
                    issues.append("Actual state differs from last applied state")
                if expected_changed:
                    issues.append("Expected state differs from last planned state")
                return verdict(
                    "stale",
                    "Unit state has changed since last apply"
                    if state_changed else "Unit expected state has changed",
                    issues,
                )

        return verdict("applied", "Unit state matches expectations", [])
