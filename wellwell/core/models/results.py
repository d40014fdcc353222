"""
Operation results: what units hand back from plan, apply and status.

PlanResult is produced fresh on every plan call. ModuleResult is the
outcome of one apply. StatusResult is derived on demand and never
treated as the source of truth.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

Status = Literal["stale", "pending", "applied", "skipped", "failed"]

SKIPPED_MESSAGE = "skipped"
EXCEPTION_MESSAGE = "exception"


class PlanChange(BaseModel):
    """A single change a unit would make."""

    summary: str
    details: str | None = None


class PlanResult(BaseModel):
    """Read-only description of what apply would do."""

    changes: list[PlanChange] = Field(default_factory=list)
    error: str | None = None      # set when planning itself failed

    @classmethod
    def of(cls, *summaries: str) -> PlanResult:
        return cls(changes=[PlanChange(summary=s) for s in summaries])

    @property
    def has_changes(self) -> bool:
        return len(self.changes) > 0

    @property
    def summaries(self) -> list[str]:
        return [c.summary for c in self.changes]


class ModuleResult(BaseModel):
    """Outcome of applying a unit."""

    success: bool
    changed: bool = False
    message: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, changed: bool = False, message: str | None = None) -> ModuleResult:
        return cls(success=True, changed=changed, message=message)

    @classmethod
    def failure(cls, error: str, message: str | None = None) -> ModuleResult:
        return cls(success=False, changed=False, error=error, message=message)

    @classmethod
    def skipped(cls) -> ModuleResult:
        """Result recorded for a unit whose dependency failed."""
        return cls(success=True, changed=False, message=SKIPPED_MESSAGE)


# ── Status ──────────────────────────────────────────────────────


class StatusDetails(BaseModel):
    """Human-facing explanation attached to a status verdict."""

    current: Any = None
    desired: Any = None
    diff: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class Checksums(BaseModel):
    actual: str | None = None
    expected: str | None = None


class Timestamps(BaseModel):
    last_applied: str | None = None
    last_checked: str | None = None


class StateComparison(BaseModel):
    """Checksums recorded by the last apply, and the drift verdict."""

    before_apply: str | None = None
    after_apply: str | None = None
    expected_after_apply: str | None = None
    differs: bool = False
    last_validated: str | None = None


class StatusMetadata(BaseModel):
    checksums: Checksums = Field(default_factory=Checksums)
    timestamps: Timestamps = Field(default_factory=Timestamps)
    state_comparison: StateComparison = Field(default_factory=StateComparison)


class StatusResult(BaseModel):
    """A derived judgement of whether reality matches intent."""

    status: Status
    message: str | None = None
    details: StatusDetails | None = None
    metadata: StatusMetadata | None = None

    @property
    def is_applied(self) -> bool:
        return self.status == "applied"
