"""
State snapshots and apply metadata.

A snapshot is a timestamped, checksummed capture of a unit's state.
Apply metadata is persisted after every apply attempt so later status
checks can detect drift against what was last applied.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

ERROR_CHECKSUM = "error"


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ModuleStateSnapshot(BaseModel):
    """Captured state of one unit at a point in time."""

    unit_id: str
    timestamp: str = Field(default_factory=_now_iso)
    checksum: str
    state: Any = None

    @property
    def is_error(self) -> bool:
        return self.checksum == ERROR_CHECKSUM


class ModuleApplyMetadata(BaseModel):
    """Audit trace of one apply attempt, success or failure."""

    unit_id: str
    applied_at: str = Field(default_factory=_now_iso)
    before_state: ModuleStateSnapshot
    after_state: ModuleStateSnapshot
    expected_state: ModuleStateSnapshot
    plan_checksum: str
