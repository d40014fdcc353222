"""
Unit: the capability record every configuration component provides.

A unit is a frozen record of callables. The three required operations
(is_applicable, plan, apply) are always present; the optional ones are
``None`` when the unit does not support them. The engine checks
``unit.supports(name)`` and never inspects the unit's type.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from wellwell.core.context import Context
    from wellwell.core.models.results import ModuleResult, PlanResult, Status, StatusResult
    from wellwell.core.models.snapshot import ModuleStateSnapshot

OPTIONAL_CAPABILITIES = (
    "status",
    "capture_state",
    "compare_state",
    "get_expected_state",
    "get_details",
    "on_status_change",
    "on_progress",
)


@dataclass(frozen=True)
class Unit:
    """A self-contained configuration component."""

    id: str
    is_applicable: Callable[[Context], bool]
    plan: Callable[[Context], PlanResult]
    apply: Callable[[Context], ModuleResult]
    description: str = ""
    depends_on: tuple[str, ...] = ()

    # ── Optional capabilities ───────────────────────────────────
    status: Callable[[Context], StatusResult] | None = None
    capture_state: Callable[[Context], Any] | None = None
    # Returns True when the two snapshots differ.
    compare_state: Callable[[ModuleStateSnapshot, ModuleStateSnapshot], bool] | None = None
    get_expected_state: Callable[[Context], Any] | None = None
    get_details: Callable[[Context], list[str]] | None = None
    on_status_change: Callable[[Status], None] | None = None
    on_progress: Callable[[str], None] | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Unit id must be a non-empty string")
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    def supports(self, capability: str) -> bool:
        """Whether the optional capability is provided."""
        if capability not in OPTIONAL_CAPABILITIES:
            raise ValueError(f"Unknown unit capability: {capability}")
        return getattr(self, capability) is not None
