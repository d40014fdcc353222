"""
Shared test fixtures and configuration.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from wellwell.core.context import Context
from wellwell.core.engine.executor import Engine
from wellwell.core.models.results import ModuleResult, PlanResult
from wellwell.core.models.unit import Unit
from wellwell.core.persistence.state_file import MemoryStateStore


class Recorder:
    """Builds units that record every call made to them."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def unit(
        self,
        unit_id: str,
        depends_on: tuple[str, ...] = (),
        *,
        applicable: bool = True,
        changes: tuple[str, ...] = (),
        apply_error: Exception | None = None,
        apply_result: ModuleResult | None = None,
        **extra,
    ) -> Unit:
        def is_applicable(ctx: Context) -> bool:
            self.calls.append(("is_applicable", unit_id))
            return applicable

        def plan(ctx: Context) -> PlanResult:
            self.calls.append(("plan", unit_id))
            return PlanResult.of(*changes)

        def apply(ctx: Context) -> ModuleResult:
            self.calls.append(("apply", unit_id))
            if apply_error is not None:
                raise apply_error
            return apply_result or ModuleResult.ok(changed=True)

        return Unit(
            id=unit_id,
            depends_on=depends_on,
            is_applicable=is_applicable,
            plan=plan,
            apply=apply,
            **extra,
        )

    def ids(self, operation: str) -> list[str]:
        return [unit_id for op, unit_id in self.calls if op == operation]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    """A throwaway home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def memory_state() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def make_context(home_dir: Path, memory_state: MemoryStateStore) -> Callable[..., Context]:
    """Factory for contexts sharing one in-memory state store."""

    def _make(platform: str = "macos", state=None) -> Context:
        return Context(
            platform=platform,
            home_dir=home_dir,
            cwd=home_dir,
            is_ci=False,
            state=state if state is not None else memory_state,
        )

    return _make


@pytest.fixture
def engine(home_dir: Path, memory_state: MemoryStateStore) -> Engine:
    """Engine on macOS with in-memory state and no units."""
    return Engine(
        memory_state,
        platform="macos",
        home_dir=home_dir,
        cwd=home_dir,
        is_ci=False,
    )
