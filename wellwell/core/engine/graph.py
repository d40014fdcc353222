"""
Dependency graph: execution order for registered units.

``build_order`` is a pure function over ``{unit_id: [dependency ids]}``
in registration order. It validates the whole graph (missing
dependencies, cycles) before returning anything, so these failures
always surface before any unit method runs.

Order is deterministic: roots are visited in registration order and
dependencies in declaration order, depth first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence

logger = logging.getLogger(__name__)


class GraphError(ValueError):
    """Base class for fatal, pre-execution graph errors."""


class DuplicateModuleError(GraphError):
    def __init__(self, unit_id: str):
        self.unit_id = unit_id
        super().__init__(f"Duplicate unit id: {unit_id}")


class MissingDependencyError(GraphError):
    def __init__(self, unit_id: str, dependency_id: str):
        self.unit_id = unit_id
        self.dependency_id = dependency_id
        super().__init__(f"Missing dependency {dependency_id} for {unit_id}")


class CycleError(GraphError):
    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class UnknownModuleError(GraphError):
    def __init__(self, unit_ids: Sequence[str]):
        self.unit_ids = list(unit_ids)
        super().__init__(f"Unknown unit id(s): {', '.join(self.unit_ids)}")


# DFS colors
_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


def build_order(
    edges: Mapping[str, Sequence[str]],
    selected: Iterable[str] | None = None,
) -> list[str]:
    """Compute a dependency-respecting execution order.

    Args:
        edges: Unit id → ids it depends on, in registration order.
        selected: Optional subset. The result is then the transitive
            dependency closure of the subset, in full-order sequence.

    Returns:
        Ids such that every dependency precedes its dependents.

    Raises:
        MissingDependencyError: A dependency id is not registered.
        CycleError: The dependency relation has a cycle.
        UnknownModuleError: A selected id is not registered.
    """
    for unit_id, deps in edges.items():
        for dep in deps:
            if dep not in edges:
                raise MissingDependencyError(unit_id, dep)

    color = {unit_id: _UNVISITED for unit_id in edges}
    order: list[str] = []

    for root in edges:
        if color[root] == _UNVISITED:
            _visit(root, edges, color, order)

    if selected is None:
        return order

    wanted = list(dict.fromkeys(selected))
    unknown = [unit_id for unit_id in wanted if unit_id not in edges]
    if unknown:
        raise UnknownModuleError(unknown)

    closure = dependency_closure(edges, wanted)
    return [unit_id for unit_id in order if unit_id in closure]


def _visit(
    root: str,
    edges: Mapping[str, Sequence[str]],
    color: dict[str, int],
    order: list[str],
) -> None:
    # Iterative three-color DFS; path holds the in-progress chain.
    path: list[str] = [root]
    stack: list[tuple[str, Iterator]] = [(root, iter(edges[root]))]
    color[root] = _IN_PROGRESS

    while stack:
        node, deps = stack[-1]
        dep = next(deps, None)
        if dep is None:
            stack.pop()
            path.pop()
            color[node] = _DONE
            order.append(node)
            continue

        if color[dep] == _IN_PROGRESS:
            start = path.index(dep)
            raise CycleError(path[start:] + [dep])
        if color[dep] == _UNVISITED:
            color[dep] = _IN_PROGRESS
            path.append(dep)
            stack.append((dep, iter(edges[dep])))


def dependency_closure(edges: Mapping[str, Sequence[str]], unit_ids: Iterable[str]) -> set[str]:
    """The given ids plus everything they transitively depend on."""
    closure: set[str] = set()
    pending = list(unit_ids)
    while pending:
        unit_id = pending.pop()
        if unit_id in closure:
            continue
        closure.add(unit_id)
        pending.extend(edges.get(unit_id, ()))
    return closure


def transitive_dependents(edges: Mapping[str, Sequence[str]], unit_id: str) -> set[str]:
    """Every id that depends on ``unit_id`` directly or transitively."""
    reverse: dict[str, list[str]] = {}
    for node, deps in edges.items():
        for dep in deps:
            reverse.setdefault(dep, []).append(node)

    dependents: set[str] = set()
    pending = list(reverse.get(unit_id, ()))
    while pending:
        node = pending.pop()
        if node in dependents:
            continue
        dependents.add(node)
        pending.extend(reverse.get(node, ()))
    return dependents
