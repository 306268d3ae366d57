"""
Dependency chain construction.

Orders a target behavior after everything it transitively depends on, using
an explicit stack so deep chains never hit the recursion limit. A behavior
reachable along several paths is scheduled once, at its first (deepest)
visit.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from specqa.config import CyclePolicy
from specqa.dsl.models import Behavior, BehaviorCatalog

logger = structlog.get_logger(__name__)


class ChainBuildError(Exception):
    """Raised when a dependency chain cannot be built."""


class BehaviorNotFoundError(ChainBuildError):
    """A target or dependency id is missing from the catalog."""

    def __init__(self, behavior_id: str, message: str) -> None:
        self.behavior_id = behavior_id
        super().__init__(message)


class DependencyCycleError(ChainBuildError):
    """A behavior transitively depends on itself."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle: {' -> '.join(cycle)}")


@dataclass(frozen=True)
class ChainStep:
    """One member of a chain and the scenario the referencing behavior asked for."""

    behavior: Behavior
    scenario_name: str | None = None


@dataclass
class _Frame:
    behavior_id: str
    scenario_name: str | None
    expanded: bool = False


def build_dependency_chain(
    target_id: str,
    catalog: BehaviorCatalog,
    cycle_policy: CyclePolicy = CyclePolicy.TOLERATE,
) -> list[ChainStep]:
    """
    Return the chain for ``target_id``: dependencies first, target last.

    Under ``CyclePolicy.TOLERATE`` a back edge is ignored (first visit
    wins); under ``CyclePolicy.REJECT`` it raises DependencyCycleError.
    """
    if target_id not in catalog:
        raise BehaviorNotFoundError(target_id, f'Behavior "{target_id}" not found')

    chain: list[ChainStep] = []
    visited: set[str] = set()
    # Insertion-ordered, so the current DFS path can be read back for cycle reports.
    in_progress: dict[str, None] = {}
    stack = [_Frame(target_id, None)]

    while stack:
        frame = stack[-1]

        if frame.expanded:
            stack.pop()
            in_progress.pop(frame.behavior_id, None)
            chain.append(ChainStep(catalog[frame.behavior_id], frame.scenario_name))
            continue

        if frame.behavior_id in visited:
            stack.pop()
            if frame.behavior_id in in_progress:
                path = list(in_progress)
                cycle = path[path.index(frame.behavior_id):] + [frame.behavior_id]
                if cycle_policy is CyclePolicy.REJECT:
                    raise DependencyCycleError(cycle)
                logger.warning("Tolerating dependency cycle", cycle=" -> ".join(cycle))
            continue

        behavior = catalog.get(frame.behavior_id)
        if behavior is None:
            raise BehaviorNotFoundError(
                frame.behavior_id,
                f'Dependency "{frame.behavior_id}" not found for behavior chain',
            )

        visited.add(frame.behavior_id)
        in_progress[frame.behavior_id] = None
        frame.expanded = True
        # Reversed so the first declared dependency is processed first.
        for dep in reversed(behavior.dependencies):
            stack.append(_Frame(dep.behavior_id, dep.scenario_name))

    logger.debug(
        "Built dependency chain",
        target=target_id,
        chain=[step.behavior.id for step in chain],
    )
    return chain
