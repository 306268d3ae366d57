"""
Semantic validator for behavior catalogs.

Performs cross-behavior validation beyond Pydantic schema validation.
Unresolved dependency references are errors; unknown scenario names and
dependency cycles are reported as warnings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from specqa.dsl.models import Behavior

logger = structlog.get_logger(__name__)


class CatalogValidationError(Exception):
    """Raised when a behavior catalog has unresolvable references."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid behavior catalog: " + "; ".join(errors))


def find_cycles(catalog: dict[str, Behavior]) -> list[list[str]]:
    """
    Return every dependency cycle reachable in the catalog.

    Each cycle is reported once, as the list of behavior ids from the first
    repeated behavior back to itself. Unknown dependency ids are ignored.
    """
    cycles: list[list[str]] = []
    seen_cycles: set[frozenset[str]] = set()
    done: set[str] = set()

    for root in catalog:
        if root in done:
            continue
        path: list[str] = []
        on_path: set[str] = set()
        stack: list[tuple[str, int]] = [(root, 0)]

        while stack:
            behavior_id, index = stack.pop()
            if index == 0:
                path.append(behavior_id)
                on_path.add(behavior_id)

            deps = [d for d in catalog[behavior_id].dependency_ids if d in catalog]
            if index < len(deps):
                stack.append((behavior_id, index + 1))
                dep = deps[index]
                if dep in on_path:
                    cycle = path[path.index(dep):] + [dep]
                    key = frozenset(cycle)
                    if key not in seen_cycles:
                        seen_cycles.add(key)
                        cycles.append(cycle)
                elif dep not in done:
                    stack.append((dep, 0))
                continue

            path.pop()
            on_path.discard(behavior_id)
            done.add(behavior_id)

    return cycles


class CatalogValidator:
    """Validates behavior catalogs for referential integrity."""

    def __init__(self) -> None:
        self._log = logger.bind(component="catalog_validator")

    def validate(self, catalog: dict[str, Behavior]) -> list[str]:
        """Return a list of hard errors; an empty list means the catalog is usable."""
        errors: list[str] = []

        for behavior_id, behavior in catalog.items():
            if behavior.id != behavior_id:
                errors.append(
                    f"Behavior '{behavior.title}' is stored under '{behavior_id}' "
                    f"but has id '{behavior.id}'"
                )

            seen_names: set[str] = set()
            for scenario in behavior.scenarios:
                if scenario.name in seen_names:
                    errors.append(
                        f"Behavior '{behavior.title}': duplicate scenario '{scenario.name}'"
                    )
                seen_names.add(scenario.name)

            for dep in behavior.dependencies:
                if dep.behavior_id not in catalog:
                    errors.append(
                        f"Behavior '{behavior.title}': dependency '{dep.behavior_id}' not found"
                    )

        return errors

    def warnings(self, catalog: dict[str, Behavior]) -> list[str]:
        """Non-fatal findings: behaviors without scenarios and dependency cycles."""
        warnings: list[str] = []
        for behavior in catalog.values():
            if not behavior.scenarios:
                warnings.append(f"Behavior '{behavior.title}' has no scenarios")
            for dep in behavior.dependencies:
                target = catalog.get(dep.behavior_id)
                if target is None or not dep.scenario_name or not target.scenarios:
                    continue
                if all(s.name != dep.scenario_name for s in target.scenarios):
                    warnings.append(
                        f"Behavior '{behavior.title}': dependency '{dep.behavior_id}' "
                        f"has no scenario '{dep.scenario_name}', the first scenario is used"
                    )
        for cycle in find_cycles(catalog):
            warnings.append("Dependency cycle: " + " -> ".join(cycle))
        return warnings

    def validate_or_raise(self, catalog: dict[str, Behavior]) -> None:
        errors = self.validate(catalog)
        for warning in self.warnings(catalog):
            self._log.warning("Catalog warning", warning=warning)
        if errors:
            raise CatalogValidationError(errors)
