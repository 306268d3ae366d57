"""
Unit tests for specification models and catalog validation.

Tests cover:
- SpecStep construction and validation
- Scenario selection on behaviors
- Catalog validation errors and warnings
- Cycle detection
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from specqa.dsl.models import (
    Behavior,
    BehaviorDependency,
    CheckType,
    Scenario,
    SpecStep,
    StepKind,
)
from specqa.dsl.validator import CatalogValidationError, CatalogValidator, find_cycles


def _behavior(behavior_id: str, *deps: str, scenarios: tuple[str, ...] = ("Main",)) -> Behavior:
    return Behavior(
        id=behavior_id,
        title=behavior_id.replace("-", " ").title(),
        dependencies=tuple(BehaviorDependency(behavior_id=d) for d in deps),
        scenarios=tuple(Scenario(name=n, steps=(SpecStep.act("Click go"),)) for n in scenarios),
    )


class TestSpecStep:
    """Tests for SpecStep."""

    def test_act_factory(self) -> None:
        """Test Act steps carry no check type."""
        step = SpecStep.act("  Click go  ", line_number=4)

        assert step.kind == StepKind.ACT
        assert step.instruction == "Click go"
        assert step.check_type is None
        assert step.is_act and not step.is_check

    def test_blank_instruction_rejected(self) -> None:
        """Test whitespace-only instructions are invalid."""
        with pytest.raises(ValidationError):
            SpecStep.act("   ")

    def test_act_with_check_type_rejected(self) -> None:
        """Test Act steps cannot be classified."""
        with pytest.raises(ValidationError, match="Act steps"):
            SpecStep(kind=StepKind.ACT, instruction="Click", check_type=CheckType.SEMANTIC)

    def test_with_instruction_copies(self) -> None:
        """Test rewriting an instruction never mutates the original."""
        step = SpecStep.act("Type 'a' into the email field", line_number=2)
        rewritten = step.with_instruction("Type 'b' into the email field")

        assert step.instruction == "Type 'a' into the email field"
        assert rewritten.instruction == "Type 'b' into the email field"
        assert rewritten.line_number == 2
        assert step.with_instruction(step.instruction) is step

    def test_frozen(self) -> None:
        """Test steps are immutable."""
        step = SpecStep.act("Click go")
        with pytest.raises(ValidationError):
            step.instruction = "Click stop"  # type: ignore[misc]


class TestBehavior:
    """Tests for Behavior."""

    def test_scenario_by_name(self) -> None:
        """Test a named scenario is selected."""
        behavior = _behavior("edit-task", scenarios=("Rename", "Cancel"))
        assert behavior.scenario("Cancel").name == "Cancel"

    def test_scenario_falls_back_to_first(self) -> None:
        """Test unknown or missing names fall back to the first scenario."""
        behavior = _behavior("edit-task", scenarios=("Rename", "Cancel"))

        assert behavior.scenario().name == "Rename"
        assert behavior.scenario("Unknown").name == "Rename"

    def test_invalid_id(self) -> None:
        """Test ids must be slugs."""
        with pytest.raises(ValidationError):
            Behavior(id="Sign Up", title="Sign Up")

    def test_page_path_must_be_rooted(self) -> None:
        """Test page paths start with a slash."""
        with pytest.raises(ValidationError, match="page_path"):
            Behavior(id="tasks", title="Tasks", page_path="tasks")


class TestCatalogValidator:
    """Tests for CatalogValidator."""

    def test_valid_catalog(self) -> None:
        """Test a consistent catalog has no errors."""
        catalog = {b.id: b for b in (_behavior("a"), _behavior("b", "a"))}
        assert CatalogValidator().validate(catalog) == []

    def test_missing_dependency(self) -> None:
        """Test unresolved dependencies are errors."""
        catalog = {"b": _behavior("b", "ghost")}

        with pytest.raises(CatalogValidationError) as exc_info:
            CatalogValidator().validate_or_raise(catalog)
        assert "dependency 'ghost' not found" in exc_info.value.errors[0]

    def test_duplicate_scenario(self) -> None:
        """Test duplicate scenario names within a behavior are errors."""
        catalog = {"a": _behavior("a", scenarios=("Main", "Main"))}
        assert "duplicate scenario" in CatalogValidator().validate(catalog)[0]

    def test_unknown_scenario_is_warning(self) -> None:
        """Test a dependency naming an unknown scenario only warns."""
        child = Behavior(
            id="b",
            title="B",
            dependencies=(BehaviorDependency(behavior_id="a", scenario_name="Nope"),),
        )
        catalog = {"a": _behavior("a"), "b": child}
        validator = CatalogValidator()

        assert validator.validate(catalog) == []
        warnings = validator.warnings(catalog)
        assert any("no scenario 'Nope'" in w for w in warnings)
        assert any("has no scenarios" in w for w in warnings)

    def test_cycle_is_warning(self) -> None:
        """Test cycles are reported but do not fail validation."""
        catalog = {b.id: b for b in (_behavior("a", "b"), _behavior("b", "a"))}
        validator = CatalogValidator()

        validator.validate_or_raise(catalog)
        assert validator.warnings(catalog) == ["Dependency cycle: a -> b -> a"]


class TestFindCycles:
    """Tests for cycle detection."""

    def test_acyclic(self) -> None:
        """Test a diamond has no cycles."""
        behaviors = (
            _behavior("a"),
            _behavior("b", "a"),
            _behavior("c", "a"),
            _behavior("d", "b", "c"),
        )
        catalog = {b.id: b for b in behaviors}
        assert find_cycles(catalog) == []

    def test_self_cycle(self) -> None:
        """Test a behavior depending on itself."""
        assert find_cycles({"a": _behavior("a", "a")}) == [["a", "a"]]

    def test_three_cycle_reported_once(self) -> None:
        """Test a longer cycle is reported once."""
        catalog = {b.id: b for b in (_behavior("a", "b"), _behavior("b", "c"), _behavior("c", "a"))}
        assert find_cycles(catalog) == [["a", "b", "c", "a"]]

    def test_unknown_dependencies_ignored(self) -> None:
        """Test dangling references do not break detection."""
        assert find_cycles({"a": _behavior("a", "ghost")}) == []
