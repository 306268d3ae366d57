"""
Pydantic models for parsed behavior specifications.

Behaviors, scenarios and steps are immutable value records built once per
verification run. Processed copies (for example with credentials injected)
are produced with ``model_copy`` and never mutate the originals.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class StepKind(StrEnum):
    """Kind of a scenario step."""

    ACT = "act"
    CHECK = "check"


class CheckType(StrEnum):
    """How a Check instruction is resolved."""

    DETERMINISTIC = "deterministic"
    SEMANTIC = "semantic"


class SpecStep(BaseModel):
    """A single Act or Check line from a scenario."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: StepKind
    instruction: str = Field(..., min_length=1)
    line_number: int = Field(default=0, ge=0)
    check_type: CheckType | None = None

    @field_validator("instruction")
    @classmethod
    def strip_instruction(cls, v: str) -> str:
        """Normalize surrounding whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("instruction must not be blank")
        return v

    @model_validator(mode="after")
    def validate_check_type(self) -> SpecStep:
        """Only Check steps carry a classification."""
        if self.kind == StepKind.ACT and self.check_type is not None:
            raise ValueError("Act steps cannot have a check_type")
        if self.kind == StepKind.CHECK and self.check_type is None:
            raise ValueError("Check steps require a check_type")
        return self

    @classmethod
    def act(cls, instruction: str, line_number: int = 0) -> SpecStep:
        return cls(kind=StepKind.ACT, instruction=instruction, line_number=line_number)

    @classmethod
    def check(
        cls,
        instruction: str,
        line_number: int = 0,
        check_type: CheckType | None = None,
    ) -> SpecStep:
        """Build a Check step, classifying the instruction when no type is given."""
        if check_type is None:
            from specqa.dsl.classify import classify_check

            check_type = classify_check(instruction)
        return cls(
            kind=StepKind.CHECK,
            instruction=instruction,
            line_number=line_number,
            check_type=check_type,
        )

    @property
    def is_act(self) -> bool:
        return self.kind == StepKind.ACT

    @property
    def is_check(self) -> bool:
        return self.kind == StepKind.CHECK

    def with_instruction(self, instruction: str) -> SpecStep:
        """Return a copy of this step with a different instruction."""
        if instruction == self.instruction:
            return self
        return self.model_copy(update={"instruction": instruction})


class Scenario(BaseModel):
    """A named, ordered sequence of steps (also called an example)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    steps: tuple[SpecStep, ...] = ()

    def with_steps(self, steps: list[SpecStep] | tuple[SpecStep, ...]) -> Scenario:
        return self.model_copy(update={"steps": tuple(steps)})

    @property
    def act_steps(self) -> list[SpecStep]:
        return [s for s in self.steps if s.is_act]


class BehaviorDependency(BaseModel):
    """Reference from one behavior to a prerequisite behavior."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    behavior_id: str = Field(..., min_length=1)
    scenario_name: str | None = None


class Behavior(BaseModel):
    """An independently verifiable capability of the application under test."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    title: str = Field(..., min_length=1)
    description: str = ""
    dependencies: tuple[BehaviorDependency, ...] = ()
    scenarios: tuple[Scenario, ...] = ()
    page_path: str | None = None

    @field_validator("page_path")
    @classmethod
    def validate_page_path(cls, v: str | None) -> str | None:
        """Page paths are root-relative routes."""
        if v is not None and not v.startswith("/"):
            raise ValueError(f"page_path must start with '/': {v!r}")
        return v

    @property
    def dependency_ids(self) -> list[str]:
        return [d.behavior_id for d in self.dependencies]

    def scenario(self, name: str | None = None) -> Scenario | None:
        """
        Select a scenario by name.

        Falls back to the first scenario when no name is given or the name is
        unknown. Returns None when the behavior has no scenarios at all.
        """
        if name:
            for scenario in self.scenarios:
                if scenario.name == name:
                    return scenario
        return self.scenarios[0] if self.scenarios else None


BehaviorCatalog = dict[str, Behavior]


class TestableSpec(BaseModel):
    """A parsed specification document."""

    __test__ = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    directory: str | None = None
    scenarios: tuple[Scenario, ...] = ()
    behaviors: dict[str, Behavior] = Field(default_factory=dict)

    def scenario_names(self) -> list[str]:
        return [s.name for s in self.scenarios]
