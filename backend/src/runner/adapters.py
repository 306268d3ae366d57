"""
Capabilities the engine consumes but does not implement.

The instruction-following agent, the judgment adapter and the diff oracle
are injected as structural protocols; concrete implementations live
elsewhere (see ``specqa.llm.judge``) or are supplied by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.dsl.models import Scenario
    from specqa.runner.results import RunOptions, ScenarioResult

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass(frozen=True)
class Observation:
    """An element the agent can perceive and how it would act on it."""

    selector: str
    description: str = ""
    method: str = ""


@dataclass(frozen=True)
class ActionOutcome:
    """Outcome of a single agent action."""

    success: bool
    message: str = ""


class ConditionVerdict(BaseModel):
    """Structured yes/no judgment of a condition against the visible page."""

    model_config = ConfigDict(frozen=True)

    passed: bool = Field(
        description=(
            "true if the condition is satisfied by ANY element currently visible "
            "on the page, false only if NO element matches"
        ),
    )
    reasoning: str = Field(default="", description="Short justification")


@runtime_checkable
class ActionAgent(Protocol):
    """Turns natural-language instructions into UI actions or observations."""

    async def act(self, instruction: str) -> ActionOutcome: ...

    async def observe(self, instruction: str | None = None) -> list[Observation]: ...


@runtime_checkable
class Judge(Protocol):
    """Structured judgment over the currently visible page."""

    async def extract(self, instruction: str, schema: type[SchemaT]) -> SchemaT: ...


@runtime_checkable
class DiffOracle(Protocol):
    """Judges conditions by comparing before/after page snapshots."""

    async def snapshot(self, page: Page) -> None: ...

    def clear_snapshots(self) -> None: ...

    async def assert_that(self, instruction: str) -> bool: ...

    async def wait_for(self, instruction: str, timeout_ms: int) -> bool: ...


class ScenarioExecutor(Protocol):
    """Runs one scenario against the shared page."""

    async def run_scenario(
        self, scenario: Scenario, options: RunOptions | None = None
    ) -> ScenarioResult: ...
