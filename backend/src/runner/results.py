"""Result records and run-time context passed between runner components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from specqa.dsl.models import CheckType, Scenario, SpecStep, TestableSpec

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.auth.credentials import CredentialSet


@dataclass(frozen=True)
class SessionState:
    """
    Immutable per-run session record.

    Step and scenario execution return an updated copy instead of mutating
    shared fields on the runner.
    """

    base_url: str
    pre_act_url: str | None = None
    port_detected: bool = False

    def with_pre_act_url(self, url: str | None) -> SessionState:
        return replace(self, pre_act_url=url)

    def with_base_url(self, base_url: str, port_detected: bool = True) -> SessionState:
        return replace(self, base_url=base_url.rstrip("/"), port_detected=port_detected)

    def page_transitioned(self, current_url: str) -> bool:
        """Whether the page URL changed since the last Act step."""
        return self.pre_act_url is not None and current_url != self.pre_act_url


@dataclass
class ActResult:
    """Outcome of an Act step."""

    success: bool
    duration_ms: int = 0
    page_url: str | None = None
    error: str | None = None
    page_snapshot: str | None = None
    available_actions: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, page_url: str, duration_ms: int = 0) -> ActResult:
        return cls(success=True, duration_ms=duration_ms, page_url=page_url)

    @classmethod
    def failed(cls, error: str, duration_ms: int = 0) -> ActResult:
        return cls(success=False, duration_ms=duration_ms, error=error)


@dataclass
class CheckResult:
    """Outcome of a Check step."""

    passed: bool
    check_type: CheckType
    expected: str
    actual: str
    reasoning: str | None = None
    suggestion: str | None = None


@dataclass
class StepResult:
    """Result of a single step execution."""

    step: SpecStep
    success: bool
    duration_ms: int = 0
    act_result: ActResult | None = None
    check_result: CheckResult | None = None
    session_after: SessionState | None = None

    @property
    def error(self) -> str:
        """Best description of why the step failed."""
        if self.act_result is not None:
            return self.act_result.error or "Act step failed"
        if self.check_result is not None:
            return self.check_result.actual or "Check step failed"
        return "Step failed"


@dataclass(frozen=True)
class InteractiveElement:
    """An interactive element near the point of failure."""

    type: str
    selector: str
    text: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class FailureContext:
    """Diagnostics captured when a step finally fails."""

    page_url: str
    page_snapshot: str
    failed_step: SpecStep
    error: str
    available_elements: list[InteractiveElement] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_url": self.page_url,
            "failed_step": self.failed_step.instruction,
            "line_number": self.failed_step.line_number,
            "error": self.error,
            "available_elements": [
                {"type": e.type, "text": e.text, "selector": e.selector, "attributes": e.attributes}
                for e in self.available_elements
            ],
            "suggestions": self.suggestions,
        }


@dataclass
class FailedAt:
    """Where a scenario stopped."""

    step_index: int
    step: SpecStep
    context: FailureContext


@dataclass
class ScenarioResult:
    """Result of running one scenario."""

    scenario: Scenario
    success: bool
    steps: list[StepResult] = field(default_factory=list)
    duration_ms: int = 0
    failed_at: FailedAt | None = None
    session_after: SessionState | None = None

    @property
    def error(self) -> str | None:
        return self.failed_at.context.error if self.failed_at else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario.name,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "steps": [
                {
                    "instruction": r.step.instruction,
                    "success": r.success,
                    "duration_ms": r.duration_ms,
                    "error": None if r.success else r.error,
                }
                for r in self.steps
            ],
            "failed_at": (
                {"step_index": self.failed_at.step_index, **self.failed_at.context.to_dict()}
                if self.failed_at
                else None
            ),
        }


@dataclass
class SpecResult:
    """Result of running the scenarios of a parsed specification."""

    spec: TestableSpec
    success: bool
    scenario_results: list[ScenarioResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def steps(self) -> list[StepResult]:
        return self.scenario_results[0].steps if self.scenario_results else []

    @property
    def failed_at(self) -> FailedAt | None:
        return self.scenario_results[0].failed_at if self.scenario_results else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "spec": self.spec.name,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "scenarios": [r.to_dict() for r in self.scenario_results],
        }


@dataclass
class RunOptions:
    """
    Session handling for one scenario run.

    clear_session: hard reset before the first step.
    navigate_to_path: soft-navigate here when not clearing the session.
    credentials: used to recover a lost session during soft navigation.
    reload_page: reload and clear form fields before the first step.
    """

    clear_session: bool = True
    navigate_to_path: str | None = None
    credentials: CredentialSet | None = None
    reload_page: bool = False


@dataclass
class StepContext:
    """Everything a step needs from the scenario being run."""

    page: Page
    session: SessionState
    step_index: int = 0
    total_steps: int = 1
    previous_results: list[StepResult] = field(default_factory=list)
    next_step: SpecStep | None = None
