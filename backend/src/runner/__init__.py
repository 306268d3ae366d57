"""
Step and scenario execution.

Executes Act and Check steps against a live Playwright page with:
- Direct navigation/reload and observe-first select dispatch
- Bounded retries with overlay-dismissal and DOM-level fallbacks
- Deterministic checks and the dual-oracle semantic strategy
- Modal detection, auto-confirm and leftover dismissal
- Failure context capture for the step that stops a scenario
"""

from specqa.runner.adapters import (
    ActionAgent,
    ActionOutcome,
    ConditionVerdict,
    DiffOracle,
    Judge,
    Observation,
    ScenarioExecutor,
)
from specqa.runner.modal import ModalDetection, ModalHandler, detect_modal
from specqa.runner.oracles import ORACLE_ORDER, DualOracleChecker, OracleKind, PageState
from specqa.runner.results import (
    ActResult,
    CheckResult,
    FailureContext,
    RunOptions,
    ScenarioResult,
    SessionState,
    SpecResult,
    StepContext,
    StepResult,
)
from specqa.runner.scenario_runner import ScenarioRunner, ScenarioSelectionError
from specqa.runner.step_executor import StepExecutor

__all__ = [
    # Adapters
    "ActionAgent",
    "ActionOutcome",
    "ConditionVerdict",
    "DiffOracle",
    "Judge",
    "Observation",
    "ScenarioExecutor",
    # Results
    "ActResult",
    "CheckResult",
    "FailureContext",
    "RunOptions",
    "ScenarioResult",
    "SessionState",
    "SpecResult",
    "StepContext",
    "StepResult",
    # Execution
    "DualOracleChecker",
    "ModalDetection",
    "ModalHandler",
    "ORACLE_ORDER",
    "OracleKind",
    "PageState",
    "ScenarioRunner",
    "ScenarioSelectionError",
    "StepExecutor",
    "detect_modal",
]
