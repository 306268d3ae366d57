"""
Scenario runner.

Owns the shared page and the per-run session record. Each scenario run
applies a session policy, takes the initial diff baseline, then runs steps in
source order and stops at the first failure.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import TYPE_CHECKING

import structlog

from specqa.auth.session_manager import SessionManager
from specqa.config import VerificationConfig
from specqa.dsl.models import SpecStep
from specqa.runner.failure import fallback_failure_context, generate_failure_context
from specqa.runner.results import (
    FailedAt,
    RunOptions,
    ScenarioResult,
    SessionState,
    SpecResult,
    StepContext,
    StepResult,
)
from specqa.runner.step_executor import StepExecutor

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.dsl.models import Scenario, TestableSpec
    from specqa.runner.adapters import ActionAgent, DiffOracle, Judge

logger = structlog.get_logger(__name__)


class ScenarioSelectionError(Exception):
    """Raised when a spec has no scenario to run under the requested name."""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ScenarioRunner:
    """
    Runs scenarios against one shared page.

    The session record (base URL, last pre-action URL, port detection flag)
    is replaced wholesale after every run instead of being mutated in place.
    """

    def __init__(
        self,
        page: Page,
        agent: ActionAgent,
        judge: Judge,
        diff: DiffOracle,
        config: VerificationConfig | None = None,
        session_manager: SessionManager | None = None,
        step_executor: StepExecutor | None = None,
    ) -> None:
        self._page = page
        self._diff = diff
        self._config = config or VerificationConfig()
        self._sessions = session_manager or SessionManager(agent, self._config)
        self._executor = step_executor or StepExecutor(agent, judge, diff, self._config)
        self._session = SessionState(base_url=self._config.base_url)
        self._log = logger.bind(component="scenario_runner")

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def page(self) -> Page:
        return self._page

    async def run_scenario(
        self, scenario: Scenario, options: RunOptions | None = None
    ) -> ScenarioResult:
        options = options or RunOptions()
        start = time.monotonic()
        page = self._page
        session = replace(self._session, pre_act_url=None)
        results: list[StepResult] = []
        failed_at: FailedAt | None = None

        self._log.info(
            "Running scenario",
            scenario=scenario.name,
            clear_session=options.clear_session,
            navigate_to_path=options.navigate_to_path,
            steps=len(scenario.steps),
        )

        try:
            session = await self._sessions.prepare(page, session, options)

            if options.reload_page:
                self._log.info("Reloading page to clean form state")
                await self._sessions.reload_and_clear(page)

            if not options.clear_session and self._config.dismiss_leftover_modals:
                await self._executor.modal.dismiss_leftover(page)

            await self._diff.snapshot(page)

            steps = scenario.steps
            for index, step in enumerate(steps):
                ctx = StepContext(
                    page=page,
                    session=session,
                    step_index=index,
                    total_steps=len(steps),
                    previous_results=results,
                    next_step=steps[index + 1] if index + 1 < len(steps) else None,
                )
                result = await self._executor.run_step(step, ctx)
                results.append(result)
                session = result.session_after or session

                if not result.success:
                    failed_at = await self._build_failure(page, step, result, index)
                    break
        except Exception as e:
            self._session = session
            self._log.error("Scenario initialization failed", scenario=scenario.name, error=str(e))
            fallback_step = scenario.steps[0] if scenario.steps else SpecStep.act("initialize")
            return ScenarioResult(
                scenario=scenario,
                success=False,
                steps=results,
                duration_ms=_elapsed_ms(start),
                failed_at=FailedAt(
                    step_index=0,
                    step=fallback_step,
                    context=fallback_failure_context(
                        fallback_step, str(e), "Browser or page initialization failed"
                    ),
                ),
                session_after=session,
            )

        self._session = session
        result = ScenarioResult(
            scenario=scenario,
            success=failed_at is None,
            steps=results,
            duration_ms=_elapsed_ms(start),
            failed_at=failed_at,
            session_after=session,
        )
        self._log.info(
            "Scenario finished",
            scenario=scenario.name,
            success=result.success,
            duration_ms=result.duration_ms,
        )
        return result

    async def _build_failure(
        self, page: Page, step: SpecStep, result: StepResult, index: int
    ) -> FailedAt:
        error = result.error
        try:
            context = await generate_failure_context(page, step, error)
        except Exception as e:
            self._log.warning("Could not capture failure context", error=str(e))
            context = fallback_failure_context(
                step, error, "Could not generate failure context - browser may have crashed"
            )
        return FailedAt(step_index=index, step=step, context=context)

    async def run_spec(self, spec: TestableSpec, scenario_name: str | None = None) -> SpecResult:
        """Run every scenario of a parsed spec, or only the one named."""
        start = time.monotonic()
        scenarios = (
            [s for s in spec.scenarios if s.name == scenario_name]
            if scenario_name
            else list(spec.scenarios)
        )
        if not scenarios:
            if scenario_name:
                available = ", ".join(spec.scenario_names())
                raise ScenarioSelectionError(
                    f'Example "{scenario_name}" not found. Available: {available}'
                )
            raise ScenarioSelectionError("No examples found in specification")

        results = [await self.run_scenario(scenario) for scenario in scenarios]
        return SpecResult(
            spec=spec,
            success=all(r.success for r in results),
            scenario_results=results,
            duration_ms=_elapsed_ms(start),
        )
