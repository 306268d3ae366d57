"""
Step execution.

Runs one Act or Check step against the shared page and converts every
outcome, including adapter crashes, into a StepResult. Owns the diff
oracle's snapshot lifecycle: a fresh "before" baseline ahead of every Act
and a re-baseline after recognized settling events.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog
from playwright.async_api import Error as PlaywrightError

from specqa.config import VerificationConfig
from specqa.dsl.intents import (
    detect_navigation,
    extract_navigation_target,
    extract_select_value,
    is_click_action,
    is_modal_dismiss,
    is_modal_trigger,
    is_refresh,
    is_save_action,
)
from specqa.dsl.models import CheckType
from specqa.runner.act import ActExecutor
from specqa.runner.checks import DeterministicChecker, try_text_fast_path
from specqa.runner.form_filler import FormFiller
from specqa.runner.modal import ModalHandler, should_auto_confirm
from specqa.runner.oracles import DualOracleChecker
from specqa.runner.results import ActResult, CheckResult, SessionState, StepResult
from specqa.runner.retry import delay

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.dsl.models import SpecStep
    from specqa.runner.adapters import ActionAgent, DiffOracle, Judge
    from specqa.runner.results import StepContext

logger = structlog.get_logger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class StepExecutor:
    """
    Executes single steps.

    Act dispatch order: direct navigation, direct reload, observe-first
    select, then the agent with retries and recovery fallbacks. Check
    order: quoted-text fast path, pattern-classified deterministic checks,
    then the dual-oracle semantic strategy.
    """

    def __init__(
        self,
        agent: ActionAgent,
        judge: Judge,
        diff: DiffOracle,
        config: VerificationConfig | None = None,
    ) -> None:
        self._config = config or VerificationConfig()
        self._diff = diff
        self._timing = self._config.stabilization
        self._act = ActExecutor(agent, self._config)
        self._modal = ModalHandler(agent, diff, self._timing)
        self._forms = FormFiller()
        self._deterministic = DeterministicChecker()
        self._oracles = DualOracleChecker(judge, diff, self._config.retry)
        self._log = logger.bind(component="step_executor")

    @property
    def modal(self) -> ModalHandler:
        return self._modal

    async def rebaseline(self, page: Page) -> None:
        """Drop both snapshots and take a fresh "before" snapshot."""
        self._diff.clear_snapshots()
        await self._diff.snapshot(page)

    async def run_step(self, step: SpecStep, ctx: StepContext) -> StepResult:
        start = time.monotonic()
        self._log.info(
            "Running step",
            index=ctx.step_index + 1,
            total=ctx.total_steps,
            kind=step.kind.value,
            instruction=step.instruction[:80],
        )
        try:
            if step.is_act:
                result = await self._run_act(step, ctx, start)
            else:
                result = await self._run_check(step, ctx, start)
        except Exception as e:
            self._log.error("Step crashed", instruction=step.instruction[:80], error=str(e))
            return self._crashed(step, ctx.session, str(e), start)

        if not result.success:
            self._log.warning("Step failed", instruction=step.instruction[:80], error=result.error)
        return result

    @staticmethod
    def _crashed(step: SpecStep, session: SessionState, error: str, start: float) -> StepResult:
        duration = _elapsed_ms(start)
        if step.is_act:
            return StepResult(
                step=step,
                success=False,
                duration_ms=duration,
                act_result=ActResult.failed(error, duration),
                session_after=session,
            )
        return StepResult(
            step=step,
            success=False,
            duration_ms=duration,
            check_result=CheckResult(
                passed=False,
                check_type=step.check_type or CheckType.SEMANTIC,
                expected=step.instruction,
                actual=error,
            ),
            session_after=session,
        )

    # ---- Act ----

    async def _run_act(self, step: SpecStep, ctx: StepContext, start: float) -> StepResult:
        page = ctx.page
        instruction = step.instruction
        session = ctx.session.with_pre_act_url(page.url)

        await self.rebaseline(page)

        def finish(act_result: ActResult) -> StepResult:
            return StepResult(
                step=step,
                success=act_result.success,
                duration_ms=_elapsed_ms(start),
                act_result=act_result,
                session_after=session,
            )

        target = detect_navigation(instruction)
        if target is not None:
            return finish(await self._act.navigate(page, target, session.base_url))

        if is_refresh(instruction):
            return finish(await self._act.reload(page))

        if extract_select_value(instruction) is not None:
            selected = await self._act.execute_select_action(page, instruction)
            if selected is not None:
                return finish(selected)

        if is_save_action(instruction):
            await self._forms.fill_empty_required_fields(page)

        act_result = await self._act.execute_with_retry(page, instruction)

        if act_result.success:
            await self._stabilize(page, instruction, session)
            if self._config.auto_confirm_modals and should_auto_confirm(step, ctx.next_step):
                if await self._modal.auto_confirm(page):
                    await self.rebaseline(page)
        else:
            relaxed = self._redundant_navigation(page, instruction, start)
            if relaxed is not None:
                act_result = relaxed

        return finish(act_result)

    async def _stabilize(self, page: Page, instruction: str, session: SessionState) -> None:
        save = is_save_action(instruction)
        dismiss = is_modal_dismiss(instruction)
        trigger = is_modal_trigger(instruction)

        if is_click_action(instruction) and not (save or dismiss or trigger):
            await delay(self._timing.post_click_ms)
            if session.page_transitioned(page.url):
                self._log.info(
                    "In-place navigation detected",
                    before=session.pre_act_url,
                    after=page.url,
                )
                await self.rebaseline(page)

        if save:
            await self._wait_for_form_dismissal(page)
            await self.rebaseline(page)
        elif dismiss:
            await self._modal.wait_for_dismissal(page)
        elif trigger:
            await self._modal.wait_for_appearance(page)

    async def _wait_for_form_dismissal(self, page: Page) -> None:
        try:
            await page.wait_for_load_state(
                "networkidle", timeout=self._timing.form_dismissal_timeout_ms
            )
        except PlaywrightError as e:
            self._log.debug("No network idle after save", error=str(e))
        await delay(self._timing.form_dismissal_delay_ms)

    def _redundant_navigation(self, page: Page, instruction: str, start: float) -> ActResult | None:
        """A failed navigation click whose target is already the current path is a no-op."""
        target = extract_navigation_target(instruction)
        if not target:
            return None
        path = urlparse(page.url).path.lower()
        if target not in path:
            return None
        self._log.info(
            "Navigation target already reached, treating failed act as no-op",
            path=path,
            target=target,
        )
        return ActResult.ok(page.url, _elapsed_ms(start))

    # ---- Check ----

    async def _run_check(self, step: SpecStep, ctx: StepContext, start: float) -> StepResult:
        page = ctx.page
        instruction = step.instruction

        check_result = await try_text_fast_path(page, instruction)
        if check_result is None:
            if step.check_type is CheckType.DETERMINISTIC:
                check_result = await self._deterministic.check(page, instruction)
            else:
                transitioned = ctx.session.page_transitioned(page.url)
                check_result = await self._oracles.check(page, instruction, transitioned)

        return StepResult(
            step=step,
            success=check_result.passed,
            duration_ms=_elapsed_ms(start),
            check_result=check_result,
            session_after=ctx.session,
        )
