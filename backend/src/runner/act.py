"""
Act step execution with retry and fallbacks.

Strategies are tried from most to least reliable:

1. Direct page actions (navigation, reload) that bypass the agent.
2. Observe-first select dispatch for dropdowns.
3. The agent, with a bounded retry loop that enriches the instruction with
   observed page context from the second attempt on.
4. Recovery passes once the retry budget is spent: overlay dismissal plus a
   single retry, then DOM-level select and text-click fallbacks. These do not
   count against the retry budget.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import structlog
from playwright.async_api import Error as PlaywrightError

from specqa.config import VerificationConfig
from specqa.dsl.intents import extract_select_value
from specqa.runner.dom_fallbacks import try_select_fallback, try_text_click
from specqa.runner.failure import act_error_context
from specqa.runner.modal import detect_modal
from specqa.runner.results import ActResult
from specqa.runner.retry import delay, is_malformed_output_error, is_retryable_error

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.runner.adapters import ActionAgent, Observation

logger = structlog.get_logger(__name__)

NATIVE_SELECT_METHODS = frozenset({"selectoption", "select"})
PAGE_CONTEXT_LIMIT = 8


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ActExecutor:
    """Executes Act instructions against the shared page."""

    def __init__(self, agent: ActionAgent, config: VerificationConfig | None = None) -> None:
        self._agent = agent
        self._config = config or VerificationConfig()
        self._timing = self._config.stabilization
        self._retry = self._config.retry
        self._log = logger.bind(component="act_executor")

    async def execute_act_step(self, page: Page, instruction: str) -> ActResult:
        """Single agent action. Failures carry a DOM snapshot and the observable actions."""
        start = time.monotonic()
        try:
            outcome = await self._agent.act(instruction)
        except Exception as e:
            return await self._failure(page, str(e), start)

        if not outcome.success:
            return await self._failure(page, outcome.message or "Action failed", start)
        return ActResult.ok(page.url, _elapsed_ms(start))

    async def _failure(self, page: Page, error: str, start: float) -> ActResult:
        snapshot = ""
        try:
            snapshot = await page.content()
        except PlaywrightError as e:
            self._log.debug("Could not capture page snapshot", error=str(e))

        available: list[str] = []
        try:
            available = [o.description for o in await self._agent.observe()]
        except Exception as e:
            self._log.debug("Could not observe available actions", error=str(e))

        return ActResult(
            success=False,
            duration_ms=_elapsed_ms(start),
            error=error,
            page_snapshot=snapshot,
            available_actions=available,
        )

    async def execute_page_action(
        self, page: Page, action: Callable[[], Awaitable[Any]]
    ) -> ActResult:
        """Run a direct page action and wait for network quiescence."""
        start = time.monotonic()
        try:
            await action()
            await page.wait_for_load_state(
                "networkidle", timeout=self._timing.network_idle_timeout_ms
            )
        except PlaywrightError as e:
            return ActResult.failed(str(e), _elapsed_ms(start))
        return ActResult.ok(page.url, _elapsed_ms(start))

    async def navigate(self, page: Page, target: str, base_url: str) -> ActResult:
        url = target if not target.startswith("/") else f"{base_url.rstrip('/')}{target}"
        self._log.info("Direct navigation", url=url)
        return await self.execute_page_action(page, lambda: page.goto(url))

    async def reload(self, page: Page) -> ActResult:
        self._log.info("Direct reload")
        return await self.execute_page_action(page, page.reload)

    async def execute_select_action(self, page: Page, instruction: str) -> ActResult | None:
        """
        Observe the target before choosing how to drive it.

        Native selects are set directly by label, then by value. Custom
        widgets are opened and chosen with two agent actions. Anything else
        falls through to the DOM select fallback. Returns None when every
        tier failed so the caller can try the generic agent path.
        """
        value = extract_select_value(instruction)
        if value is None:
            return None
        start = time.monotonic()

        try:
            observations = await self._agent.observe(instruction)
        except Exception as e:
            self._log.debug("Observe failed for select", error=str(e))
            observations = []

        if observations:
            observation = observations[0]
            method = (observation.method or "").lower()
            native = method in NATIVE_SELECT_METHODS
            self._log.debug("Select dispatch", method=method, native=native, value=value)

            if native:
                selected = await self._select_native(page, observation.selector, value)
            else:
                selected = await self._select_custom(observation, value)
            if selected:
                await delay(self._timing.select_rerender_ms)
                return ActResult.ok(page.url, _elapsed_ms(start))
        else:
            self._log.debug("Observe returned nothing, using DOM select fallback")

        if await try_select_fallback(page, instruction):
            return ActResult.ok(page.url, _elapsed_ms(start))
        return None

    async def _select_native(self, page: Page, selector: str, value: str) -> bool:
        locator = page.locator(selector).first
        try:
            await locator.select_option(label=value)
            return True
        except PlaywrightError:
            pass
        try:
            await locator.select_option(value)
            return True
        except PlaywrightError as e:
            self._log.debug("Native select failed", selector=selector, value=value, error=str(e))
            return False

    async def _select_custom(self, observation: Observation, value: str) -> bool:
        try:
            opened = await self._agent.act(
                f"Click on the {observation.description or 'dropdown'} to open it"
            )
            if not opened.success:
                return False
            await delay(self._timing.dropdown_open_ms)
            chosen = await self._agent.act(f'Click the option "{value}" in the dropdown list')
        except Exception as e:
            self._log.debug("Custom dropdown dispatch failed", value=value, error=str(e))
            return False
        return chosen.success

    async def enhance_with_page_context(self, instruction: str) -> str:
        """Append descriptions of the elements the agent can perceive."""
        try:
            observations = await self._agent.observe(instruction)
        except Exception as e:
            self._log.debug("Observe failed, using original instruction", error=str(e))
            return instruction
        if not observations:
            return instruction
        context = "; ".join(o.description for o in observations[:PAGE_CONTEXT_LIMIT])
        return f"{instruction}. Elements visible on the page: {context}"

    async def execute_with_retry(self, page: Page, instruction: str) -> ActResult:
        max_attempts = self._retry.max_attempts
        last_failed: ActResult | None = None
        last_attempt = 1

        for attempt in range(1, max_attempts + 1):
            last_attempt = attempt
            current = (
                instruction if attempt == 1 else await self.enhance_with_page_context(instruction)
            )
            result = await self.execute_act_step(page, current)
            if result.success:
                return result

            last_failed = result
            error = result.error or ""
            if is_retryable_error(error) and attempt < max_attempts:
                self._log.warning(
                    "Act failed, retrying",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=error,
                )
                await delay(self._retry.delay_ms)
                continue

            if is_malformed_output_error(error):
                last_failed = replace(
                    result,
                    error=await act_error_context(page, instruction, attempt, max_attempts),
                )
            break

        recovered = await self._recover(page, instruction)
        if recovered is not None:
            return recovered

        if last_failed is not None:
            return last_failed
        return ActResult.failed(
            await act_error_context(page, instruction, last_attempt, max_attempts)
        )

    async def _recover(self, page: Page, instruction: str) -> ActResult | None:
        if await detect_modal(page) is not None:
            retried = await self.try_dismiss_modal_and_retry(page, instruction)
            if retried is not None:
                return retried

        start = time.monotonic()
        if await try_select_fallback(page, instruction):
            return ActResult.ok(page.url, _elapsed_ms(start))

        strategy = await try_text_click(page, instruction)
        if strategy is not None:
            await delay(self._timing.dom_click_settle_ms)
            return ActResult.ok(page.url, _elapsed_ms(start))
        return None

    async def try_dismiss_modal_and_retry(self, page: Page, instruction: str) -> ActResult | None:
        """Press Escape to clear a blocking overlay, then retry once."""
        try:
            await page.keyboard.press("Escape")
        except PlaywrightError as e:
            self._log.debug("Escape failed", error=str(e))
            return None
        await delay(self._timing.escape_settle_ms)

        result = await self.execute_act_step(page, instruction)
        if result.success:
            self._log.info("Overlay dismissed, retry succeeded", instruction=instruction[:60])
            return result
        return None
