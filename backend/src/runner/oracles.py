"""
Dual-oracle semantic Check strategy.

Two independent judges evaluate a semantic condition:

- the diff oracle compares the "before" and "after" page snapshots;
- the extraction oracle asks for a structured yes/no verdict over the page
  as it is now.

Which one is primary depends on whether the page transitioned since the
last Act. The other one is consulted as a rescue when the primary says no.
The pairing is a small table (``ORACLE_ORDER``) rather than nested
conditionals, so each of the four paths can be exercised on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from specqa.config import RetryPolicy
from specqa.dsl.models import CheckType
from specqa.runner.adapters import ConditionVerdict
from specqa.runner.failure import check_error_context
from specqa.runner.results import CheckResult
from specqa.runner.retry import delay, is_retryable_error

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.runner.adapters import DiffOracle, Judge

logger = structlog.get_logger(__name__)


class PageState(StrEnum):
    """Whether the URL changed since the last Act step."""

    STABLE = "stable"
    TRANSITIONED = "transitioned"


class OracleKind(StrEnum):
    DIFF = "diff"
    EXTRACT = "extract"


# Primary first, rescue second. Snapshot diffs are meaningless once the
# whole surrounding document has been replaced.
ORACLE_ORDER: dict[PageState, tuple[OracleKind, OracleKind]] = {
    PageState.STABLE: (OracleKind.DIFF, OracleKind.EXTRACT),
    PageState.TRANSITIONED: (OracleKind.EXTRACT, OracleKind.DIFF),
}

EXTRACT_EVALUATION_PROMPT = """Look at ALL visible elements on the page (buttons, links, text, navigation items, headings, forms, badges, icons, labels, timestamps). Evaluate whether this condition is satisfied: "{instruction}".

IMPORTANT evaluation rules:
- If the condition uses "or", it passes if ANY part is true
- "navigate the application" means ANY button/link that takes you to different sections (e.g., "Jobs", "Candidates", "Dashboard", "Settings", "Home" are navigation)
- "button to create X" includes buttons like "Create X", "Add X", "New X", or a "+" button
- For visual state indicators (edited, pinned, starred, archived, resolved, etc.), look for ANY visual cue: small text labels like "(edited)", icons (pin, star, check), CSS classes, badges, status tags, tooltips, or color changes
- Be generous in interpretation - if the page has relevant interactive elements or visual cues, the condition is likely satisfied"""

DIFF_INTERPRETATION_HINT = (
    '(INTERPRETATION: "navigate the application" = any button/link to app sections like '
    'Jobs, Candidates, Dashboard. "create X" = buttons like Create/Add/New. Use "or" '
    "generously - if ANY part is true, pass. For visual state checks like \"edited\", "
    '"pinned", "starred", look for ANY indicator: text labels, icons, badges, status '
    "tags, or visual changes.)"
)

_CONFIRMATIONS: dict[tuple[PageState, OracleKind], tuple[str, str]] = {
    (PageState.TRANSITIONED, OracleKind.EXTRACT): (
        "Confirmed by extraction oracle (page transition)",
        "Page transitioned since the last action; extraction oracle confirmed: \"{instruction}\"",
    ),
    (PageState.TRANSITIONED, OracleKind.DIFF): (
        "Confirmed by diff oracle (extraction oracle false negative mitigated)",
        "Extraction oracle rejected the condition; diff oracle rescue confirmed: \"{instruction}\"",
    ),
    (PageState.STABLE, OracleKind.DIFF): (
        "Condition met",
        'Diff oracle confirmed: "{instruction}"',
    ),
    (PageState.STABLE, OracleKind.EXTRACT): (
        "Confirmed by extraction oracle (diff oracle false negative mitigated)",
        "Diff oracle rejected the condition; extraction oracle rescue confirmed: \"{instruction}\"",
    ),
}


@dataclass(frozen=True)
class OracleVerdict:
    oracle: OracleKind
    passed: bool


class DualOracleChecker:
    """Runs a semantic Check through both oracles with a shared retry budget."""

    def __init__(
        self,
        judge: Judge,
        diff: DiffOracle,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._judge = judge
        self._diff = diff
        self._retry = retry or RetryPolicy()
        self._log = logger.bind(component="dual_oracle")

    async def extraction_verdict(self, instruction: str) -> bool:
        """Ask the judge for a yes/no verdict; an adapter error counts as no."""
        prompt = EXTRACT_EVALUATION_PROMPT.format(instruction=instruction)
        try:
            verdict = await self._judge.extract(prompt, ConditionVerdict)
        except Exception as e:
            self._log.debug("Extraction oracle errored", error=str(e))
            return False
        self._log.debug("Extraction oracle verdict", passed=verdict.passed, instruction=instruction[:80])
        return verdict.passed

    async def diff_verdict(self, page: Page, instruction: str) -> bool:
        """Take the "after" snapshot and judge the diff. Errors propagate."""
        await self._diff.snapshot(page)
        return await self._diff.assert_that(f"{instruction}\n\n{DIFF_INTERPRETATION_HINT}")

    async def _consult(self, oracle: OracleKind, page: Page, instruction: str) -> OracleVerdict:
        if oracle is OracleKind.EXTRACT:
            return OracleVerdict(oracle, await self.extraction_verdict(instruction))
        return OracleVerdict(oracle, await self.diff_verdict(page, instruction))

    async def check(self, page: Page, instruction: str, transitioned: bool = False) -> CheckResult:
        state = PageState.TRANSITIONED if transitioned else PageState.STABLE
        order = ORACLE_ORDER[state]
        max_attempts = self._retry.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                for oracle in order:
                    verdict = await self._consult(oracle, page, instruction)
                    if verdict.passed:
                        return self._confirmed(state, oracle, instruction)
            except Exception as e:
                message = str(e)
                if is_retryable_error(message) and attempt < max_attempts:
                    self._log.warning(
                        "Semantic check errored, retrying",
                        attempt=attempt,
                        max_attempts=max_attempts,
                        error=message,
                    )
                    await delay(self._retry.delay_ms)
                    continue
                self._log.warning("Semantic check errored", attempt=attempt, error=message)
                return await self._failed(page, instruction, attempt)

            if attempt < max_attempts:
                self._log.info(
                    "Semantic check not met, retrying",
                    state=state.value,
                    attempt=attempt,
                    max_attempts=max_attempts,
                )
                await delay(self._retry.delay_ms)

        return await self._failed(page, instruction, max_attempts)

    def _confirmed(self, state: PageState, oracle: OracleKind, instruction: str) -> CheckResult:
        actual, reasoning = _CONFIRMATIONS[(state, oracle)]
        self._log.info("Semantic check passed", state=state.value, oracle=oracle.value)
        return CheckResult(
            passed=True,
            check_type=CheckType.SEMANTIC,
            expected=instruction,
            actual=actual,
            reasoning=reasoning.format(instruction=instruction),
        )

    async def _failed(self, page: Page, instruction: str, attempt: int) -> CheckResult:
        return CheckResult(
            passed=False,
            check_type=CheckType.SEMANTIC,
            expected=instruction,
            actual=await check_error_context(page, instruction, attempt, self._retry.max_attempts),
            reasoning=f'Neither oracle could confirm: "{instruction}"',
        )
