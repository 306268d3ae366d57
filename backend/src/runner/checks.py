"""
Deterministic Check execution.

Two paths never consult a judgment oracle:

- the quoted-text fast path ("'Saved' appears"), which can only pass; a
  miss falls through to semantic judgment because literal absence does not
  prove the condition false.
- pattern-classified checks (URL, title, element count, input value,
  checkbox state), which are resolved by page inspection and never escalate.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError

from specqa.dsl.classify import DeterministicCheck, match_deterministic
from specqa.dsl.intents import extract_expected_text
from specqa.dsl.models import CheckType
from specqa.runner.results import CheckResult

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = structlog.get_logger(__name__)

UNRECOGNIZED_SUGGESTION = "Use patterns like 'URL contains X' or 'Page title is Y'"

TEXT_PRESENT_JS = "(text) => document.body.innerText.includes(text)"

VISIBLE_INPUT_VALUES_JS = """
() => Array.from(document.querySelectorAll('input, textarea'))
  .filter((el) => {
    const r = el.getBoundingClientRect();
    return r.width > 0 && r.height > 0;
  })
  .map((el) => el.value)
"""

CHECKBOX_STATE_JS = """
(label) => {
  const wanted = label ? label.toLowerCase() : null;
  const boxes = Array.from(document.querySelectorAll('input[type="checkbox"], [role="checkbox"]'))
    .filter((el) => {
      const r = el.getBoundingClientRect();
      return r.width > 0 && r.height > 0;
    });
  const labelOf = (el) => {
    const parts = [el.getAttribute('aria-label') || '', el.getAttribute('name') || ''];
    if (el.labels) for (const l of el.labels) parts.push(l.textContent || '');
    const wrapping = el.closest('label');
    if (wrapping) parts.push(wrapping.textContent || '');
    return parts.join(' ').toLowerCase();
  };
  const matching = wanted ? boxes.filter((el) => labelOf(el).includes(wanted)) : boxes;
  const isChecked = (el) => el.checked === true || el.getAttribute('aria-checked') === 'true';
  return { found: matching.length, checked: matching.filter(isChecked).length };
}
"""

_URL_CONTAINS = re.compile(r"^url\s+contains\s+(.+)$", re.I)
_URL_IS = re.compile(r"^url\s+is\s+(.+)$", re.I)
_TITLE_IS = re.compile(r"^page\s+title\s+is\s+(.+)$", re.I)
_TITLE_CONTAINS = re.compile(r"^page\s+title\s+contains\s+(.+)$", re.I)
_ELEMENT_COUNT = re.compile(r"^element\s+count\s+is\s+(\d+)(?:\s+for\s+(.+))?$", re.I)
_INPUT_VALUE = re.compile(
    r"^input\s+value\s+is\s+(\"[^\"]*\"|'[^']*'|\S+)(?:\s+for\s+(.+))?$", re.I
)
_CHECKBOX = re.compile(r"^checkbox\s+is\s+checked(?:\s+(.+))?$", re.I)


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'`":
        return value[1:-1]
    return value


@dataclass(frozen=True)
class _Outcome:
    passed: bool
    expected: str
    actual: str
    suggestion: str | None = None


async def try_text_fast_path(page: Page, instruction: str) -> CheckResult | None:
    """
    Test a quoted existence/absence phrase against the rendered text.

    Returns a passing deterministic result, or None to fall through.
    """
    expected = extract_expected_text(instruction)
    if expected is None:
        return None
    text, should_exist = expected

    try:
        exists = bool(await page.evaluate(TEXT_PRESENT_JS, text))
    except PlaywrightError as e:
        logger.debug("Text fast path failed", text=text, error=str(e))
        return None

    if exists != should_exist:
        logger.debug("Text fast path missed, falling through to semantic check", text=text)
        return None

    actual = f'Found "{text}" on page' if exists else f'Text "{text}" not on page (expected absent)'
    return CheckResult(
        passed=True,
        check_type=CheckType.DETERMINISTIC,
        expected=instruction,
        actual=actual,
    )


class DeterministicChecker:
    """Resolves pattern-classified Checks by direct page inspection."""

    def __init__(self) -> None:
        self._log = logger.bind(component="deterministic_checker")
        self._handlers: dict[DeterministicCheck, Callable[[Page, str], Awaitable[_Outcome]]] = {
            DeterministicCheck.URL_CONTAINS: self._url_contains,
            DeterministicCheck.URL_IS: self._url_is,
            DeterministicCheck.TITLE_IS: self._title_is,
            DeterministicCheck.TITLE_CONTAINS: self._title_contains,
            DeterministicCheck.ELEMENT_COUNT: self._element_count,
            DeterministicCheck.INPUT_VALUE: self._input_value,
            DeterministicCheck.CHECKBOX_CHECKED: self._checkbox_checked,
        }

    async def check(self, page: Page, instruction: str) -> CheckResult:
        text = instruction.strip()
        kind = match_deterministic(text)
        if kind is None:
            return self._result(
                _Outcome(False, instruction, "Unrecognized check pattern", UNRECOGNIZED_SUGGESTION)
            )

        try:
            outcome = await self._handlers[kind](page, text)
        except PlaywrightError as e:
            self._log.warning("Deterministic check errored", check=kind.value, error=str(e))
            outcome = _Outcome(False, instruction, f"Error: {e}")

        self._log.debug(
            "Deterministic check",
            check=kind.value,
            passed=outcome.passed,
            expected=outcome.expected,
            actual=outcome.actual,
        )
        return self._result(outcome)

    @staticmethod
    def _result(outcome: _Outcome) -> CheckResult:
        return CheckResult(
            passed=outcome.passed,
            check_type=CheckType.DETERMINISTIC,
            expected=outcome.expected,
            actual=outcome.actual,
            suggestion=outcome.suggestion,
        )

    @staticmethod
    def _malformed(instruction: str, suggestion: str) -> _Outcome:
        return _Outcome(False, instruction, "Unrecognized check pattern", suggestion)

    async def _url_contains(self, page: Page, text: str) -> _Outcome:
        match = _URL_CONTAINS.match(text)
        if not match:
            return self._malformed(text, UNRECOGNIZED_SUGGESTION)
        expected = _unquote(match.group(1))
        return _Outcome(expected in page.url, expected, page.url)

    async def _url_is(self, page: Page, text: str) -> _Outcome:
        match = _URL_IS.match(text)
        if not match:
            return self._malformed(text, UNRECOGNIZED_SUGGESTION)
        expected = _unquote(match.group(1))
        return _Outcome(page.url == expected, expected, page.url)

    async def _title_is(self, page: Page, text: str) -> _Outcome:
        match = _TITLE_IS.match(text)
        if not match:
            return self._malformed(text, UNRECOGNIZED_SUGGESTION)
        expected = _unquote(match.group(1))
        title = await page.title()
        return _Outcome(title == expected, expected, title)

    async def _title_contains(self, page: Page, text: str) -> _Outcome:
        match = _TITLE_CONTAINS.match(text)
        if not match:
            return self._malformed(text, UNRECOGNIZED_SUGGESTION)
        expected = _unquote(match.group(1))
        title = await page.title()
        return _Outcome(expected in title, expected, title)

    async def _element_count(self, page: Page, text: str) -> _Outcome:
        match = _ELEMENT_COUNT.match(text)
        if not match or not match.group(2):
            return self._malformed(text, "Use 'Element count is N for \"<selector>\"'")
        expected = int(match.group(1))
        selector = _unquote(match.group(2))
        count = await page.locator(selector).count()
        return _Outcome(count == expected, str(expected), str(count))

    async def _input_value(self, page: Page, text: str) -> _Outcome:
        match = _INPUT_VALUE.match(text)
        if not match:
            return self._malformed(text, "Use 'Input value is \"X\" for \"<selector>\"'")
        expected = _unquote(match.group(1))

        if match.group(2):
            selector = _unquote(match.group(2))
            value = await page.locator(selector).first.input_value()
            return _Outcome(value == expected, expected, value)

        values = await page.evaluate(VISIBLE_INPUT_VALUES_JS) or []
        if expected in values:
            return _Outcome(True, expected, expected)
        return _Outcome(False, expected, ", ".join(f'"{v}"' for v in values) or "No visible inputs")

    async def _checkbox_checked(self, page: Page, text: str) -> _Outcome:
        match = _CHECKBOX.match(text)
        label = _unquote(match.group(1)) if match and match.group(1) else None
        expected = f'"{label}" checked' if label else "checked"

        state = await page.evaluate(CHECKBOX_STATE_JS, label)
        if not state or not state.get("found"):
            return _Outcome(False, expected, "No checkbox found")
        passed = state.get("checked", 0) > 0
        return _Outcome(passed, expected, "checked" if passed else "not checked")
