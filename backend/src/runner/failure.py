"""
Failure diagnostics.

Builds the page-context strings attached to failed Act/Check attempts and
the FailureContext (nearby interactive elements plus remediation
suggestions) attached to the step that stops a scenario.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError

from specqa.runner.results import FailureContext, InteractiveElement

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.dsl.models import SpecStep

logger = structlog.get_logger(__name__)

VISIBLE_ELEMENTS_JS = """
(includeType) => {
  const els = Array.from(document.querySelectorAll('button, a, input, select, [role="button"]'));
  return els.slice(0, 10).map(el => {
    const tag = el.tagName.toLowerCase();
    const text = (el.textContent || '').trim().slice(0, 30);
    const type = el.getAttribute('type') || '';
    let desc = tag;
    if (includeType && type) desc += `[type=${type}]`;
    if (text) desc += `: "${text}"`;
    return desc;
  });
}
"""

INTERACTIVE_ELEMENTS_JS = """
() => {
  const elements = document.querySelectorAll('button, a, input, select, textarea');
  return Array.from(elements).slice(0, 20).map(el => {
    const tagName = el.tagName.toLowerCase();
    const type = tagName === 'a' ? 'link' : tagName;
    const text = (el.textContent || '').trim().slice(0, 50);
    let selector = tagName;
    if (el.id) selector += `#${el.id}`;
    else if (el.className && typeof el.className === 'string' && el.className.trim())
      selector += `.${el.className.trim().split(/\\s+/)[0]}`;
    else if (el.getAttribute('name')) selector += `[name='${el.getAttribute('name')}']`;
    const attributes = {};
    for (const attr of ['type', 'name', 'placeholder', 'href', 'value']) {
      const value = el.getAttribute(attr);
      if (value) attributes[attr] = value;
    }
    return { type, text, selector, attributes };
  });
}
"""

_LOGIN_TITLE = re.compile(r"sign in|login")
_LOGIN_URL = re.compile(r"/login|/signin|/auth")
_ERROR_TITLE = re.compile(r"error|404|not found")

NOT_FOUND_ERROR = re.compile(
    r"element not found|no object generated|could not locate|schema|not found|no element", re.I
)
TIMEOUT_ERROR = re.compile(r"timeout|timed out", re.I)
PAGE_STATE_ERROR = re.compile(
    r"unexpected page state|login page|session may have expired|WARNING: Page appears", re.I
)


async def _page_context(page: Page, include_type: bool) -> tuple[str, str, str]:
    """Return (page context, page-state warning, visible elements) fragments."""
    try:
        url = page.url
        title = await page.title()
        context = f' Current page: "{title}" ({url}).'

        warning = ""
        if _LOGIN_TITLE.search(title.lower()) or _LOGIN_URL.search(url.lower()):
            warning = " WARNING: Page appears to be a login page - session may have expired."
        elif _ERROR_TITLE.search(title.lower()):
            warning = " WARNING: Page appears to be an error page."

        elements = await page.evaluate(VISIBLE_ELEMENTS_JS, include_type)
        visible = f" Visible elements: [{', '.join(elements)}]." if elements else ""
        return context, warning, visible
    except PlaywrightError as e:
        logger.debug("Could not read page context", error=str(e))
        return "", "", ""


async def act_error_context(page: Page, instruction: str, attempt: int, max_attempts: int) -> str:
    context, warning, visible = await _page_context(page, include_type=True)
    return (
        f'Act failed: Could not execute "{instruction}".{context}{warning}{visible}'
        f" (Attempt {attempt}/{max_attempts})"
    )


async def check_error_context(
    page: Page, instruction: str, attempt: int, max_attempts: int
) -> str:
    context, _, visible = await _page_context(page, include_type=False)
    return (
        f'Check failed: "{instruction}" was not satisfied.{context}{visible}'
        f" (Attempt {attempt}/{max_attempts})"
    )


async def extract_interactive_elements(page: Page) -> list[InteractiveElement]:
    raw = await page.evaluate(INTERACTIVE_ELEMENTS_JS)
    return [
        InteractiveElement(
            type=item["type"],
            selector=item["selector"],
            text=item.get("text") or None,
            attributes=item.get("attributes") or {},
        )
        for item in raw
    ]


def generate_suggestions(
    error: str,
    step: SpecStep,
    elements: list[InteractiveElement],
) -> list[str]:
    """Heuristic remediation hints keyed off the shape of the error message."""
    is_not_found = bool(NOT_FOUND_ERROR.search(error))
    is_timeout = bool(TIMEOUT_ERROR.search(error))

    if PAGE_STATE_ERROR.search(error):
        return [
            "The page is in an unexpected state (likely redirected to login)",
            "Check if the application properly persists user sessions",
            "The application may have a session timeout or auth issue",
        ]

    if is_not_found and step.is_act:
        lowered = step.instruction.lower()
        if "click" in lowered:
            names = [
                e.text or e.selector for e in elements if e.type in ("button", "link")
            ][:5]
            suggestions = ["The button or clickable element was not found on the page"]
            if names:
                suggestions.append(f"Available clickable elements: {', '.join(names)}")
            suggestions.append("The feature may not be implemented in the application")
            return suggestions
        if re.search(r"select|dropdown|change|choose", lowered):
            return [
                "The dropdown or select element was not found or is not interactive",
                "Check if the dropdown needs to be opened first",
            ]
        if re.search(r"fill|type|enter", lowered):
            return [
                "The input field was not found on the page",
                "Check if the form or modal is visible and not hidden",
            ]
        return ["The UI element for this action was not found", "This feature may not be implemented"]

    if is_not_found and step.is_check:
        return [
            "The expected content was not found on the page",
            "Verify the previous action completed successfully",
            "This feature may not be implemented correctly",
        ]

    if is_timeout:
        return ["The operation timed out", "Check for JavaScript errors in the application"]

    return ["Check if the page is fully loaded", "Review the application implementation"]


async def generate_failure_context(page: Page, step: SpecStep, error: str) -> FailureContext:
    """Capture URL, DOM snapshot, nearby elements and suggestions for a failed step."""
    page_url = page.url
    snapshot = await page.content()
    elements = await extract_interactive_elements(page)
    return FailureContext(
        page_url=page_url,
        page_snapshot=snapshot,
        failed_step=step,
        error=error,
        available_elements=elements,
        suggestions=generate_suggestions(error, step, elements),
    )


def fallback_failure_context(step: SpecStep, error: str, suggestion: str) -> FailureContext:
    return FailureContext(
        page_url="",
        page_snapshot="",
        failed_step=step,
        error=error,
        suggestions=[suggestion],
    )
