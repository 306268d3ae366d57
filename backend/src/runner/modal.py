"""
Modal and overlay handling.

A single combined DOM query finds the first visible dialog-like element and,
in the same pass, its confirm control. Auto-confirm, leftover dismissal and
the post-action waits all reuse that one primitive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError

from specqa.config import StabilizationConfig
from specqa.dsl.intents import is_modal_dismiss, is_modal_trigger
from specqa.runner.retry import delay

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.dsl.models import SpecStep
    from specqa.runner.adapters import ActionAgent, DiffOracle

logger = structlog.get_logger(__name__)

MODAL_SELECTOR = ", ".join(
    (
        '[role="dialog"]',
        '[role="alertdialog"]',
        "dialog[open]",
        '[class*="modal" i]',
        '[class*="dialog" i]',
        '[class*="overlay" i]',
    )
)

DETECT_MODAL_JS = """
(selector) => {
  const confirmRe = /^(confirm|ok|yes|delete|remove|archive|submit|save|apply|approve)$/i;
  const cancelRe = /^(cancel|close|dismiss|no|back|never\\s*mind)$/i;

  const candidates = document.querySelectorAll(selector);
  for (let i = 0; i < candidates.length; i++) {
    const el = candidates[i];
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) continue;

    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') continue;

    const cls = typeof el.className === 'string' ? el.className.toLowerCase() : '';
    if (cls.includes('overlay') && !el.querySelector('button, input, [role="button"], a')) continue;

    const buttons = el.querySelectorAll('button, [role="button"], input[type="submit"]');
    let confirmButton = null;
    for (let j = 0; j < buttons.length; j++) {
      const btn = buttons[j];
      const text = (btn.textContent || btn.value || '').trim();
      if (cancelRe.test(text)) continue;
      if (confirmRe.test(text)) {
        if (btn.id) {
          confirmButton = `#${btn.id}`;
        } else if (btn.dataset && btn.dataset.testid) {
          confirmButton = `[data-testid="${btn.dataset.testid}"]`;
        } else {
          confirmButton = `${el.tagName.toLowerCase()}${el.id ? '#' + el.id : ''} button:nth-of-type(${j + 1})`;
        }
        break;
      }
    }

    const role = el.getAttribute('role');
    const modalSelector = el.id ? `#${el.id}` : (role ? `[role="${role}"]` : el.tagName.toLowerCase());
    return { selector: modalSelector, confirmButton };
  }
  return null;
}
"""

CLICK_CANCEL_JS = """
(sel) => {
  const cancelRe = /^(cancel|close|dismiss|no|×|✕|x)$/i;
  const el = document.querySelector(sel);
  if (!el) return false;
  const buttons = el.querySelectorAll('button, [role="button"]');
  for (let i = 0; i < buttons.length; i++) {
    const btn = buttons[i];
    const text = (btn.textContent || '').trim();
    const label = btn.getAttribute('aria-label') || '';
    if (cancelRe.test(text) || /close/i.test(label)) {
      btn.click();
      return true;
    }
  }
  return false;
}
"""

MODAL_APPEARED = "A modal, dialog, confirmation popup, or overlay has appeared on the page."
MODAL_CLOSED = "The modal, dialog, or popup that was previously visible has been closed."
CONFIRM_INSTRUCTION = "Click the confirm, OK, submit, or primary action button in the modal/dialog"


@dataclass(frozen=True)
class ModalDetection:
    """A visible modal and, if found, its confirm control."""

    selector: str
    confirm_button: str | None = None


async def detect_modal(page: Page) -> ModalDetection | None:
    """Return the first visible dialog-like element, or None."""
    try:
        found = await page.evaluate(DETECT_MODAL_JS, MODAL_SELECTOR)
    except PlaywrightError as e:
        logger.debug("Modal detection failed", error=str(e))
        return None
    if not found:
        return None
    return ModalDetection(selector=found["selector"], confirm_button=found.get("confirmButton"))


def should_auto_confirm(current: SpecStep, next_step: SpecStep | None) -> bool:
    """
    Auto-confirm only after a modal-trigger step, and only when the scenario
    does not handle the modal itself with an explicit dismiss step next.
    """
    if not current.is_act or not is_modal_trigger(current.instruction):
        return False
    if next_step is None:
        return True
    if next_step.is_act and is_modal_dismiss(next_step.instruction):
        return False
    return True


class ModalHandler:
    """Auto-confirm, leftover dismissal and modal lifecycle waits."""

    def __init__(
        self,
        agent: ActionAgent,
        diff: DiffOracle,
        stabilization: StabilizationConfig | None = None,
    ) -> None:
        self._agent = agent
        self._diff = diff
        self._timing = stabilization or StabilizationConfig()
        self._log = logger.bind(component="modal_handler")

    async def auto_confirm(self, page: Page) -> bool:
        """Click the modal's confirm control, or ask the agent to find one."""
        modal = await detect_modal(page)
        if modal is None:
            return False

        try:
            if modal.confirm_button:
                await page.click(modal.confirm_button, timeout=self._timing.modal_click_timeout_ms)
                self._log.info("Clicked modal confirm button", selector=modal.confirm_button)
            else:
                outcome = await self._agent.act(CONFIRM_INSTRUCTION)
                if not outcome.success:
                    self._log.warning("Agent could not confirm modal", message=outcome.message)
                    return False
                self._log.info("Confirmed modal via agent")
        except Exception as e:
            self._log.warning("Modal auto-confirm failed", error=str(e))
            return False

        await delay(self._timing.modal_confirm_delay_ms)
        return True

    async def dismiss_leftover(self, page: Page) -> bool:
        """Escape, then a cancel/close control inside the modal, then Escape again."""
        modal = await detect_modal(page)
        if modal is None:
            return False

        self._log.info("Found leftover modal", selector=modal.selector)
        settle = self._timing.modal_dismiss_poll_ms
        try:
            await page.keyboard.press("Escape")
            await delay(settle)
            if await detect_modal(page) is None:
                self._log.info("Dismissed leftover modal", via="escape")
                return True

            if await page.evaluate(CLICK_CANCEL_JS, modal.selector):
                await delay(settle)
                self._log.info("Dismissed leftover modal", via="cancel_button")
                return True

            await page.keyboard.press("Escape")
            await delay(settle)
            return True
        except PlaywrightError as e:
            self._log.warning("Leftover modal dismissal failed", error=str(e))
            return False

    async def wait_for_appearance(self, page: Page) -> bool:
        """DOM polling first, then the diff oracle for non-standard modals."""
        for _ in range(self._timing.modal_poll_attempts):
            modal = await detect_modal(page)
            if modal is not None:
                self._log.debug("Modal appeared", selector=modal.selector, via="dom")
                return True
            await delay(self._timing.modal_appear_poll_ms)

        try:
            appeared = await self._diff.wait_for(MODAL_APPEARED, self._timing.modal_llm_timeout_ms)
        except Exception as e:
            self._log.debug("No modal appeared", error=str(e))
            return False
        return appeared

    async def wait_for_dismissal(self, page: Page) -> bool:
        """Poll until the modal is gone; always re-baseline the diff oracle afterwards."""
        closed = False
        for _ in range(self._timing.modal_poll_attempts):
            if await detect_modal(page) is None:
                closed = True
                break
            await delay(self._timing.modal_dismiss_poll_ms)

        if not closed:
            try:
                closed = await self._diff.wait_for(MODAL_CLOSED, self._timing.modal_llm_timeout_ms)
            except Exception as e:
                self._log.debug("Modal did not close", error=str(e))

        self._diff.clear_snapshots()
        await self._diff.snapshot(page)
        return closed
