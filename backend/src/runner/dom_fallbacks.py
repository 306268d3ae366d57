"""
DOM-level fallbacks for controls the agent cannot drive.

Used only after the agent path is exhausted: native ``<select>`` elements
matched by option text/value, and elements outside the accessibility tree
matched by visible text, radio/checkbox value or label, numeric range, or
aria-label/data-value.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError

from specqa.dsl.intents import extract_click_text, extract_select_value

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = structlog.get_logger(__name__)

SELECT_BY_OPTION_JS = """
(targetValue) => {
  const wanted = targetValue.toLowerCase();
  const isVisible = (el) => {
    const r = el.getBoundingClientRect();
    return r.height > 0 && r.width > 0;
  };
  const matches = (opt) =>
    opt.text.trim().toLowerCase() === wanted || opt.value.toLowerCase() === wanted;
  const select = Array.from(document.querySelectorAll('select')).find(
    (s) => isVisible(s) && Array.from(s.options).some(matches)
  );
  if (!select) return false;
  select.value = Array.from(select.options).find(matches).value;
  select.dispatchEvent(new Event('change', { bubbles: true }));
  select.dispatchEvent(new Event('input', { bubbles: true }));
  return true;
}
"""

TEXT_CLICK_JS = """
(text) => {
  const isVisible = (el) => {
    const r = el.getBoundingClientRect();
    return r.height > 0 && r.width > 0;
  };
  const clickable = Array.from(document.querySelectorAll(
    'button, [role="button"], label, span, div, a, li, td, th, p'
  ));

  const leaf = clickable.find(
    (el) => isVisible(el) && (el.textContent || '').trim() === text && el.children.length === 0
  );
  if (leaf) { leaf.click(); return 'text-leaf'; }

  const wrapper = clickable.find((el) => isVisible(el) && (el.textContent || '').trim() === text);
  if (wrapper) { wrapper.click(); return 'text-wrapper'; }

  const inputs = Array.from(document.querySelectorAll('input[type="radio"], input[type="checkbox"]'));
  const choice = inputs.find((input) =>
    input.value === text ||
    (input.labels && input.labels[0] && input.labels[0].textContent.trim() === text)
  );
  if (choice) {
    choice.click();
    return choice.value === text ? 'radio-value' : 'radio-label';
  }

  const num = Number(text);
  if (!Number.isNaN(num)) {
    const numeric = Array.from(document.querySelectorAll('input[type="number"], input[type="range"]'))
      .find((input) => {
        if (!isVisible(input)) return false;
        const min = Number(input.min || 0);
        const max = Number(input.max || 100);
        return num >= min && num <= max;
      });
    if (numeric) {
      const setter = Object.getOwnPropertyDescriptor(window.HTMLInputElement.prototype, 'value');
      if (setter && setter.set) setter.set.call(numeric, String(num));
      else numeric.value = String(num);
      numeric.dispatchEvent(new Event('input', { bubbles: true }));
      numeric.dispatchEvent(new Event('change', { bubbles: true }));
      return 'number-input';
    }
  }

  const labelled = Array.from(document.querySelectorAll('[aria-label], [data-value]')).find((el) =>
    isVisible(el) &&
    ((el.getAttribute('aria-label') || '') === text || (el.getAttribute('data-value') || '') === text)
  );
  if (labelled) { labelled.click(); return 'aria-data'; }

  return null;
}
"""


async def try_select_fallback(page: Page, instruction: str) -> bool:
    """Set a visible native select whose option matches the requested value."""
    value = extract_select_value(instruction)
    if value is None:
        return False
    try:
        selected = await page.evaluate(SELECT_BY_OPTION_JS, value)
    except PlaywrightError as e:
        logger.debug("DOM select fallback failed", value=value, error=str(e))
        return False
    if selected:
        logger.info("DOM select fallback succeeded", value=value)
    return bool(selected)


async def try_text_click(page: Page, instruction: str) -> str | None:
    """
    Click an element by literal text or attribute match.

    Returns the name of the strategy that matched, or None.
    """
    target = extract_click_text(instruction)
    if target is None:
        return None
    try:
        strategy = await page.evaluate(TEXT_CLICK_JS, target)
    except PlaywrightError as e:
        logger.debug("DOM text click failed", target=target, error=str(e))
        return None
    if strategy:
        logger.info("DOM text click succeeded", target=target, strategy=strategy)
    return strategy
