"""
Auto-fill of empty required form fields before save/submit actions.

HTML5 validation silently blocks a submit when a required field is empty, and
the scenario rarely mentions fields it does not care about. Those fields get
type-appropriate placeholder values.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = structlog.get_logger(__name__)

FIND_EMPTY_REQUIRED_JS = """
() => {
  const fields = Array.from(document.querySelectorAll(
    'input[required], textarea[required], select[required]'
  ));
  return fields
    .filter((el) => {
      const r = el.getBoundingClientRect();
      if (r.width === 0 || r.height === 0) return false;
      if (el.disabled || el.readOnly) return false;
      const type = (el.getAttribute('type') || '').toLowerCase();
      if (['hidden', 'checkbox', 'radio', 'submit', 'button'].includes(type)) return false;
      return !el.value;
    })
    .map((el, i) => {
      let selector = el.tagName.toLowerCase();
      if (el.id) selector = `#${el.id}`;
      else if (el.name) selector = `${el.tagName.toLowerCase()}[name="${el.name}"]`;
      else {
        el.setAttribute('data-specqa-fill', String(i));
        selector = `[data-specqa-fill="${i}"]`;
      }
      return {
        selector,
        tag: el.tagName.toLowerCase(),
        type: (el.getAttribute('type') || '').toLowerCase(),
        name: el.name || '',
        placeholder: el.getAttribute('placeholder') || '',
        options: el.tagName === 'SELECT'
          ? Array.from(el.options).map((o) => o.value).filter((v) => v)
          : [],
      };
    });
}
"""


@dataclass(frozen=True)
class FormField:
    """An empty required field found on the page."""

    selector: str
    tag: str
    type: str = ""
    name: str = ""
    placeholder: str = ""
    options: tuple[str, ...] = ()


def generate_fill_value(field: FormField) -> str:
    """Pick a value the field's type will accept."""
    hint = f"{field.type} {field.name}".lower()

    if field.type == "email" or "email" in hint:
        return f"test-{int(time.time() * 1000)}@example.com"
    if field.type == "password" or "password" in hint:
        return "TestPass123!"
    if field.type == "tel" or "phone" in hint:
        return "+1234567890"
    if field.type == "url" or "website" in hint:
        return "https://example.com"
    if field.type == "number":
        return "42"
    if field.tag == "textarea":
        return "Test description content"
    return field.placeholder or "Test input"


class FormFiller:
    """Fills empty required fields on the current page."""

    def __init__(self) -> None:
        self._log = logger.bind(component="form_filler")

    async def find_empty_required_fields(self, page: Page) -> list[FormField]:
        try:
            raw = await page.evaluate(FIND_EMPTY_REQUIRED_JS)
        except PlaywrightError as e:
            self._log.debug("Could not scan form fields", error=str(e))
            return []
        return [
            FormField(
                selector=item["selector"],
                tag=item["tag"],
                type=item.get("type", ""),
                name=item.get("name", ""),
                placeholder=item.get("placeholder", ""),
                options=tuple(item.get("options") or ()),
            )
            for item in raw or []
        ]

    async def fill_empty_required_fields(self, page: Page) -> int:
        """Fill every empty required field; returns how many were filled."""
        filled = 0
        for field in await self.find_empty_required_fields(page):
            locator = page.locator(field.selector).first
            try:
                if field.tag == "select":
                    if not field.options:
                        continue
                    await locator.select_option(field.options[0])
                else:
                    await locator.fill(generate_fill_value(field))
            except PlaywrightError as e:
                self._log.debug("Could not fill field", selector=field.selector, error=str(e))
                continue
            filled += 1

        if filled:
            self._log.info("Filled empty required fields", count=filled)
        return filled
