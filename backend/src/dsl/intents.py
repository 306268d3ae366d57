"""
Intent table for natural-language step instructions.

Each intent is an explicit entry of pattern, intent kind and argument
extraction, so the executor dispatches on ``detect_*`` results instead of
sniffing instruction text inline.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Intent(StrEnum):
    """Recognized instruction intents."""

    NAVIGATE = "navigate"
    REFRESH = "refresh"
    SELECT = "select"
    SAVE = "save"
    CLICK = "click"
    MODAL_DISMISS = "modal_dismiss"
    MODAL_TRIGGER = "modal_trigger"
    NAV_CLICK = "nav_click"
    DOM_CLICK = "dom_click"
    EXPECT_TEXT = "expect_text"


@dataclass(frozen=True)
class IntentMatch:
    """Result of matching an instruction against the intent table."""

    intent: Intent
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IntentRule:
    """One row of the intent table."""

    intent: Intent
    matcher: Callable[[str], dict[str, Any] | None]
    description: str = ""

    def match(self, instruction: str) -> IntentMatch | None:
        args = self.matcher(instruction)
        if args is None:
            return None
        return IntentMatch(intent=self.intent, args=args)


_URL_RE = re.compile(r"https?://[^\s\"'<>]+", re.I)
_NAV_VERB_RE = re.compile(r"^(?:navigate\s+to|go\s+to|open|visit)\s+(.+)$", re.I)

_REFRESH_RE = re.compile(
    r"refresh\s+(?:the\s+)?page|reload\s+(?:the\s+)?page|^refresh$|^reload$", re.I
)

_CLICK_VERB_RE = re.compile(r"\b(?:click|press|tap)\b", re.I)
_SAVE_VERB_RE = re.compile(r"\b(?:click|press|tap|hit)\b", re.I)
_SAVE_WORD_RE = re.compile(r"\b(?:save|submit|publish)\b", re.I)

_SELECT_PATTERNS = (
    re.compile(r"(?:select|choose)\s+[\"']([^\"']+)[\"']\s+(?:from|in)\s+", re.I),
    re.compile(r"(?:change|set)\s+.+?\s+to\s+[\"']([^\"']+)[\"']", re.I),
    re.compile(r"(?:select|choose)\s+[\"']([^\"']+)[\"'](?:\s|$)", re.I),
)

_MODAL_WORD_RE = re.compile(r"\b(?:modal|dialog|popup|pop-up|confirmation)\b", re.I)
_DISMISS_WORD_RE = re.compile(
    r"\b(?:confirm|cancel|ok|yes|close|dismiss|delete|remove)\b", re.I
)
_TRIGGER_WORD_RE = re.compile(r"\b(?:delete|remove|archive)\b", re.I)

_NAV_CLICK_PATTERNS = (
    re.compile(
        r"click\s+(?:the\s+)?[\"']?([^\"']+?)[\"']?\s+(?:button\s+|link\s+|tab\s+|item\s+)?"
        r"in\s+(?:the\s+)?(?:navigation|sidebar|menu|nav\s*bar|left\s*panel|header)",
        re.I,
    ),
    re.compile(r"(?:navigate|go)\s+to\s+(?:the\s+)?(\w+)\s+(?:page|section|tab|view)", re.I),
)

_DOM_CLICK_VERB_RE = re.compile(
    r"\b(?:click|press|tap|select|choose|pick|rate|score)\b", re.I
)
_QUOTED_RE = re.compile(r"[\"']([^\"']+)[\"']")
_SMALL_NUMBER_RE = re.compile(r"\b(\d{1,2})\b")

_EXPECT_TEXT_PATTERNS = (
    re.compile(r"(?:the\s+text\s+)?[\"']([^\"']+)[\"']\s+(?:no\s+longer\s+)?appears", re.I),
    re.compile(r"(?:should\s+)?(?:see|show|display|contain)\s+[\"']([^\"']+)[\"']", re.I),
    re.compile(
        r"[\"']([^\"']+)[\"']\s+(?:is\s+)?(?:no\s+longer\s+)?(?:visible|shown|displayed)",
        re.I,
    ),
)
_NEGATION_MARKERS = ("no longer", "not ", "doesn't", "does not")


def _match_navigate(instruction: str) -> dict[str, Any] | None:
    text = instruction.strip()
    url_match = _URL_RE.search(text)
    if url_match:
        return {"target": url_match.group(0).rstrip(".,;)"), "absolute": True}
    verb_match = _NAV_VERB_RE.match(text)
    if verb_match:
        target = verb_match.group(1).strip().strip("\"'")
        if target.startswith("/"):
            return {"target": target.split()[0], "absolute": False}
    return None


def _match_refresh(instruction: str) -> dict[str, Any] | None:
    if _REFRESH_RE.search(instruction.strip()):
        return {}
    return None


def _match_select(instruction: str) -> dict[str, Any] | None:
    for pattern in _SELECT_PATTERNS:
        match = pattern.search(instruction)
        if match:
            return {"value": match.group(1)}
    return None


def _match_save(instruction: str) -> dict[str, Any] | None:
    if _SAVE_VERB_RE.search(instruction) and _SAVE_WORD_RE.search(instruction):
        return {}
    return None


def _match_modal_dismiss(instruction: str) -> dict[str, Any] | None:
    if (
        _CLICK_VERB_RE.search(instruction)
        and _DISMISS_WORD_RE.search(instruction)
        and _MODAL_WORD_RE.search(instruction)
    ):
        return {}
    return None


def _match_modal_trigger(instruction: str) -> dict[str, Any] | None:
    if (
        re.search(r"\bclick\b", instruction, re.I)
        and _TRIGGER_WORD_RE.search(instruction)
        and not _MODAL_WORD_RE.search(instruction)
    ):
        return {}
    return None


def _match_click(instruction: str) -> dict[str, Any] | None:
    if _CLICK_VERB_RE.search(instruction):
        return {}
    return None


def _match_nav_click(instruction: str) -> dict[str, Any] | None:
    for pattern in _NAV_CLICK_PATTERNS:
        match = pattern.search(instruction)
        if match:
            return {"target": match.group(1).strip().lower()}
    return None


def _match_dom_click(instruction: str) -> dict[str, Any] | None:
    if not _DOM_CLICK_VERB_RE.search(instruction):
        return None
    quoted = _QUOTED_RE.search(instruction)
    if quoted:
        return {"text": quoted.group(1)}
    number = _SMALL_NUMBER_RE.search(instruction)
    if number:
        return {"text": number.group(1)}
    return None


def _match_expect_text(instruction: str) -> dict[str, Any] | None:
    for pattern in _EXPECT_TEXT_PATTERNS:
        match = pattern.search(instruction)
        if match:
            lowered = instruction.lower()
            should_exist = not any(marker in lowered for marker in _NEGATION_MARKERS)
            return {"text": match.group(1), "should_exist": should_exist}
    return None


INTENT_TABLE: tuple[IntentRule, ...] = (
    IntentRule(Intent.NAVIGATE, _match_navigate, "absolute URL or navigate/go/open/visit /path"),
    IntentRule(Intent.REFRESH, _match_refresh, "refresh/reload the page"),
    IntentRule(Intent.SELECT, _match_select, "select/choose/change/set ... 'value'"),
    IntentRule(Intent.SAVE, _match_save, "click/press/tap/hit + save/submit/publish"),
    IntentRule(Intent.MODAL_DISMISS, _match_modal_dismiss, "confirm/cancel a modal or dialog"),
    IntentRule(Intent.MODAL_TRIGGER, _match_modal_trigger, "click delete/remove/archive"),
    IntentRule(Intent.NAV_CLICK, _match_nav_click, "click an item in the navigation"),
    IntentRule(Intent.CLICK, _match_click, "click/press/tap"),
    IntentRule(Intent.DOM_CLICK, _match_dom_click, "quoted or numeric click target"),
    IntentRule(Intent.EXPECT_TEXT, _match_expect_text, "quoted text appears/absent"),
)

_RULES_BY_INTENT = {rule.intent: rule for rule in INTENT_TABLE}


def match_intent(intent: Intent, instruction: str) -> IntentMatch | None:
    """Match an instruction against a single intent."""
    return _RULES_BY_INTENT[intent].match(instruction)


def match_all(instruction: str) -> list[IntentMatch]:
    """Return every intent the instruction matches, in table order."""
    matches = []
    for rule in INTENT_TABLE:
        result = rule.match(instruction)
        if result is not None:
            matches.append(result)
    return matches


def detect_navigation(instruction: str) -> str | None:
    """Return the direct navigation target (absolute URL or root-relative path)."""
    match = match_intent(Intent.NAVIGATE, instruction)
    return match.args["target"] if match else None


def is_refresh(instruction: str) -> bool:
    return match_intent(Intent.REFRESH, instruction) is not None


def extract_select_value(instruction: str) -> str | None:
    match = match_intent(Intent.SELECT, instruction)
    return match.args["value"] if match else None


def is_save_action(instruction: str) -> bool:
    return match_intent(Intent.SAVE, instruction) is not None


def is_click_action(instruction: str) -> bool:
    return match_intent(Intent.CLICK, instruction) is not None


def is_modal_dismiss(instruction: str) -> bool:
    return match_intent(Intent.MODAL_DISMISS, instruction) is not None


def is_modal_trigger(instruction: str) -> bool:
    """A destructive click that usually opens a confirmation dialog."""
    if is_modal_dismiss(instruction):
        return False
    return match_intent(Intent.MODAL_TRIGGER, instruction) is not None


def extract_navigation_target(instruction: str) -> str | None:
    """Lower-cased name of the navigation item a click targets."""
    match = match_intent(Intent.NAV_CLICK, instruction)
    return match.args["target"] if match else None


def extract_click_text(instruction: str) -> str | None:
    """Literal text for the DOM text-matching click fallback."""
    match = match_intent(Intent.DOM_CLICK, instruction)
    return match.args["text"] if match else None


def extract_expected_text(instruction: str) -> tuple[str, bool] | None:
    """Return the quoted phrase a check expects and whether it should be present."""
    match = match_intent(Intent.EXPECT_TEXT, instruction)
    if match is None:
        return None
    return match.args["text"], match.args["should_exist"]
