"""Classification of Check instructions into deterministic and semantic checks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from specqa.dsl.models import CheckType


class DeterministicCheck(StrEnum):
    """Checks resolvable by literal page inspection."""

    URL_CONTAINS = "url_contains"
    URL_IS = "url_is"
    TITLE_IS = "title_is"
    TITLE_CONTAINS = "title_contains"
    ELEMENT_COUNT = "element_count"
    INPUT_VALUE = "input_value"
    CHECKBOX_CHECKED = "checkbox_checked"


@dataclass(frozen=True)
class DeterministicPattern:
    """A prefix pattern identifying one deterministic check."""

    check: DeterministicCheck
    pattern: re.Pattern[str]


DETERMINISTIC_PATTERNS: tuple[DeterministicPattern, ...] = (
    DeterministicPattern(DeterministicCheck.URL_CONTAINS, re.compile(r"^url\s+contains\s+", re.I)),
    DeterministicPattern(DeterministicCheck.URL_IS, re.compile(r"^url\s+is\s+", re.I)),
    DeterministicPattern(DeterministicCheck.TITLE_IS, re.compile(r"^page\s+title\s+is\s+", re.I)),
    DeterministicPattern(
        DeterministicCheck.TITLE_CONTAINS, re.compile(r"^page\s+title\s+contains\s+", re.I)
    ),
    DeterministicPattern(
        DeterministicCheck.ELEMENT_COUNT, re.compile(r"^element\s+count\s+is\s+", re.I)
    ),
    DeterministicPattern(DeterministicCheck.INPUT_VALUE, re.compile(r"^input\s+value\s+is\s+", re.I)),
    DeterministicPattern(
        DeterministicCheck.CHECKBOX_CHECKED, re.compile(r"^checkbox\s+is\s+checked", re.I)
    ),
)


def match_deterministic(instruction: str) -> DeterministicCheck | None:
    """Return which deterministic check an instruction names, if any."""
    text = instruction.strip()
    for entry in DETERMINISTIC_PATTERNS:
        if entry.pattern.match(text):
            return entry.check
    return None


def classify_check(instruction: str) -> CheckType:
    """
    Classify a Check instruction.

    Pure function of the instruction text: anything that does not match a
    known deterministic pattern is semantic.
    """
    if match_deterministic(instruction) is not None:
        return CheckType.DETERMINISTIC
    return CheckType.SEMANTIC
