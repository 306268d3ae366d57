"""
Prompt templates for the LLM-backed judgment adapters.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class PromptType(StrEnum):
    """Prompts used by the judgment adapters."""

    EXTRACT = "extract"
    DIFF_ASSERT = "diff_assert"


EXTRACT_SYSTEM_PROMPT = """You read the visible contents of a web page and answer \
questions about it as structured JSON.

Rules:
- Use only the page content you are given. Do not guess about hidden state.
- Reply with a single JSON object that validates against the provided JSON schema.
- No prose, no markdown fences."""

EXTRACT_USER_PROMPT = """Page URL: {url}
Page title: {title}

Visible page text:
---
{page_text}
---

Question:
{instruction}

JSON schema for the answer:
{schema}"""

DIFF_SYSTEM_PROMPT = """You compare two snapshots of a web page, taken before and \
after a user action, and decide whether a stated condition holds now.

Answer with exactly one word: YES or NO."""

DIFF_USER_PROMPT = """Before URL: {before_url}
After URL: {after_url}

Unified diff of visible text (before -> after):
---
{diff}
---

Current visible text:
---
{page_text}
---

Condition:
{instruction}

Does the condition hold? Answer YES or NO."""


_PROMPTS: dict[PromptType, dict[str, Any]] = {
    PromptType.EXTRACT: {
        "system": EXTRACT_SYSTEM_PROMPT,
        "user": EXTRACT_USER_PROMPT,
        "max_tokens": 512,
        "expected_format": "json",
    },
    PromptType.DIFF_ASSERT: {
        "system": DIFF_SYSTEM_PROMPT,
        "user": DIFF_USER_PROMPT,
        "max_tokens": 8,
        "expected_format": "text",
    },
}


def get_prompt_config(prompt_type: PromptType) -> dict[str, Any]:
    return _PROMPTS[prompt_type]


def format_prompt(prompt_type: PromptType, **variables: Any) -> tuple[str, str]:
    """Return (system_prompt, user_prompt) with variables substituted."""
    config = _PROMPTS[prompt_type]
    return config["system"], config["user"].format(**variables)
