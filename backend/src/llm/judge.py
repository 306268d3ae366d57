"""
LLM-backed judgment adapters.

``LLMJudge`` answers structured questions about the visible page and
``LLMDiffOracle`` judges conditions from before/after text snapshots. Both
satisfy the ``Judge`` and ``DiffOracle`` protocols in
``specqa.runner.adapters``.
"""

from __future__ import annotations

import asyncio
import difflib
import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from specqa.llm.client import ChatMessage, LLMClient
from specqa.llm.prompts import PromptType, format_prompt, get_prompt_config

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = structlog.get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

VISIBLE_TEXT_JS = "() => document.body ? document.body.innerText : ''"

# Page text beyond this is cut before prompting.
MAX_PAGE_TEXT = 12000
MAX_DIFF_TEXT = 6000
WAIT_POLL_MS = 500


class JudgmentError(Exception):
    """The LLM reply could not be turned into a judgment."""


@dataclass(frozen=True)
class PageSnapshot:
    url: str
    title: str
    text: str


async def capture_snapshot(page: Page) -> PageSnapshot:
    """Visible text, title and URL of the page."""
    text = await page.evaluate(VISIBLE_TEXT_JS)
    title = await page.title()
    return PageSnapshot(url=page.url, title=title, text=text or "")


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code block, if any."""
    content = content.strip()
    if not content.startswith("```"):
        return content
    lines = content.split("\n")[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


class LLMJudge:
    """Structured extraction over the page the judge is bound to."""

    def __init__(
        self,
        client: LLMClient,
        page: Page,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self._client = client
        self._page = page
        self._temperature = temperature
        self._system_prompt = system_prompt
        self._log = logger.bind(component="llm_judge")

    async def extract(self, instruction: str, schema: type[SchemaT]) -> SchemaT:
        snapshot = await capture_snapshot(self._page)
        system_prompt, user_prompt = format_prompt(
            PromptType.EXTRACT,
            url=snapshot.url,
            title=snapshot.title,
            page_text=snapshot.text[:MAX_PAGE_TEXT],
            instruction=instruction,
            schema=json.dumps(schema.model_json_schema()),
        )
        result = await self._client.chat(
            [
                ChatMessage(role="system", content=self._system_prompt or system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=self._temperature,
            max_tokens=get_prompt_config(PromptType.EXTRACT)["max_tokens"],
        )

        content = strip_code_fences(result.content)
        try:
            return schema.model_validate_json(content)
        except ValidationError as e:
            self._log.debug("Extraction reply did not match schema", content=content[:200])
            raise JudgmentError(f"Reply does not match schema {schema.__name__}: {e}") from e


class LLMDiffOracle:
    """
    Judges conditions by diffing the visible text of two snapshots.

    The first snapshot after ``clear_snapshots`` is the baseline; the most
    recent one is compared against it.
    """

    def __init__(
        self,
        client: LLMClient,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._system_prompt = system_prompt
        self._snapshots: list[PageSnapshot] = []
        self._page: Page | None = None
        self._log = logger.bind(component="llm_diff_oracle")

    @property
    def snapshots(self) -> tuple[PageSnapshot, ...]:
        return tuple(self._snapshots)

    async def snapshot(self, page: Page) -> None:
        self._page = page
        self._snapshots.append(await capture_snapshot(page))

    def clear_snapshots(self) -> None:
        self._snapshots.clear()

    async def assert_that(self, instruction: str) -> bool:
        if not self._snapshots:
            raise JudgmentError("No snapshot taken")
        before, after = self._snapshots[0], self._snapshots[-1]
        diff = "\n".join(
            difflib.unified_diff(
                before.text.splitlines(),
                after.text.splitlines(),
                fromfile="before",
                tofile="after",
                lineterm="",
            )
        )

        system_prompt, user_prompt = format_prompt(
            PromptType.DIFF_ASSERT,
            before_url=before.url,
            after_url=after.url,
            diff=diff[:MAX_DIFF_TEXT] or "(no changes)",
            page_text=after.text[:MAX_PAGE_TEXT],
            instruction=instruction,
        )
        result = await self._client.chat(
            [
                ChatMessage(role="system", content=self._system_prompt or system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=self._temperature,
            max_tokens=get_prompt_config(PromptType.DIFF_ASSERT)["max_tokens"],
        )
        return parse_yes_no(result.content)

    async def wait_for(self, instruction: str, timeout_ms: int) -> bool:
        """Re-snapshot and re-judge until the condition holds or the timeout elapses."""
        if self._page is None:
            raise JudgmentError("No page to poll; take a snapshot first")

        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            await self.snapshot(self._page)
            if await self.assert_that(instruction):
                return True
            if time.monotonic() >= deadline:
                self._log.debug("Condition not met before timeout", timeout_ms=timeout_ms)
                return False
            await asyncio.sleep(WAIT_POLL_MS / 1000)


def parse_yes_no(content: str) -> bool:
    """Interpret a YES/NO reply."""
    word = strip_code_fences(content).strip().strip(".!\"'").lower()
    if word.startswith("yes") or word == "true":
        return True
    if word.startswith("no") or word == "false":
        return False
    raise JudgmentError(f"Expected YES or NO, got: {content[:80]!r}")
