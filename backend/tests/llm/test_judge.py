"""
Tests for the LLM-backed judgment adapters.

Tests cover:
- Structured extraction validated against a pydantic schema
- Diff oracle snapshot lifecycle, diffing and YES/NO parsing
- Polling in wait_for
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from specqa.llm.client import ChatCompletion
from specqa.llm.judge import (
    VISIBLE_TEXT_JS,
    JudgmentError,
    LLMDiffOracle,
    LLMJudge,
    parse_yes_no,
    strip_code_fences,
)
from specqa.runner.adapters import ConditionVerdict


def _llm(*replies: str) -> MagicMock:
    client = MagicMock()
    client.chat = AsyncMock(
        side_effect=[ChatCompletion(content=r, model="test-model") for r in replies]
    )
    return client


def _messages(client: MagicMock, call: int = 0) -> list:
    return client.chat.await_args_list[call].args[0]


class TestHelpers:
    """Tests for reply parsing helpers."""

    def test_strip_code_fences(self) -> None:
        """Test a fenced JSON reply is unwrapped."""
        assert strip_code_fences('```json\n{"passed": true}\n```') == '{"passed": true}'
        assert strip_code_fences('  {"passed": true} ') == '{"passed": true}'

    @pytest.mark.parametrize(
        ("reply", "expected"),
        [("YES", True), ("yes.", True), ("No", False), ("NO, it is missing", False)],
    )
    def test_parse_yes_no(self, reply: str, expected: bool) -> None:
        """Test YES/NO replies in their usual shapes."""
        assert parse_yes_no(reply) is expected

    def test_parse_yes_no_rejects_other(self) -> None:
        """Test anything else is a judgment error."""
        with pytest.raises(JudgmentError, match="Expected YES or NO"):
            parse_yes_no("Maybe")


class TestLLMJudge:
    """Tests for LLMJudge.extract."""

    @pytest.mark.asyncio
    async def test_extract(self, mock_page: MagicMock) -> None:
        """Test the page text and schema are sent and the reply validated."""
        mock_page.evaluate.return_value = "Tasks\nBuy milk"
        client = _llm('{"passed": true, "reasoning": "Buy milk is listed"}')

        verdict = await LLMJudge(client, mock_page).extract("Is Buy milk listed?", ConditionVerdict)

        assert verdict == ConditionVerdict(passed=True, reasoning="Buy milk is listed")
        mock_page.evaluate.assert_awaited_once_with(VISIBLE_TEXT_JS)
        user = _messages(client)[1].content
        assert "Buy milk" in user
        assert "Is Buy milk listed?" in user
        assert '"passed"' in user
        assert client.chat.await_args.kwargs["max_tokens"] == 512

    @pytest.mark.asyncio
    async def test_fenced_reply(self, mock_page: MagicMock) -> None:
        """Test fenced JSON is accepted."""
        client = _llm('```json\n{"passed": false}\n```')

        verdict = await LLMJudge(client, mock_page).extract("Is it there?", ConditionVerdict)

        assert not verdict.passed

    @pytest.mark.asyncio
    async def test_invalid_reply(self, mock_page: MagicMock) -> None:
        """Test a reply that does not match the schema raises a schema error."""
        client = _llm("I think so")

        with pytest.raises(JudgmentError, match="schema"):
            await LLMJudge(client, mock_page).extract("Is it there?", ConditionVerdict)

    @pytest.mark.asyncio
    async def test_custom_system_prompt(self, mock_page: MagicMock) -> None:
        """Test a configured system prompt replaces the default."""
        client = _llm('{"passed": true}')

        await LLMJudge(client, mock_page, temperature=0.2, system_prompt="Be strict.").extract(
            "Is it there?", ConditionVerdict
        )

        assert _messages(client)[0].content == "Be strict."
        assert client.chat.await_args.kwargs["temperature"] == 0.2


class TestLLMDiffOracle:
    """Tests for LLMDiffOracle."""

    @pytest.mark.asyncio
    async def test_diff_against_baseline(self, mock_page: MagicMock) -> None:
        """Test the first and latest snapshots are compared."""
        mock_page.evaluate = AsyncMock(side_effect=["Tasks", "Tasks\nMiddle", "Tasks\nBuy milk"])
        client = _llm("YES")
        oracle = LLMDiffOracle(client)

        for _ in range(3):
            await oracle.snapshot(mock_page)

        assert await oracle.assert_that("Buy milk was added")
        user = _messages(client)[1].content
        assert "+Buy milk" in user
        assert "Middle" not in user.split("Current visible text:")[0]
        assert client.chat.await_args.kwargs["max_tokens"] == 8

    @pytest.mark.asyncio
    async def test_no_changes(self, mock_page: MagicMock) -> None:
        """Test an unchanged page is described as such."""
        mock_page.evaluate.return_value = "Tasks"
        client = _llm("NO")
        oracle = LLMDiffOracle(client)
        await oracle.snapshot(mock_page)

        assert not await oracle.assert_that("A task was added")
        assert "(no changes)" in _messages(client)[1].content

    @pytest.mark.asyncio
    async def test_assert_without_snapshot(self) -> None:
        """Test asserting before any snapshot is an error."""
        with pytest.raises(JudgmentError, match="No snapshot"):
            await LLMDiffOracle(_llm()).assert_that("Anything")

    @pytest.mark.asyncio
    async def test_clear_snapshots(self, mock_page: MagicMock) -> None:
        """Test clearing drops the baseline."""
        oracle = LLMDiffOracle(_llm())
        await oracle.snapshot(mock_page)

        oracle.clear_snapshots()

        assert oracle.snapshots == ()

    @pytest.mark.asyncio
    async def test_wait_for_immediate(self, mock_page: MagicMock) -> None:
        """Test wait_for returns as soon as the condition holds."""
        client = _llm("YES")
        oracle = LLMDiffOracle(client)
        await oracle.snapshot(mock_page)

        assert await oracle.wait_for("A dialog appeared", 0)
        assert len(oracle.snapshots) == 2

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self, mock_page: MagicMock) -> None:
        """Test a zero timeout judges exactly once."""
        client = _llm("NO")
        oracle = LLMDiffOracle(client)
        await oracle.snapshot(mock_page)

        assert not await oracle.wait_for("A dialog appeared", 0)
        client.chat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wait_for_without_page(self) -> None:
        """Test polling needs a page from an earlier snapshot."""
        with pytest.raises(JudgmentError, match="No page"):
            await LLMDiffOracle(_llm()).wait_for("Anything", 100)
