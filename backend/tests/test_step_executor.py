"""
Unit tests for StepExecutor.

Tests cover:
- Act dispatch (navigation, reload, save with form fill, agent path)
- Diff oracle re-baselining around Acts
- Modal auto-confirm gating
- Redundant navigation clicks
- Check routing (fast path, deterministic, semantic with page transition)
- Adapter crashes converted to failed step results
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from specqa.config import VerificationConfig
from specqa.dsl.models import CheckType, SpecStep
from specqa.runner.adapters import ActionOutcome, ConditionVerdict
from specqa.runner.form_filler import FIND_EMPTY_REQUIRED_JS
from specqa.runner.results import SessionState, StepContext
from specqa.runner.step_executor import StepExecutor

DIALOG = {"selector": '[role="dialog"]', "confirmButton": "#confirm-delete"}


def _executor(
    agent: MagicMock, judge: MagicMock, diff: MagicMock, config: VerificationConfig
) -> StepExecutor:
    return StepExecutor(agent, judge, diff, config)


def _ctx(page: MagicMock, next_step: SpecStep | None = None, **session: str) -> StepContext:
    return StepContext(
        page=page,
        session=SessionState(base_url="http://localhost:3000", **session),
        next_step=next_step,
    )


class TestActSteps:
    """Tests for Act dispatch."""

    @pytest.mark.asyncio
    async def test_navigation(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test navigation bypasses the agent and records the pre-act URL."""
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.act("Navigate to /tasks"), _ctx(mock_page))

        assert result.success
        mock_page.goto.assert_awaited_once_with("http://localhost:3000/tasks")
        mock_agent.act.assert_not_awaited()
        assert result.session_after.pre_act_url == "http://localhost:3000/"
        mock_diff.clear_snapshots.assert_called_once()
        mock_diff.snapshot.assert_awaited_once_with(mock_page)

    @pytest.mark.asyncio
    async def test_reload(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test refresh instructions reload the page directly."""
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.act("Refresh the page"), _ctx(mock_page))

        assert result.success
        mock_page.reload.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_save_fills_required_fields_and_rebaselines(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test save actions scan the form first and re-baseline afterwards."""
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.act("Click the save button"), _ctx(mock_page))

        assert result.success
        mock_page.evaluate.assert_any_await(FIND_EMPTY_REQUIRED_JS)
        mock_agent.act.assert_awaited_once_with("Click the save button")
        assert mock_diff.clear_snapshots.call_count == 2

    @pytest.mark.asyncio
    async def test_click_with_page_transition_rebaselines(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test a click that changes the URL takes a fresh baseline."""

        async def navigate_away(instruction: str) -> ActionOutcome:
            mock_page.url = "http://localhost:3000/tasks/new"
            return ActionOutcome(success=True)

        mock_agent.act.side_effect = navigate_away
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(
            SpecStep.act('Click the "New Task" button'), _ctx(mock_page)
        )

        assert result.success
        assert result.session_after.page_transitioned(mock_page.url)
        assert mock_diff.clear_snapshots.call_count == 2

    @pytest.mark.asyncio
    async def test_plain_click_keeps_baseline(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test a click without a URL change keeps the pre-act snapshot."""
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        await executor.run_step(SpecStep.act('Click the "New Task" button'), _ctx(mock_page))

        mock_diff.clear_snapshots.assert_called_once()

    @pytest.mark.asyncio
    async def test_auto_confirm_disabled_by_default(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test a delete click only waits for the modal when auto-confirm is off."""
        mock_page.evaluate.return_value = DIALOG
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.act("Click the delete button"), _ctx(mock_page))

        assert result.success
        mock_page.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_auto_confirm_enabled(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test a trailing delete click confirms the dialog and re-baselines."""
        mock_page.evaluate.return_value = DIALOG
        config = fast_config.model_copy(update={"auto_confirm_modals": True})
        executor = _executor(mock_agent, mock_judge, mock_diff, config)

        result = await executor.run_step(SpecStep.act("Click the delete button"), _ctx(mock_page))

        assert result.success
        assert mock_page.click.await_args.args[0] == "#confirm-delete"
        assert mock_diff.clear_snapshots.call_count == 2

    @pytest.mark.asyncio
    async def test_auto_confirm_skipped_for_explicit_dismiss(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test the scenario's own confirm step is left to handle the modal."""
        mock_page.evaluate.return_value = DIALOG
        config = fast_config.model_copy(update={"auto_confirm_modals": True})
        executor = _executor(mock_agent, mock_judge, mock_diff, config)

        await executor.run_step(
            SpecStep.act("Click the delete button"),
            _ctx(mock_page, next_step=SpecStep.act("Click Confirm in the dialog")),
        )

        mock_page.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redundant_navigation_is_noop(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test a failed nav click already at its target path passes."""
        mock_page.url = "http://localhost:3000/tasks"
        mock_agent.act.return_value = ActionOutcome(success=False, message="Element not found")
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(
            SpecStep.act("Click Tasks in the sidebar"), _ctx(mock_page)
        )

        assert result.success
        assert result.act_result.page_url == "http://localhost:3000/tasks"

    @pytest.mark.asyncio
    async def test_failed_act(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test a failed act keeps the agent's error."""
        mock_agent.act.return_value = ActionOutcome(success=False, message="Element not found")
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.act("Click the archive toggle"), _ctx(mock_page))

        assert not result.success
        assert result.error == "Element not found"

    @pytest.mark.asyncio
    async def test_crash_becomes_failed_result(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test an adapter crash is converted, never raised."""
        mock_diff.snapshot.side_effect = RuntimeError("snapshot failed")
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.act("Click the save button"), _ctx(mock_page))

        assert not result.success
        assert result.act_result.error == "snapshot failed"
        assert result.session_after.base_url == "http://localhost:3000"


class TestCheckSteps:
    """Tests for Check routing."""

    @pytest.mark.asyncio
    async def test_fast_path(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test quoted text found on the page skips both oracles."""
        mock_page.evaluate.return_value = True
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.check('"Buy milk" appears'), _ctx(mock_page))

        assert result.success
        assert result.check_result.check_type == CheckType.DETERMINISTIC
        mock_diff.assert_that.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deterministic(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test pattern-classified checks never reach the oracles."""
        mock_page.url = "http://localhost:3000/dashboard"
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(
            SpecStep.check("URL contains /dashboard"), _ctx(mock_page)
        )

        assert result.success
        mock_diff.assert_that.assert_not_awaited()
        mock_judge.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_semantic_after_transition(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test a URL change since the last act makes extraction primary."""
        mock_page.url = "http://localhost:3000/tasks"
        mock_judge.extract.return_value = ConditionVerdict(passed=True)
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(
            SpecStep.check("The task list is visible"),
            _ctx(mock_page, pre_act_url="http://localhost:3000/"),
        )

        assert result.success
        assert result.check_result.check_type == CheckType.SEMANTIC
        mock_diff.assert_that.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_semantic_stable_page(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test the diff oracle is primary when the URL did not change."""
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(
            SpecStep.check("The task list is visible"),
            _ctx(mock_page, pre_act_url="http://localhost:3000/"),
        )

        assert result.success
        mock_judge.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_check_crash(
        self,
        mock_page: MagicMock,
        mock_agent: MagicMock,
        mock_judge: MagicMock,
        mock_diff: MagicMock,
        fast_config: VerificationConfig,
    ) -> None:
        """Test an unexpected error in a check becomes a failed check result."""
        mock_page.evaluate.side_effect = RuntimeError("page gone")
        executor = _executor(mock_agent, mock_judge, mock_diff, fast_config)

        result = await executor.run_step(SpecStep.check('"Buy milk" appears'), _ctx(mock_page))

        assert not result.success
        assert result.check_result.actual == "page gone"
        assert result.check_result.expected == '"Buy milk" appears'
