"""Pytest fixtures for SpecQA tests."""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from specqa.config import RetryPolicy, StabilizationConfig, VerificationConfig
from specqa.runner.adapters import ActionOutcome


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test artifacts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fast_config() -> VerificationConfig:
    """Configuration with every wait zeroed and port detection off."""
    return VerificationConfig(
        retry=RetryPolicy(max_attempts=3, delay_ms=0),
        stabilization=StabilizationConfig.immediate(),
        detect_port=False,
    )


@pytest.fixture
def mock_page() -> MagicMock:
    """A Playwright page double with awaitable page methods."""
    page = MagicMock()
    page.url = "http://localhost:3000/"
    page.goto = AsyncMock(return_value=None)
    page.reload = AsyncMock(return_value=None)
    page.click = AsyncMock(return_value=None)
    page.evaluate = AsyncMock(return_value=None)
    page.title = AsyncMock(return_value="App")
    page.content = AsyncMock(return_value="<html><body></body></html>")
    page.wait_for_load_state = AsyncMock(return_value=None)
    page.keyboard.press = AsyncMock(return_value=None)

    locator = MagicMock()
    locator.count = AsyncMock(return_value=0)
    locator.first.fill = AsyncMock(return_value=None)
    locator.first.select_option = AsyncMock(return_value=[])
    locator.first.input_value = AsyncMock(return_value="")
    page.locator = MagicMock(return_value=locator)
    return page


@pytest.fixture
def mock_agent() -> MagicMock:
    """An action agent that succeeds at everything and observes nothing."""
    agent = MagicMock()
    agent.act = AsyncMock(return_value=ActionOutcome(success=True))
    agent.observe = AsyncMock(return_value=[])
    return agent


@pytest.fixture
def mock_judge() -> MagicMock:
    judge = MagicMock()
    judge.extract = AsyncMock()
    return judge


@pytest.fixture
def mock_diff() -> MagicMock:
    """A diff oracle that confirms every condition."""
    diff = MagicMock()
    diff.snapshot = AsyncMock(return_value=None)
    diff.clear_snapshots = MagicMock()
    diff.assert_that = AsyncMock(return_value=True)
    diff.wait_for = AsyncMock(return_value=True)
    return diff


@pytest.fixture
def sample_behaviors_doc() -> str:
    """Behavior document with auth behaviors and a dependent behavior."""
    return """# Task Manager

Directory: `apps/tasks`

## Pages

### Tasks
**Path:** `/tasks`

#### Behaviors
- Create Task
- Edit Task

## Behaviors

### Sign Up
New users can register.

#### Steps
* Act: Navigate to /signup
* Act: Type "alice@example.com" into the email field
* Act: Type "Secret123!" into the password field
* Act: Click the "Create account" button
* Check: URL contains /dashboard

### Sign In
Registered users can sign in.

#### Steps
* Act: Type "alice@example.com" into the email field
* Act: Type "Secret123!" into the password field
* Act: Click the sign in button
* Check: The dashboard is visible

### Create Task
Users can add a task.

#### Dependencies
1. Sign Up

#### Steps
* Act: Click the "New Task" button
* Act: Type "Buy milk" into the title field
* Act: Click the save button
* Check: "Buy milk" appears in the task list

### Edit Task

#### Dependencies
1. Sign Up
2. Create Task

#### Scenarios

##### Rename
###### Steps
* Act: Click the "Buy milk" task
* Act: Type "Buy oat milk" into the title field
* Act: Click the save button
* Check: "Buy oat milk" appears

##### Cancel
###### Steps
* Act: Click the "Buy milk" task
* Act: Click the cancel button
* Check: "Buy milk" appears
"""
