"""
Behavior chain execution.

Runs a target behavior's dependency chain end to end on one shared session
and reduces it to a single BehaviorContext. A failing upstream member is
reported as ``dependency_failed`` naming that member; only a failure of the
target itself is a ``fail``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from specqa.auth.credentials import process_steps_with_credentials
from specqa.auth.session_manager import is_parameterized_path
from specqa.config import VerificationConfig
from specqa.orchestrator.context import BehaviorContext, BehaviorStatus
from specqa.orchestrator.dependency_chain import build_dependency_chain
from specqa.runner.results import RunOptions

if TYPE_CHECKING:
    from specqa.auth.credentials import CredentialTracker
    from specqa.dsl.models import Behavior, BehaviorCatalog
    from specqa.orchestrator.context import VerificationContext
    from specqa.runner.adapters import ScenarioExecutor

logger = structlog.get_logger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class BehaviorRunner:
    """Runs one behavior together with its dependency chain."""

    def __init__(self, executor: ScenarioExecutor, config: VerificationConfig | None = None) -> None:
        self._executor = executor
        self._config = config or VerificationConfig()
        self._log = logger.bind(component="behavior_runner")

    async def run(
        self,
        target: Behavior,
        catalog: BehaviorCatalog,
        context: VerificationContext,
        tracker: CredentialTracker,
    ) -> BehaviorContext:
        start = time.monotonic()

        skip_reason = context.should_skip(target.dependency_ids)
        if skip_reason is not None:
            self._log.info("Skipping behavior", behavior=target.id, reason=skip_reason)
            return BehaviorContext(
                behavior_id=target.id,
                behavior_name=target.title,
                status=BehaviorStatus.DEPENDENCY_FAILED,
                failed_dependency=skip_reason,
            )

        chain = build_dependency_chain(target.id, catalog, self._config.cycle_policy)
        last = len(chain) - 1

        for index, link in enumerate(chain):
            behavior = link.behavior
            first = index == 0
            is_target = behavior.id == target.id

            scenario = behavior.scenario(link.scenario_name)
            if scenario is None:
                return BehaviorContext(
                    behavior_id=target.id,
                    behavior_name=target.title,
                    status=BehaviorStatus.FAIL,
                    error=f"No examples found for behavior: {behavior.title}",
                    duration_ms=_elapsed_ms(start),
                )

            steps = process_steps_with_credentials(
                behavior, scenario.steps, tracker, self._config.credentials
            )
            navigate_to_path = None
            if not first and behavior.page_path and not is_parameterized_path(behavior.page_path):
                navigate_to_path = behavior.page_path

            credentials = tracker.get_credentials()
            self._log.info(
                "Running chain member",
                position=f"{index}/{last}",
                behavior=behavior.id,
                steps=len(steps),
                email=credentials.email,
                navigate_to=navigate_to_path,
            )

            try:
                result = await self._executor.run_scenario(
                    scenario.with_steps(steps),
                    RunOptions(
                        clear_session=first,
                        navigate_to_path=navigate_to_path,
                        credentials=credentials,
                    ),
                )
            except Exception as e:
                self._log.error("Chain member crashed", behavior=behavior.id, error=str(e))
                if not is_target:
                    return BehaviorContext(
                        behavior_id=target.id,
                        behavior_name=target.title,
                        status=BehaviorStatus.DEPENDENCY_FAILED,
                        failed_dependency=behavior.title,
                        error=f'Dependency "{behavior.title}" crashed: {e}',
                        duration_ms=_elapsed_ms(start),
                    )
                return BehaviorContext(
                    behavior_id=target.id,
                    behavior_name=target.title,
                    status=BehaviorStatus.FAIL,
                    error=f"Runner crash: {e}",
                    duration_ms=_elapsed_ms(start),
                )

            # Harvest after execution so the uniquified email is what gets tracked.
            if self._config.credentials.is_signup(behavior.id):
                tracker.capture_from_steps(steps)

            if not result.success:
                if not is_target:
                    error = result.error
                    return BehaviorContext(
                        behavior_id=target.id,
                        behavior_name=target.title,
                        status=BehaviorStatus.DEPENDENCY_FAILED,
                        failed_dependency=behavior.title,
                        error=(
                            f'Dependency "{behavior.title}" failed: {error}'
                            if error
                            else f'Dependency "{behavior.title}" failed'
                        ),
                        duration_ms=_elapsed_ms(start),
                    )
                return BehaviorContext(
                    behavior_id=target.id,
                    behavior_name=target.title,
                    status=BehaviorStatus.FAIL,
                    error=result.error,
                    duration_ms=_elapsed_ms(start),
                )

        return BehaviorContext(
            behavior_id=target.id,
            behavior_name=target.title,
            status=BehaviorStatus.PASS,
            duration_ms=_elapsed_ms(start),
        )
