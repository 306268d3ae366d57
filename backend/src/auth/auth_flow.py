"""
Dedicated authentication flow.

Auth behaviors depend on each other's session state rather than on declared
dependencies: after Sign Up the user is signed in, so Sign Out runs as is;
after Sign Out the user is signed out, so Invalid Sign In and Sign In run
as is. They share one session and only Sign Up starts from a clean slate.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from specqa.auth.credentials import process_steps_with_credentials
from specqa.config import VerificationConfig
from specqa.orchestrator.context import BehaviorContext, BehaviorStatus
from specqa.runner.results import RunOptions

if TYPE_CHECKING:
    from specqa.auth.credentials import CredentialTracker
    from specqa.dsl.models import Behavior, BehaviorCatalog
    from specqa.orchestrator.context import VerificationContext
    from specqa.runner.adapters import ScenarioExecutor

logger = structlog.get_logger(__name__)

AUTH_PATTERNS = ("sign-up", "signup", "sign-in", "signin", "sign-out", "signout", "invalid-sign-in")
AUTH_ORDER = ("sign-up", "sign-out", "invalid-sign-in", "sign-in")
SIGN_UP_ID = "sign-up"


def is_auth_behavior(behavior_id: str) -> bool:
    lowered = behavior_id.lower()
    return any(pattern in lowered for pattern in AUTH_PATTERNS)


def timeout_message(title: str, timeout_ms: int) -> str:
    return f'Behavior "{title}" timed out after {timeout_ms / 1000:g}s'


def crash_result(behavior: Behavior, error: BaseException, timeout_ms: int, duration_ms: int) -> BehaviorContext:
    """Convert a timeout or crash around a whole behavior into a ``fail`` record."""
    if isinstance(error, TimeoutError):
        message = timeout_message(behavior.title, timeout_ms)
    else:
        message = f"Unexpected error: {error}"
    return BehaviorContext(
        behavior_id=behavior.id,
        behavior_name=behavior.title,
        status=BehaviorStatus.FAIL,
        error=message,
        duration_ms=duration_ms,
    )


async def run_auth_behaviors_sequence(
    catalog: BehaviorCatalog,
    context: VerificationContext,
    tracker: CredentialTracker,
    executor: ScenarioExecutor,
    config: VerificationConfig | None = None,
) -> list[BehaviorContext]:
    """Run Sign Up, Sign Out, Invalid Sign In and Sign In on one shared session."""
    config = config or VerificationConfig()
    log = logger.bind(component="auth_flow")
    behaviors = [catalog[bid] for bid in AUTH_ORDER if bid in catalog]
    results: list[BehaviorContext] = []
    if not behaviors:
        return results

    log.info("Starting auth flow", order=" -> ".join(b.title for b in behaviors))

    for index, behavior in enumerate(behaviors):
        first = index == 0
        start = time.monotonic()

        if not first:
            sign_up = context.get_result(SIGN_UP_ID)
            if sign_up is not None and not sign_up.passed:
                result = BehaviorContext(
                    behavior_id=behavior.id,
                    behavior_name=behavior.title,
                    status=BehaviorStatus.DEPENDENCY_FAILED,
                    failed_dependency="Sign Up",
                )
                context.mark_result(behavior.id, result)
                results.append(result)
                continue

        scenario = behavior.scenario()
        if scenario is None:
            result = BehaviorContext(
                behavior_id=behavior.id,
                behavior_name=behavior.title,
                status=BehaviorStatus.FAIL,
                error=f"No examples found for behavior: {behavior.title}",
            )
            context.mark_result(behavior.id, result)
            results.append(result)
            continue

        steps = process_steps_with_credentials(
            behavior, scenario.steps, tracker, config.credentials
        )
        previous_id = behaviors[index - 1].id if index > 0 else ""
        reload_page = behavior.id == "sign-in" and previous_id == "invalid-sign-in"
        log.info(
            "Running auth behavior",
            behavior=behavior.id,
            steps=len(steps),
            clear_session=first,
            reload_page=reload_page,
            email=tracker.get_credentials().email,
        )

        try:
            scenario_result = await asyncio.wait_for(
                executor.run_scenario(
                    scenario.with_steps(steps),
                    RunOptions(clear_session=first, reload_page=reload_page),
                ),
                timeout=config.behavior_timeout_s,
            )
        except Exception as e:
            duration = int((time.monotonic() - start) * 1000)
            log.error("Auth behavior crashed", behavior=behavior.id, error=str(e) or type(e).__name__)
            result = crash_result(behavior, e, config.behavior_timeout_ms, duration)
            context.mark_result(behavior.id, result)
            results.append(result)
            continue

        if config.credentials.is_signup(behavior.id):
            tracker.capture_from_steps(steps)

        result = BehaviorContext(
            behavior_id=behavior.id,
            behavior_name=behavior.title,
            status=BehaviorStatus.PASS if scenario_result.success else BehaviorStatus.FAIL,
            error=scenario_result.error,
            duration_ms=scenario_result.duration_ms,
        )
        context.mark_result(behavior.id, result)
        results.append(result)

    return results
