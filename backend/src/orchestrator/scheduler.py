"""
Top-level verification scheduling.

Auth behaviors run first as one shared-session sequence. Every other behavior
then runs through its own dependency chain with fresh credential state, each
under the per-behavior wall-clock timeout.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from specqa.auth.auth_flow import crash_result, is_auth_behavior, run_auth_behaviors_sequence
from specqa.auth.credentials import CredentialTracker
from specqa.config import VerificationConfig
from specqa.dsl.parser import parse_behaviors
from specqa.orchestrator.behavior_runner import BehaviorRunner
from specqa.orchestrator.context import BehaviorContext, VerificationContext
from specqa.orchestrator.summary import VerificationSummary, create_verification_summary

if TYPE_CHECKING:
    from specqa.dsl.models import BehaviorCatalog
    from specqa.runner.adapters import ScenarioExecutor

logger = structlog.get_logger(__name__)


async def verify_all_behaviors(
    catalog: BehaviorCatalog,
    executor: ScenarioExecutor,
    config: VerificationConfig | None = None,
    context: VerificationContext | None = None,
) -> VerificationSummary:
    """Verify every behavior in the catalog and summarize the outcomes."""
    config = config or VerificationConfig()
    context = context or VerificationContext()
    log = logger.bind(component="scheduler")
    start = time.monotonic()
    tracker = CredentialTracker()

    log.info("Starting verification", behaviors=len(catalog))

    results = await run_auth_behaviors_sequence(catalog, context, tracker, executor, config)

    runner = BehaviorRunner(executor, config)
    for behavior in catalog.values():
        if is_auth_behavior(behavior.id):
            continue

        tracker.reset()
        behavior_start = time.monotonic()
        try:
            result: BehaviorContext = await asyncio.wait_for(
                runner.run(behavior, catalog, context, tracker),
                timeout=config.behavior_timeout_s,
            )
        except Exception as e:
            duration = int((time.monotonic() - behavior_start) * 1000)
            log.error("Behavior crashed", behavior=behavior.id, error=str(e) or type(e).__name__)
            result = crash_result(behavior, e, config.behavior_timeout_ms, duration)

        log.info(
            "Behavior verified",
            behavior=behavior.id,
            status=result.status.value,
            duration_ms=result.duration_ms,
        )
        context.mark_result(behavior.id, result)
        results.append(result)

    summary = create_verification_summary(results, int((time.monotonic() - start) * 1000))
    log.info("Verification complete", summary=summary.summary, reward=summary.reward)
    return summary


async def verify_instruction_file(
    path: Path | str,
    executor: ScenarioExecutor,
    config: VerificationConfig | None = None,
) -> VerificationSummary:
    """Parse a behavior document and verify every behavior in it."""
    content = Path(path).read_text(encoding="utf-8")
    catalog = parse_behaviors(content)
    return await verify_all_behaviors(catalog, executor, config)
