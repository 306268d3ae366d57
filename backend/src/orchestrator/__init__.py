"""
Behavior orchestration.

Dependency chain building, chain execution, the cross-behavior verification
context and result summaries. The top-level entry points live in
``specqa.orchestrator.scheduler``.
"""

from specqa.orchestrator.behavior_runner import BehaviorRunner
from specqa.orchestrator.context import BehaviorContext, BehaviorStatus, VerificationContext
from specqa.orchestrator.dependency_chain import (
    BehaviorNotFoundError,
    ChainBuildError,
    ChainStep,
    DependencyCycleError,
    build_dependency_chain,
)
from specqa.orchestrator.summary import (
    VerificationSummary,
    aggregate_results,
    calculate_reward,
    create_verification_summary,
    generate_summary,
)

__all__ = [
    # Context
    "BehaviorContext",
    "BehaviorStatus",
    "VerificationContext",
    # Chains
    "BehaviorNotFoundError",
    "BehaviorRunner",
    "ChainBuildError",
    "ChainStep",
    "DependencyCycleError",
    "build_dependency_chain",
    # Summary
    "VerificationSummary",
    "aggregate_results",
    "calculate_reward",
    "create_verification_summary",
    "generate_summary",
]
