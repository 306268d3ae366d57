"""Reward and summary reporting over a set of behavior outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from specqa.orchestrator.context import BehaviorContext, BehaviorStatus


@dataclass
class VerificationSummary:
    """Aggregate outcome of a verification run."""

    passed: int
    failed: int
    dependency_failed: int
    total: int
    reward: float
    summary: str = ""
    behaviors: list[BehaviorContext] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def all_passed(self) -> bool:
        return self.total > 0 and self.passed == self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "dependency_failed": self.dependency_failed,
            "total": self.total,
            "reward": self.reward,
            "summary": self.summary,
            "behaviors": [b.to_dict() for b in self.behaviors],
            "duration_ms": self.duration_ms,
        }


def calculate_reward(results: list[BehaviorContext]) -> float:
    """Fraction of behaviors that passed; 0 for an empty run."""
    if not results:
        return 0.0
    return sum(1 for r in results if r.passed) / len(results)


def aggregate_results(results: list[BehaviorContext]) -> dict[str, Any]:
    def count(status: BehaviorStatus) -> int:
        return sum(1 for r in results if r.status is status)

    return {
        "passed": count(BehaviorStatus.PASS),
        "failed": count(BehaviorStatus.FAIL),
        "dependency_failed": count(BehaviorStatus.DEPENDENCY_FAILED),
        "total": len(results),
        "reward": calculate_reward(results),
    }


def generate_summary(results: list[BehaviorContext]) -> str:
    """One-line human summary, e.g. "3 behaviors passed, 1 failed (Edit Task)"."""
    counts = aggregate_results(results)
    passed, failed, dep_failed = counts["passed"], counts["failed"], counts["dependency_failed"]

    parts = ["1 behavior passed" if passed == 1 else f"{passed} behaviors passed"]
    if failed:
        names = ", ".join(r.behavior_name for r in results if r.status is BehaviorStatus.FAIL)
        parts.append(f"{failed} failed ({names})")
    if dep_failed:
        parts.append(f"{dep_failed} failed due to dependencies")
    return ", ".join(parts)


def create_verification_summary(
    results: list[BehaviorContext], duration_ms: int
) -> VerificationSummary:
    return VerificationSummary(
        **aggregate_results(results),
        summary=generate_summary(results),
        behaviors=list(results),
        duration_ms=duration_ms,
    )
