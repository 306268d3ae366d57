"""Per-behavior outcome records and the cross-behavior verification context."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class BehaviorStatus(StrEnum):
    """Outcome of verifying one behavior."""

    PASS = "pass"
    FAIL = "fail"
    DEPENDENCY_FAILED = "dependency_failed"


@dataclass(frozen=True)
class BehaviorContext:
    """Outcome record for one behavior in one verification run."""

    behavior_id: str
    behavior_name: str
    status: BehaviorStatus
    failed_dependency: str | None = None
    error: str | None = None
    duration_ms: int = 0

    @property
    def passed(self) -> bool:
        return self.status is BehaviorStatus.PASS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "behavior_id": self.behavior_id,
            "behavior_name": self.behavior_name,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
        }
        if self.failed_dependency is not None:
            data["failed_dependency"] = self.failed_dependency
        if self.error is not None:
            data["error"] = self.error
        return data


class VerificationContext:
    """Outcomes recorded so far, keyed by behavior id."""

    def __init__(self) -> None:
        self._results: dict[str, BehaviorContext] = {}

    def mark_result(self, behavior_id: str, result: BehaviorContext) -> None:
        self._results[behavior_id] = result

    def get_result(self, behavior_id: str) -> BehaviorContext | None:
        return self._results.get(behavior_id)

    def has_passed(self, behavior_id: str) -> bool:
        result = self._results.get(behavior_id)
        return result is not None and result.passed

    def should_skip(self, dependency_ids: list[str]) -> str | None:
        """
        Reason to skip a behavior whose direct dependency already failed.

        Returns None when nothing recorded so far rules the behavior out.
        """
        for dep_id in dependency_ids:
            result = self._results.get(dep_id)
            if result is not None and not result.passed:
                return f'Dependency "{result.behavior_name}" failed'
        return None

    def all_results(self) -> dict[str, BehaviorContext]:
        return dict(self._results)

    def status_counts(self) -> dict[BehaviorStatus, int]:
        counts = Counter(r.status for r in self._results.values())
        return {status: counts.get(status, 0) for status in BehaviorStatus}

    def clear(self) -> None:
        self._results.clear()
