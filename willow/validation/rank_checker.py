"""
Lane Integrity Checks

DESIGN DECISION: Checking a lane is separate from repairing it.
The checker inspects a lane as returned by storage and reports what it
finds; it never rewrites ranks. Repair is an explicit, audited action
(TaskFlow.compact_lane).

SEVERITIES:
- error: the lane cannot be used for rank arithmetic
  (non-finite ranks, duplicate ids, ranks out of order)
- warning: the lane works but should be compacted
  (equal ranks, neighbours closer than 2 * epsilon)
"""

import math
from collections.abc import Sequence
from typing import Any, Optional

from pydantic import BaseModel, Field

from willow.config import get_settings
from willow.ranking import needs_compaction


class LaneIssue(BaseModel):
    """A single problem found in a lane."""

    item_id: str = Field(
        ...,
        description="Item the issue was found on"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'non_finite', 'unsorted', 'tie')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class LaneCheckResult(BaseModel):
    """Outcome of checking one lane."""

    item_count: int = 0
    issues: list[LaneIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[LaneIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[LaneIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def needs_compaction(self) -> bool:
        """True when a compaction pass would clear every warning."""
        return any(
            issue.issue_type in ("tie", "exhausted_gap")
            for issue in self.issues
        )


class RankIntegrityChecker:
    """
    Inspects a lane (items exposing `id` and `rank`) in the order given.
    """

    def __init__(self, epsilon: Optional[float] = None):
        self._epsilon = (
            epsilon if epsilon is not None else get_settings().ranking.epsilon
        )

    def check(self, items: Sequence[Any]) -> LaneCheckResult:
        issues = []
        seen: set = set()
        previous = None

        for item in items:
            item_id = str(item.id)

            if item.id in seen:
                issues.append(LaneIssue(
                    item_id=item_id,
                    issue_type="duplicate_id",
                    message=f"Item {item_id} appears more than once",
                    severity="error",
                ))
                continue
            seen.add(item.id)

            rank = item.rank
            if not isinstance(rank, (int, float)) or not math.isfinite(rank):
                issues.append(LaneIssue(
                    item_id=item_id,
                    issue_type="non_finite",
                    message=f"Item {item_id} has a non-finite rank ({rank!r})",
                    severity="error",
                ))
                continue

            if previous is not None:
                if rank < previous.rank:
                    issues.append(LaneIssue(
                        item_id=item_id,
                        issue_type="unsorted",
                        message=(
                            f"Item {item_id} (rank {rank}) comes after "
                            f"rank {previous.rank}"
                        ),
                        severity="error",
                    ))
                elif rank == previous.rank:
                    issues.append(LaneIssue(
                        item_id=item_id,
                        issue_type="tie",
                        message=f"Item {item_id} shares rank {rank} with {previous.id}",
                        severity="warning",
                    ))
                elif needs_compaction(previous.rank, rank, self._epsilon):
                    issues.append(LaneIssue(
                        item_id=item_id,
                        issue_type="exhausted_gap",
                        message=(
                            f"No room left between {previous.id} and {item_id}"
                        ),
                        severity="warning",
                    ))

            previous = item

        return LaneCheckResult(item_count=len(items), issues=issues)

    def get_summary(self, result: LaneCheckResult) -> str:
        """One-line description of a check result, for logs."""
        if not result.issues:
            return f"{result.item_count} items, no issues"
        parts = [f"{result.item_count} items"]
        if result.errors:
            parts.append(f"{len(result.errors)} errors")
        if result.warnings:
            parts.append(f"{len(result.warnings)} warnings")
        if result.needs_compaction:
            parts.append("compaction recommended")
        return ", ".join(parts)
