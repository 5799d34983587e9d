"""Lane validation package."""

from willow.validation.rank_checker import (
    LaneCheckResult,
    LaneIssue,
    RankIntegrityChecker,
)

__all__ = ["LaneCheckResult", "LaneIssue", "RankIntegrityChecker"]
