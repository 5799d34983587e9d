"""Rank arithmetic for ordered lanes."""

from willow.ranking.positions import (
    EPSILON,
    GAP,
    InvalidArgumentError,
    MoveTarget,
    compact,
    compute_rank_for_move,
    needs_compaction,
    plan_move,
    rank_between,
    rank_for_head,
    rank_for_tail,
    sort_by_rank,
    sort_key,
    validate_ordered,
)

__all__ = [
    "EPSILON",
    "GAP",
    "InvalidArgumentError",
    "MoveTarget",
    "compact",
    "compute_rank_for_move",
    "needs_compaction",
    "plan_move",
    "rank_between",
    "rank_for_head",
    "rank_for_tail",
    "sort_by_rank",
    "sort_key",
    "validate_ordered",
]
