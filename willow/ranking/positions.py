"""
Ordered List Position Manager

Computes fractional ranks so that a drag-and-drop list stays ordered
without renumbering unrelated rows.

RULES:
- Dropping on the first slot:  first.rank - GAP
- Dropping on the last slot:   last.rank + GAP
- Dropping in between:         midpoint of the two neighbours. An item that
  started above the target lands just below it; an item that started below
  the target (or a new item) lands just above it.
- When two neighbours are too close for a distinct midpoint, the lane is
  compacted to `index * GAP` and the rank is recomputed.

Every function here is pure. Items are any objects exposing `id` and
`rank` (and optionally `created_at` for tie-breaking); they are never
mutated. Persisting the result is the caller's job.
"""

import math
from collections.abc import Hashable, Sequence
from datetime import datetime
from typing import Any, Optional, Union

from willow.models.task import ListEdge, RankPlan, RankUpdate


GAP = 1000.0
EPSILON = 1e-6

MoveTarget = Union[Hashable, ListEdge]


class InvalidArgumentError(ValueError):
    """
    The list or the move request is malformed.

    Callers should re-fetch the authoritative list and try again.
    """
    pass


# =============================================================================
# ORDERING
# =============================================================================

def _created_key(item: Any) -> float:
    created = getattr(item, "created_at", None)
    if isinstance(created, datetime):
        return created.timestamp()
    return float("-inf")


def sort_key(item: Any) -> tuple:
    """
    Deterministic sort key: rank, then creation time, then id.

    The secondary keys only matter for transient ties.
    """
    return (item.rank, _created_key(item), str(item.id))


def sort_by_rank(items: Sequence[Any]) -> list:
    """Return a new list in visual order."""
    return sorted(items, key=sort_key)


def validate_ordered(items: Sequence[Any]) -> None:
    """
    Check that `items` can be used as a ranked list.

    Raises:
        InvalidArgumentError: duplicate ids, non-finite ranks, or ranks
            that are not ascending. Equal neighbouring ranks are tolerated.
    """
    seen: set = set()
    previous: Optional[float] = None
    for index, item in enumerate(items):
        if item.id in seen:
            raise InvalidArgumentError(f"Duplicate id in list: {item.id!r}")
        seen.add(item.id)

        rank = item.rank
        if not isinstance(rank, (int, float)) or not math.isfinite(rank):
            raise InvalidArgumentError(
                f"Item {item.id!r} has a non-finite rank: {rank!r}"
            )
        if previous is not None and rank < previous:
            raise InvalidArgumentError(
                f"List is not sorted by rank at index {index} "
                f"({rank} < {previous})"
            )
        previous = rank


# =============================================================================
# RANK ARITHMETIC
# =============================================================================

def needs_compaction(low: float, high: float, epsilon: float = EPSILON) -> bool:
    """
    True when no safe rank exists strictly between `low` and `high`.
    """
    if high - low <= 2 * epsilon:
        return True
    middle = (low + high) / 2
    return not (low < middle < high)


def rank_between(low: float, high: float, epsilon: float = EPSILON) -> float:
    """
    Midpoint of two ranks.

    Raises:
        InvalidArgumentError: if the gap is exhausted; compact first.
    """
    if needs_compaction(low, high, epsilon):
        raise InvalidArgumentError(
            f"No distinct rank between {low} and {high}; compact the list"
        )
    return (low + high) / 2


def rank_for_head(items: Sequence[Any], gap: float = GAP) -> float:
    """Rank that sorts before every item; GAP for an empty list."""
    validate_ordered(items)
    if not items:
        return gap
    return items[0].rank - gap


def rank_for_tail(items: Sequence[Any], gap: float = GAP) -> float:
    """Rank that sorts after every item; GAP for an empty list."""
    validate_ordered(items)
    if not items:
        return gap
    return items[-1].rank + gap


def _renumber(ids: Sequence[Hashable], gap: float) -> list[RankUpdate]:
    return [
        RankUpdate(item_id=item_id, rank=index * gap)
        for index, item_id in enumerate(ids)
    ]


def compact(items: Sequence[Any], gap: float = GAP) -> list[RankUpdate]:
    """
    Reassign evenly spaced ranks (`index * gap`) to every item.

    Items are put in visual order first, so the order before and after
    compaction is identical.
    """
    if gap <= 0:
        raise InvalidArgumentError(f"Gap must be positive, got {gap}")
    return _renumber([item.id for item in sort_by_rank(items)], gap)


def _slot_rank(
    low: Optional[float],
    high: Optional[float],
    gap: float,
    epsilon: float,
) -> Optional[float]:
    """Rank for a slot bounded by `low`/`high` (None = open end), or None if exhausted."""
    if low is None and high is None:
        return gap
    if low is None:
        candidate = high - gap
        return candidate if candidate < high else None
    if high is None:
        candidate = low + gap
        return candidate if candidate > low else None
    if needs_compaction(low, high, epsilon):
        return None
    return (low + high) / 2


# =============================================================================
# MOVES
# =============================================================================

def plan_move(
    items: Sequence[Any],
    moving_id: Hashable,
    target: MoveTarget,
    gap: float = GAP,
    epsilon: float = EPSILON,
) -> RankPlan:
    """
    Work out the new rank for `moving_id` dropped on `target`.

    Args:
        items: The destination lane in ascending rank order.
        moving_id: Item being moved; may be absent from `items` (new item or
            an item arriving from another lane).
        target: Id of an item in `items`, or a ListEdge sentinel.
        gap: Spacing used at either end of the list and by compaction.
        epsilon: Precision threshold below which a gap counts as exhausted.

    Returns:
        A RankPlan. `updates` is non-empty only if the lane was compacted.

    Raises:
        InvalidArgumentError: malformed list or unknown target.
    """
    if gap <= 0:
        raise InvalidArgumentError(f"Gap must be positive, got {gap}")
    if epsilon < 0:
        raise InvalidArgumentError(f"Epsilon must not be negative, got {epsilon}")
    validate_ordered(items)

    ids = [item.id for item in items]
    moving_index = ids.index(moving_id) if moving_id in ids else None
    last_index = len(items) - 1

    if isinstance(target, ListEdge):
        edge_index = 0 if target is ListEdge.START else last_index
        if moving_index is not None and moving_index == edge_index:
            return RankPlan(item_id=moving_id, rank=items[moving_index].rank)
    else:
        if target not in ids:
            raise InvalidArgumentError(f"Target {target!r} is not in the list")
        target_index = ids.index(target)
        if target_index == moving_index:
            return RankPlan(item_id=moving_id, rank=items[moving_index].rank)

        if target_index == 0:
            place_after = False
        elif target_index == last_index:
            place_after = True
        else:
            place_after = moving_index is not None and moving_index < target_index

    others = [item for item in items if item.id != moving_id]
    other_ids = [item.id for item in others]

    def bounds(ranks: list[float]) -> tuple[Optional[float], Optional[float]]:
        if not ranks:
            return None, None
        if target is ListEdge.START:
            return None, ranks[0]
        if target is ListEdge.END:
            return ranks[-1], None
        at = other_ids.index(target)
        if place_after:
            return ranks[at], ranks[at + 1] if at + 1 < len(ranks) else None
        return ranks[at - 1] if at > 0 else None, ranks[at]

    rank = _slot_rank(*bounds([item.rank for item in others]), gap, epsilon)
    if rank is not None:
        return RankPlan(item_id=moving_id, rank=rank)

    renumbered = _renumber(other_ids, gap)
    rank = _slot_rank(*bounds([u.rank for u in renumbered]), gap, epsilon)
    if rank is None:
        raise InvalidArgumentError(
            f"Gap {gap} is too small for precision threshold {epsilon}"
        )
    changed = [
        update for update, item in zip(renumbered, others)
        if update.rank != item.rank
    ]
    return RankPlan(item_id=moving_id, rank=rank, compacted=True, updates=changed)


def compute_rank_for_move(
    items: Sequence[Any],
    moving_id: Hashable,
    target: MoveTarget,
    gap: float = GAP,
    epsilon: float = EPSILON,
) -> float:
    """
    New rank for `moving_id` dropped on `target`.

    If the lane had to be compacted the returned rank is only meaningful
    together with the compacted ranks; use plan_move() to get those.
    """
    return plan_move(items, moving_id, target, gap=gap, epsilon=epsilon).rank
