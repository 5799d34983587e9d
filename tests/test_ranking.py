"""
Tests for the ordered list position manager.

Test strategy:
1. Worked examples for each placement rule
2. Edge cases (no-op, sentinels, empty lane, bad input)
3. Precision exhaustion and compaction
4. Randomised move sequences checked against a plain list model
"""

import math
import random
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from willow.models.task import ListEdge, Task
from willow.ranking import (
    EPSILON,
    GAP,
    InvalidArgumentError,
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


def item(item_id, rank):
    return SimpleNamespace(id=item_id, rank=rank)


def lane(*pairs):
    return [item(item_id, rank) for item_id, rank in pairs]


def apply_plan(items, plan):
    """Return the lane as it looks once the plan is persisted."""
    ranks = {i.id: i.rank for i in items}
    for update in plan.updates:
        ranks[update.item_id] = update.rank
    ranks[plan.item_id] = plan.rank
    return sorted(ranks, key=lambda item_id: ranks[item_id])


ABC = [("A", 1000.0), ("B", 2000.0), ("C", 3000.0)]


class TestPlacementRules:
    """Tests for where a dropped item lands."""

    def test_move_up_lands_before_target(self):
        """C dropped on B lands between A and B."""
        assert compute_rank_for_move(lane(*ABC), "C", "B") == 1500.0

    def test_move_down_lands_after_target(self):
        """A dropped on B lands between B and C."""
        assert compute_rank_for_move(lane(*ABC), "A", "B") == 2500.0

    def test_drop_on_last_slot_goes_past_the_end(self):
        """A dropped on C gets last rank plus GAP."""
        assert compute_rank_for_move(lane(*ABC), "A", "C") == 4000.0

    def test_drop_on_first_slot_goes_before_the_start(self):
        """C dropped on A gets first rank minus GAP."""
        assert compute_rank_for_move(lane(*ABC), "C", "A") == 0.0

    def test_new_item_at_head(self):
        """A new item dropped on the only item lands before it."""
        assert compute_rank_for_move(lane(("A", 1000.0)), "NEW", "A") == 0.0

    def test_new_item_in_the_middle_lands_before_target(self):
        assert compute_rank_for_move(lane(*ABC), "NEW", "B") == 1500.0

    def test_new_item_on_last_slot_goes_past_the_end(self):
        assert compute_rank_for_move(lane(*ABC), "NEW", "C") == 4000.0

    def test_custom_gap(self):
        assert compute_rank_for_move(lane(*ABC), "A", "C", gap=10.0) == 3010.0

    def test_items_are_not_mutated(self):
        items = lane(*ABC)
        plan_move(items, "C", "B")
        assert [(i.id, i.rank) for i in items] == ABC


class TestEdgeCases:
    """Tests for no-ops, sentinels and invalid input."""

    def test_drop_on_itself_is_noop(self):
        plan = plan_move(lane(*ABC), "B", "B")
        assert plan.rank == 2000.0
        assert plan.is_single_write
        assert not plan.compacted

    def test_start_sentinel(self):
        assert compute_rank_for_move(lane(*ABC), "C", ListEdge.START) == 0.0

    def test_end_sentinel(self):
        assert compute_rank_for_move(lane(*ABC), "A", ListEdge.END) == 4000.0

    def test_start_sentinel_when_already_first(self):
        assert compute_rank_for_move(lane(*ABC), "A", ListEdge.START) == 1000.0

    def test_end_sentinel_when_already_last(self):
        assert compute_rank_for_move(lane(*ABC), "C", ListEdge.END) == 3000.0

    def test_empty_lane_yields_gap(self):
        assert compute_rank_for_move([], "NEW", ListEdge.START) == GAP
        assert compute_rank_for_move([], "NEW", ListEdge.END) == GAP

    def test_unknown_target_rejected(self):
        with pytest.raises(InvalidArgumentError):
            compute_rank_for_move(lane(*ABC), "A", "Z")

    def test_unsorted_list_rejected(self):
        with pytest.raises(InvalidArgumentError):
            compute_rank_for_move(lane(("A", 2000.0), ("B", 1000.0)), "A", "B")

    def test_duplicate_ids_rejected(self):
        with pytest.raises(InvalidArgumentError):
            validate_ordered(lane(("A", 1000.0), ("A", 2000.0)))

    @pytest.mark.parametrize("bad_rank", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_rank_rejected(self, bad_rank):
        with pytest.raises(InvalidArgumentError):
            compute_rank_for_move(lane(("A", 1000.0), ("B", bad_rank)), "A", "B")

    def test_invalid_argument_is_value_error(self):
        assert issubclass(InvalidArgumentError, ValueError)

    def test_ties_are_tolerated(self):
        validate_ordered(lane(("A", 1000.0), ("B", 1000.0)))


class TestCompaction:
    """Tests for precision exhaustion."""

    def test_needs_compaction_thresholds(self):
        assert needs_compaction(1000.0, 1000.0)
        assert needs_compaction(1000.0, 1000.0 + EPSILON)
        assert not needs_compaction(1000.0, 1001.0)

    def test_rank_between(self):
        assert rank_between(1000.0, 2000.0) == 1500.0

    def test_rank_between_refuses_exhausted_gap(self):
        with pytest.raises(InvalidArgumentError):
            rank_between(1.0, 1.0 + 1e-9)

    def test_exhausted_gap_triggers_compaction(self):
        """C dropped between two nearly equal ranks still gets a usable rank."""
        items = lane(("A", 1000.0), ("B", 1000.0 + 1e-7), ("C", 3000.0))
        plan = plan_move(items, "C", "B")

        assert plan.compacted
        assert apply_plan(items, plan) == ["A", "C", "B"]
        assert {u.item_id: u.rank for u in plan.updates} == {"A": 0.0, "B": 1000.0}
        assert plan.rank == 500.0

    def test_tie_triggers_compaction(self):
        items = lane(("A", 1000.0), ("B", 1000.0), ("C", 3000.0))
        plan = plan_move(items, "C", "B")

        assert plan.compacted
        assert apply_plan(items, plan) == ["A", "C", "B"]

    def test_compaction_reports_only_changed_ranks(self):
        items = lane(("A", 0.0), ("B", 1000.0), ("C", 1000.0), ("D", 5000.0))
        plan = plan_move(items, "D", "C")

        changed = {u.item_id for u in plan.updates}
        assert "A" not in changed
        assert "B" not in changed
        assert apply_plan(items, plan) == ["A", "B", "D", "C"]

    def test_no_compaction_means_single_write(self):
        plan = plan_move(lane(*ABC), "C", "B")
        assert plan.is_single_write
        assert not plan.compacted

    def test_compact_renumbers_in_order(self):
        updates = compact(lane(("B", 7.5), ("A", 3.25), ("C", 9.0)))
        assert [(u.item_id, u.rank) for u in updates] == [
            ("A", 0.0),
            ("B", 1000.0),
            ("C", 2000.0),
        ]

    def test_compact_rejects_bad_gap(self):
        with pytest.raises(InvalidArgumentError):
            compact(lane(*ABC), gap=0)

    def test_gap_too_small_for_epsilon(self):
        items = lane(("A", 0.0), ("B", 1e-9), ("C", 2e-9))
        with pytest.raises(InvalidArgumentError):
            plan_move(items, "C", "B", gap=1e-9, epsilon=1.0)


class TestHelpers:
    """Tests for head/tail ranks and sorting."""

    def test_rank_for_head_and_tail(self):
        items = lane(*ABC)
        assert rank_for_head(items) == 0.0
        assert rank_for_tail(items) == 4000.0

    def test_head_and_tail_of_empty_lane(self):
        assert rank_for_head([]) == GAP
        assert rank_for_tail([]) == GAP

    def test_sort_key_breaks_ties_by_creation_then_id(self):
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        later = earlier + timedelta(minutes=5)
        b = Task(owner_id="u", title="b", rank=1.0, created_at=earlier)
        a = Task(owner_id="u", title="a", rank=1.0, created_at=later)
        first = Task(owner_id="u", title="first", rank=0.5, created_at=later)

        assert sort_by_rank([a, b, first]) == [first, b, a]

    def test_sort_key_without_created_at(self):
        assert sort_key(item("x", 2.0)) < sort_key(item("y", 2.0))


class TestRandomisedMoves:
    """Long move sequences against a plain list model."""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_order_matches_list_model(self, seed):
        rng = random.Random(seed)
        # Tiny gap and large epsilon force frequent compaction
        gap, epsilon = 1.0, 0.01
        ranks = {f"T{i}": float(i) for i in range(8)}

        def current():
            return sorted(
                (item(item_id, rank) for item_id, rank in ranks.items()),
                key=lambda i: i.rank,
            )

        for _ in range(300):
            items = current()
            order = [i.id for i in items]
            mover = rng.choice(order)
            target = rng.choice(order + [ListEdge.START, ListEdge.END])

            expected = [i for i in order if i != mover]
            if target is ListEdge.START:
                expected.insert(0, mover)
            elif target is ListEdge.END:
                expected.append(mover)
            elif target == mover:
                expected = order
            else:
                after = order.index(mover) < order.index(target)
                expected.insert(expected.index(target) + (1 if after else 0), mover)

            plan = plan_move(items, mover, target, gap=gap, epsilon=epsilon)
            for update in plan.updates:
                ranks[update.item_id] = update.rank
            ranks[mover] = plan.rank

            assert [i.id for i in current()] == expected
            assert all(math.isfinite(r) for r in ranks.values())
            assert len(set(ranks.values())) == len(ranks)

    def test_untouched_items_keep_their_ranks(self):
        rng = random.Random(3)
        items = lane(*[(f"T{i}", i * 1000.0) for i in range(10)])
        for _ in range(50):
            mover, target = rng.sample([i.id for i in items], 2)
            plan = plan_move(items, mover, target)
            assert plan.is_single_write


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
