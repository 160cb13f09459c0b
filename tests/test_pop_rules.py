"""
Tests for sub-journey completion inference from the orchestration counter.

Counters are listed bottom (main journey) first, as JourneyStack.counters()
returns them.
"""

import pytest

from journeytrace.runtime.pop_rules import NO_COUNTER_POP_COUNT, compute_pop_count


class TestNoSubJourney:
    """A stack holding only the main journey never pops."""

    @pytest.mark.parametrize("new_counter", [0, 1, 5, 42])
    def test_single_level(self, new_counter):
        assert compute_pop_count([3], new_counter) == 0

    def test_empty_counters(self):
        assert compute_pop_count([], 7) == 0


class TestCounterGap:
    """Counter jumping by more than one."""

    def test_gap_matching_root(self):
        assert compute_pop_count([4, 2], 5) == 1

    def test_gap_matching_intermediate_ancestor(self):
        assert compute_pop_count([4, 6, 1], 7) == 1

    def test_gap_matching_root_closes_every_level(self):
        assert compute_pop_count([4, 6, 1], 5) == 2

    def test_gap_without_matching_ancestor(self):
        # Skipped steps inside the sub-journey, it is still running
        assert compute_pop_count([4, 2], 9) == 0

    def test_scan_starts_at_root(self):
        # Both the root and the middle level sit one below the new value
        assert compute_pop_count([4, 4, 1], 5) == 2


class TestCounterDecrease:
    """Counter going backwards."""

    def test_decrease_pops_current(self):
        assert compute_pop_count([4, 7], 3) == 1

    def test_decrease_below_parent_pops_parent_too(self):
        assert compute_pop_count([4, 6, 8], 5) == 2

    def test_decrease_stops_at_parent_counter(self):
        assert compute_pop_count([4, 6, 8], 7) == 1

    def test_root_never_popped(self):
        assert compute_pop_count([9, 8, 7], 1) == 2


class TestContinuation:
    """Counter staying put or advancing by one."""

    def test_next_step(self):
        assert compute_pop_count([4, 2], 3) == 0

    def test_same_step(self):
        assert compute_pop_count([4, 2], 2) == 0


@pytest.mark.parametrize(
    "counters",
    [[1, 2], [5, 1, 9], [3, 3, 3, 3], [10, 0, 0]],
)
@pytest.mark.parametrize("new_counter", range(0, 12))
def test_pop_count_bounded_by_depth(counters, new_counter):
    pops = compute_pop_count(counters, new_counter)
    assert 0 <= pops <= len(counters) - 1


def test_missing_counter_pops_one_level():
    assert NO_COUNTER_POP_COUNT == 1
