"""
pop_rules.py - Infer sub-journey completion from the orchestration counter.

The engine exposes a single ORCH_CS counter shared by every nesting level
and rarely reports sub-journey exits. Completion is inferred from how a new
counter value relates to the counters remembered on the journey stack:

    Rule 1  no counter update while inside a sub-journey  -> pop 1
            (decided by the orchestration interpreter, which sees the
            absence of an update)
    Rule 2  counter jumps by more than 1                   -> pop down to the
            first ancestor (scanning from the root) whose counter is exactly
            one below the new value; no pop if none matches
    Rule 3  counter decreases                              -> pop the current
            sub-journey, then keep popping while the new value is below the
            next ancestor's counter

The root is never popped, so the result never exceeds the stack depth.

Usage:
    from journeytrace.runtime.pop_rules import compute_pop_count

    compute_pop_count([4, 2], 5)   # -> 1 (gap, root counter 4 is one below 5)
    compute_pop_count([4, 7], 3)   # -> 1 (decrease)
"""

from __future__ import annotations

from typing import Sequence

NO_COUNTER_POP_COUNT = 1


def compute_pop_count(counters: Sequence[int], new_counter: int) -> int:
    """Number of sub-journeys a new orchestration counter value closes.

    Args:
        counters: last_orch_step of each journey level, bottom (root) first.
        new_counter: Newly observed ORCH_CS value.

    Returns:
        Pops to apply before the step for `new_counter` is opened, between 0
        and len(counters) - 1.
    """
    if len(counters) <= 1:
        return 0

    top_index = len(counters) - 1
    top = counters[top_index]

    if new_counter - top > 1:
        for index in range(top_index):
            if new_counter - counters[index] == 1:
                return top_index - index
        # Steps were skipped locally (preconditions not met)
        return 0

    if new_counter < top:
        count = 1
        index = top_index - 1
        while index > 0 and new_counter < counters[index]:
            count += 1
            index -= 1
        return count

    return 0
