"""
journey_stack.py - Journey / sub-journey nesting.

The bottom entry is the main journey, established once from the first
Headers clip. Sub-journeys are pushed when a dispatch handler fires and
popped on an explicit exit or when the orchestration counter implies the
sub-journey has completed (see pop_rules.py).

Usage:
    from journeytrace.runtime.journey_stack import JourneyStack

    stack = JourneyStack("SignUpOrSignIn", "SignUpOrSignIn")
    stack.push("PasswordReset", "PasswordReset")
    stack.update_orch_step(2)
    popped = stack.pop()
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import JourneyStackError
from .types._time import EPOCH

logger = logging.getLogger(__name__)


@dataclass
class JourneyContext:
    """One level of journey nesting.

    Attributes:
        journey_id: Journey (or sub-journey) identifier.
        journey_name: Friendly name.
        last_orch_step: Last orchestration counter observed at this level.
        entry_timestamp: Timestamp of the log that entered this level.
        depth: 0 for the main journey.
    """

    journey_id: str
    journey_name: str
    last_orch_step: int = 0
    entry_timestamp: datetime = EPOCH
    depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "journey_id": self.journey_id,
            "journey_name": self.journey_name,
            "last_orch_step": self.last_orch_step,
            "depth": self.depth,
        }


@dataclass
class JourneyStackSnapshot:
    entries: List[JourneyContext] = field(default_factory=list)
    current_journey_id: str = ""
    depth: int = 0


class JourneyStack:
    """Non-empty stack of journey contexts; the root is never popped."""

    def __init__(
        self,
        root_journey_id: str,
        root_journey_name: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        self._stack: List[JourneyContext] = [
            JourneyContext(
                journey_id=root_journey_id,
                journey_name=root_journey_name or root_journey_id,
                entry_timestamp=timestamp or EPOCH,
                depth=0,
            )
        ]

    def push(
        self,
        journey_id: str,
        journey_name: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        last_orch_step: int = 0,
    ) -> JourneyContext:
        entry = JourneyContext(
            journey_id=journey_id,
            journey_name=journey_name or journey_id,
            last_orch_step=last_orch_step,
            entry_timestamp=timestamp or EPOCH,
            depth=len(self._stack),
        )
        self._stack.append(entry)
        logger.debug("Pushed journey %s at depth %d", journey_id, entry.depth)
        return entry

    def pop(self) -> JourneyContext:
        """Pop the current sub-journey.

        Raises:
            JourneyStackError: If the stack is already at the main journey.
        """
        if len(self._stack) <= 1:
            raise JourneyStackError(
                f"Cannot pop journey stack past root journey '{self._stack[0].journey_id}'"
            )
        entry = self._stack.pop()
        logger.debug("Popped journey %s", entry.journey_id)
        return entry

    def pop_until(self, journey_id: str) -> List[JourneyContext]:
        """Pop until `journey_id` is on top (or only the root remains)."""
        popped: List[JourneyContext] = []
        while len(self._stack) > 1 and self.current().journey_id != journey_id:
            popped.append(self._stack.pop())
        return popped

    def current(self) -> JourneyContext:
        return self._stack[-1]

    def root(self) -> JourneyContext:
        return self._stack[0]

    def parent(self) -> Optional[JourneyContext]:
        if len(self._stack) <= 1:
            return None
        return self._stack[-2]

    def depth(self) -> int:
        """Number of sub-journeys above the root."""
        return len(self._stack) - 1

    def is_in_sub_journey(self) -> bool:
        return len(self._stack) > 1

    def update_orch_step(self, step: int) -> None:
        self._stack[-1].last_orch_step = step

    def get_full_stack(self) -> List[JourneyContext]:
        """Contexts bottom-to-top (a copy of the list, not of the entries)."""
        return list(self._stack)

    def counters(self) -> List[int]:
        """last_orch_step of every level, bottom-to-top."""
        return [entry.last_orch_step for entry in self._stack]

    def get_visited_sub_journeys(self) -> List[str]:
        return [entry.journey_id for entry in self._stack[1:]]

    def get_journey_path(self) -> List[str]:
        return [entry.journey_id for entry in self._stack]

    def get_display_path(self, separator: str = " > ") -> str:
        return separator.join(entry.journey_name for entry in self._stack)

    def find_by_journey_id(self, journey_id: str) -> Optional[JourneyContext]:
        for entry in self._stack:
            if entry.journey_id == journey_id:
                return entry
        return None

    def contains_journey(self, journey_id: str) -> bool:
        return self.find_by_journey_id(journey_id) is not None

    def snapshot(self) -> JourneyStackSnapshot:
        return JourneyStackSnapshot(
            entries=copy.deepcopy(self._stack),
            current_journey_id=self.current().journey_id,
            depth=self.depth(),
        )

    def restore(self, snapshot: JourneyStackSnapshot) -> None:
        if not snapshot.entries:
            raise JourneyStackError("Cannot restore an empty journey stack snapshot")
        self._stack = copy.deepcopy(snapshot.entries)
