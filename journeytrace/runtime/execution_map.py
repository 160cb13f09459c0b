"""
execution_map.py - Per-node execution status for the reconstructed trace.

Keyed by step node id. A node visited more than once (a retried step) keeps
one entry whose status is the most severe outcome seen:

    Error > PendingInput > Success > Skipped

Usage:
    from journeytrace.runtime.execution_map import ExecutionMapBuilder

    builder = ExecutionMapBuilder()
    builder.add_step("step-SignUpOrSignIn-1", StepResult.SUCCESS, 0)
    statuses = builder.build()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .types import StepResult

_STATUS_PRIORITY = {
    StepResult.ERROR: 3,
    StepResult.PENDING_INPUT: 2,
    StepResult.SUCCESS: 1,
    StepResult.SKIPPED: 0,
}


def merge_status(existing: StepResult, incoming: StepResult) -> StepResult:
    """The more severe of two step outcomes."""
    if _STATUS_PRIORITY[incoming] > _STATUS_PRIORITY[existing]:
        return incoming
    return existing


@dataclass
class NodeExecutionStatus:
    """Execution record for one node.

    Attributes:
        status: Most severe outcome across visits.
        visit_count: Number of distinct step nodes that used this id.
        step_indices: Sequence numbers of those visits.
    """

    status: StepResult
    visit_count: int = 0
    step_indices: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "visit_count": self.visit_count,
            "step_indices": list(self.step_indices),
        }


@dataclass
class ExecutionStats:
    unique_nodes: int = 0
    total_visits: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    pending_count: int = 0


class ExecutionMapBuilder:
    def __init__(self) -> None:
        self._map: Dict[str, NodeExecutionStatus] = {}

    def add_step(self, node_id: str, result: StepResult, sequence_number: int) -> None:
        """Record a visit to `node_id`."""
        if not node_id:
            return
        existing = self._map.get(node_id)
        if existing is None:
            self._map[node_id] = NodeExecutionStatus(result, 1, [sequence_number])
            return
        existing.visit_count += 1
        existing.step_indices.append(sequence_number)
        existing.status = merge_status(existing.status, result)

    def update_status(self, node_id: str, result: StepResult) -> None:
        """Merge a status into an existing entry without counting a visit."""
        existing = self._map.get(node_id)
        if existing is None:
            self._map[node_id] = NodeExecutionStatus(result, 0, [])
            return
        existing.status = merge_status(existing.status, result)

    def get_status(self, node_id: str) -> Optional[NodeExecutionStatus]:
        return self._map.get(node_id)

    def has_visited(self, node_id: str) -> bool:
        return node_id in self._map

    def get_visit_count(self, node_id: str) -> int:
        entry = self._map.get(node_id)
        return entry.visit_count if entry else 0

    def get_visited_nodes(self) -> List[str]:
        return list(self._map)

    def get_nodes_by_status(self, status: StepResult) -> List[str]:
        return [node_id for node_id, entry in self._map.items() if entry.status == status]

    def get_stats(self) -> ExecutionStats:
        stats = ExecutionStats(unique_nodes=len(self._map))
        for entry in self._map.values():
            stats.total_visits += entry.visit_count
            if entry.status == StepResult.SUCCESS:
                stats.success_count += 1
            elif entry.status == StepResult.ERROR:
                stats.error_count += 1
            elif entry.status == StepResult.SKIPPED:
                stats.skipped_count += 1
            elif entry.status == StepResult.PENDING_INPUT:
                stats.pending_count += 1
        return stats

    def build(self) -> Dict[str, NodeExecutionStatus]:
        """Copies of every entry, keyed by node id."""
        return {
            node_id: NodeExecutionStatus(entry.status, entry.visit_count, list(entry.step_indices))
            for node_id, entry in self._map.items()
        }

    def reset(self) -> None:
        self._map.clear()
