"""
flow_analyzer.py - Group recorder logs into user flows.

A batch of recorder logs usually mixes several users. Each correlation id is
one user's interaction; within it, every "authentication started" (AUTH)
Headers event after the first starts a new flow. TraceParser.parse_flows()
parses each flow on its own.

Flow ids are "{correlation_id}-{n}", numbered across the whole batch in
order of each correlation id's first log.

Usage:
    from journeytrace.runtime.flow_analyzer import group_logs_into_flows, get_logs_for_flow

    flows = group_logs_into_flows(logs)
    for flow in flows:
        result = TraceParser().parse(get_logs_for_flow(logs, flow.id, flows))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .keys import EVENT_AUTH
from .types import TraceLogInput
from .types._time import _datetime_to_iso, to_millis

logger = logging.getLogger(__name__)


@dataclass
class UserFlow:
    """One user's pass through a journey.

    Attributes:
        id: "{correlation_id}-{n}", unique within one analysis.
        correlation_id: Correlation id shared by the flow's logs.
        policy_id: Policy of the flow's first log.
        start_time: Timestamp of the first log.
        end_time: Timestamp of the last log.
        log_ids: Ids of the flow's logs, in timestamp order.
        step_count: Steps found when the flow was parsed.
        has_errors: Whether parsing the flow reported errors.
        user_email: Email claim seen by the end of the flow.
        user_object_id: Object id claim seen by the end of the flow.
    """

    id: str
    correlation_id: str
    policy_id: str
    start_time: datetime
    end_time: datetime
    log_ids: List[str] = field(default_factory=list)
    step_count: int = 0
    has_errors: bool = False
    user_email: Optional[str] = None
    user_object_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "correlation_id": self.correlation_id,
            "policy_id": self.policy_id,
            "start_time": _datetime_to_iso(self.start_time),
            "end_time": _datetime_to_iso(self.end_time),
            "log_ids": list(self.log_ids),
            "step_count": self.step_count,
            "has_errors": self.has_errors,
            "user_email": self.user_email,
            "user_object_id": self.user_object_id,
        }


def log_correlation_id(log: TraceLogInput) -> str:
    """Correlation id of a log, falling back to its Headers clip."""
    if log.correlation_id:
        return log.correlation_id
    headers = log.headers()
    return headers.correlation_id if headers is not None else ""


def is_auth_headers_event(log: TraceLogInput) -> bool:
    headers = log.headers()
    return headers is not None and headers.event_instance == EVENT_AUTH


def split_by_auth_session_boundaries(logs: Sequence[TraceLogInput]) -> List[List[TraceLogInput]]:
    """Split one correlation id's logs before every AUTH log but the first."""
    segments: List[List[TraceLogInput]] = []
    current: List[TraceLogInput] = []
    seen_auth = False

    for log in logs:
        is_auth = is_auth_headers_event(log)
        if is_auth and seen_auth and current:
            segments.append(current)
            current = [log]
            continue
        if is_auth:
            seen_auth = True
        current.append(log)

    if current:
        segments.append(current)
    return segments


class FlowAnalyzer:
    """Groups logs into flows: one per correlation id and AUTH session."""

    def analyze(self, logs: Sequence[TraceLogInput]) -> List[UserFlow]:
        if not logs:
            return []

        # sorted() is stable: logs with equal timestamps keep input order
        sorted_logs = sorted(logs, key=lambda log: to_millis(log.timestamp))

        groups: Dict[str, List[TraceLogInput]] = {}
        for log in sorted_logs:
            groups.setdefault(log_correlation_id(log), []).append(log)

        flows: List[UserFlow] = []
        for correlation_id, group in groups.items():
            for segment in split_by_auth_session_boundaries(group):
                first, last = segment[0], segment[-1]
                flows.append(
                    UserFlow(
                        id=f"{correlation_id}-{len(flows)}",
                        correlation_id=correlation_id,
                        policy_id=first.policy_id,
                        start_time=first.timestamp,
                        end_time=last.timestamp,
                        log_ids=[log.id for log in segment],
                    )
                )

        logger.debug("Grouped %d logs into %d flows (%d correlation ids)", len(logs), len(flows), len(groups))
        return flows


def group_logs_into_flows(logs: Sequence[TraceLogInput]) -> List[UserFlow]:
    return FlowAnalyzer().analyze(logs)


def get_logs_for_flow(
    logs: Sequence[TraceLogInput],
    flow_id: str,
    flows: Optional[Sequence[UserFlow]] = None,
) -> List[TraceLogInput]:
    """Logs belonging to `flow_id`, in input order.

    Pass `flows` from an earlier analysis to avoid grouping again. An unknown
    flow id gives an empty list.
    """
    if flows is None:
        flows = group_logs_into_flows(logs)
    flow = next((f for f in flows if f.id == flow_id), None)
    if flow is None:
        return []
    log_ids = set(flow.log_ids)
    return [log for log in logs if log.id in log_ids]


def get_correlation_ids_from_flows(flows: Sequence[UserFlow]) -> List[str]:
    """Distinct correlation ids, in flow order."""
    return list(dict.fromkeys(flow.correlation_id for flow in flows))


def filter_by_correlation_id(logs: Sequence[TraceLogInput], correlation_id: str) -> List[TraceLogInput]:
    return [log for log in logs if log_correlation_id(log) == correlation_id]
