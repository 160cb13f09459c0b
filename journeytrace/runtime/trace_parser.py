"""
trace_parser.py - Rebuild a journey execution tree from recorder logs.

TraceParser owns one interpreter registry and resets it at the start of
every parse(); everything else (statebag, journey stack, tree builder,
pipeline context) is created fresh per parse. Parses sharing a TraceParser
must be serialized.

parse() never raises for decodable input: interpreter failures, fatal
exception clips and post-processing failures are all reported through
TraceParseResult.errors, and the tree is returned as far as it got.

Usage:
    from journeytrace.runtime.trace_parser import TraceParser, parse_trace
    from journeytrace.runtime.types import decode_logs

    logs = decode_logs(json.load(f))
    result = TraceParser().parse(logs)
    if not result.success:
        print(result.errors)
    print(result.to_dict()["flow_tree"])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from journeytrace.config.trace_config import get_supported_event_instances

from .execution_map import ExecutionMapBuilder, NodeExecutionStatus
from .flow_analyzer import UserFlow, get_logs_for_flow, group_logs_into_flows, log_correlation_id
from .flow_tree import FlowTreeBuilder, collect_step_nodes
from .interpreters.registry import InterpreterRegistry, create_default_registry
from .journey_stack import JourneyStack
from .keys import journey_name_from_policy_id
from .pipeline import ClipPipeline, create_initial_context
from .post_processors import run_post_processors
from .statebag import StatebagAccumulator
from .types import FlowNode, SessionInfo, TraceLogInput
from .types._time import to_millis

logger = logging.getLogger(__name__)

NO_LOGS_ERROR = "No Event:AUTH, Event:API, Event:SELFASSERTED, or Event:ClaimsExchange logs found."

_EMAIL_CLAIMS = ("email", "signInNames.emailAddress")
_OBJECT_ID_CLAIM = "objectId"


@dataclass
class TraceParseResult:
    """Outcome of one parse.

    Attributes:
        flow_tree: Root of the execution tree (always present).
        steps: Step nodes in tree order.
        execution_map: Visit status per node id.
        main_journey_id: Policy id of the first supported log.
        success: True iff `errors` is empty.
        errors: Non-fatal errors, in the order they occurred.
        final_statebag: Statebag after the last clip.
        final_claims: Claims after the last clip.
        sessions: Authentication sessions seen.
    """

    flow_tree: FlowNode
    steps: List[FlowNode] = field(default_factory=list)
    execution_map: Dict[str, NodeExecutionStatus] = field(default_factory=dict)
    main_journey_id: str = ""
    success: bool = True
    errors: List[str] = field(default_factory=list)
    final_statebag: Dict[str, str] = field(default_factory=dict)
    final_claims: Dict[str, str] = field(default_factory=dict)
    sessions: List[SessionInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow_tree": self.flow_tree.to_dict(),
            "execution_map": {node_id: status.to_dict() for node_id, status in self.execution_map.items()},
            "main_journey_id": self.main_journey_id,
            "success": self.success,
            "errors": list(self.errors),
            "final_statebag": dict(self.final_statebag),
            "final_claims": dict(self.final_claims),
            "sessions": [s.to_dict() for s in self.sessions],
        }


@dataclass
class FlowParseResult:
    """One flow and the trace parsed from its logs."""

    flow: UserFlow
    result: TraceParseResult

    def to_dict(self) -> Dict[str, Any]:
        return {"flow": self.flow.to_dict(), "result": self.result.to_dict()}


class TraceParser:
    """Parses batches of journey recorder logs against one registry."""

    def __init__(
        self,
        registry: Optional[InterpreterRegistry] = None,
        dedup_threshold_ms: Optional[int] = None,
        retry_threshold_ms: Optional[int] = None,
    ) -> None:
        self.registry = registry or create_default_registry(retry_threshold_ms=retry_threshold_ms)
        self.dedup_threshold_ms = dedup_threshold_ms

    def filter_trace_logs(self, logs: Sequence[TraceLogInput]) -> List[TraceLogInput]:
        """Logs whose headers carry a supported event instance."""
        supported = set(get_supported_event_instances())
        result = []
        for log in logs:
            headers = log.headers()
            if headers is not None and headers.event_instance in supported:
                result.append(log)
        return result

    def parse(self, logs: Sequence[TraceLogInput]) -> TraceParseResult:
        self.registry.reset_interpreters()

        trace_logs = self.filter_trace_logs(logs)
        if not trace_logs:
            logger.info("No supported logs among %d input logs", len(logs))
            return TraceParseResult(flow_tree=FlowTreeBuilder().get_tree(), success=False, errors=[NO_LOGS_ERROR])

        # sorted() is stable: logs with equal timestamps keep input order
        sorted_logs = sorted(trace_logs, key=lambda log: to_millis(log.timestamp))
        correlation_ids = {log_correlation_id(log) for log in sorted_logs}
        if len(correlation_ids) > 1:
            logger.warning(
                "Parsing %d correlation ids as one trace; use parse_flows() to keep them apart",
                len(correlation_ids),
            )
        main_journey_id = self._main_journey_id(sorted_logs)
        journey_name = journey_name_from_policy_id(main_journey_id) if main_journey_id else ""

        tree_builder = FlowTreeBuilder()
        if main_journey_id:
            tree_builder.set_root_info(journey_name, main_journey_id)
        ctx = create_initial_context(
            JourneyStack(main_journey_id, journey_name, sorted_logs[0].timestamp),
            StatebagAccumulator(),
            ExecutionMapBuilder(),
            tree_builder,
        )

        pipeline = ClipPipeline(self.registry, dedup_threshold_ms=self.dedup_threshold_ms)
        for log in sorted_logs:
            pipeline.process_log(log, ctx)
        pipeline.lifecycle.finalize_current_step(ctx)

        tree = tree_builder.get_tree()
        post = run_post_processors(tree)
        if not post.success:
            ctx.errors.extend(post.errors)

        steps = collect_step_nodes(tree)
        logger.info(
            "Parsed %d logs into %d steps (%d sessions, %d errors)",
            len(sorted_logs),
            len(steps),
            len(ctx.sessions),
            len(ctx.errors),
        )
        return TraceParseResult(
            flow_tree=tree,
            steps=steps,
            execution_map=ctx.execution_map.build(),
            main_journey_id=ctx.main_journey_id,
            success=not ctx.errors,
            errors=list(ctx.errors),
            final_statebag=ctx.statebag.get_statebag_snapshot(),
            final_claims=ctx.statebag.get_claims_snapshot(),
            sessions=list(ctx.sessions),
        )

    def parse_flows(self, logs: Sequence[TraceLogInput]) -> List[FlowParseResult]:
        """Group logs into flows and parse each flow on its own.

        Each UserFlow is filled in from its parse: step count, errors and the
        user it belongs to.
        """
        flows = group_logs_into_flows(logs)
        results = []
        for flow in flows:
            result = self.parse(get_logs_for_flow(logs, flow.id, flows))
            flow.step_count = len(result.steps)
            flow.has_errors = not result.success
            flow.user_email = next(
                (result.final_claims[key] for key in _EMAIL_CLAIMS if result.final_claims.get(key)), None
            )
            flow.user_object_id = result.final_claims.get(_OBJECT_ID_CLAIM)
            results.append(FlowParseResult(flow=flow, result=result))
        logger.info("Parsed %d flows from %d logs", len(results), len(logs))
        return results

    @staticmethod
    def _main_journey_id(logs: Sequence[TraceLogInput]) -> str:
        for log in logs:
            headers = log.headers()
            if headers is not None and headers.policy_id:
                return headers.policy_id
        return ""


def parse_trace(
    logs: Sequence[TraceLogInput],
    registry: Optional[InterpreterRegistry] = None,
    dedup_threshold_ms: Optional[int] = None,
    retry_threshold_ms: Optional[int] = None,
) -> TraceParseResult:
    """Parse with a one-off TraceParser."""
    parser = TraceParser(registry, dedup_threshold_ms=dedup_threshold_ms, retry_threshold_ms=retry_threshold_ms)
    return parser.parse(logs)
