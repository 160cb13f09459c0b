"""
context.py - Mutable state threaded through the clip processors.

One ClipProcessingContext exists per parse. Processors and the step
lifecycle manager mutate it in place; nothing else holds parse state.

Usage:
    from journeytrace.runtime.pipeline.context import create_initial_context

    ctx = create_initial_context(journey_stack, statebag, execution_map, tree_builder)
    reset_log_context(ctx, log)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..execution_map import ExecutionMapBuilder
from ..flow_tree import FlowTreeBuilder
from ..journey_stack import JourneyStack
from ..statebag import StatebagAccumulator
from ..types import (
    BackendApiCall,
    Clip,
    ClipKind,
    FlowNode,
    FlowNodeChild,
    HandlerResultContent,
    HeadersContent,
    SessionInfo,
    StepError,
    StepResult,
    TraceLogInput,
    TransitionContent,
    UiSettings,
)
from ..types._time import EPOCH


@dataclass
class PendingStepData:
    """The step being accumulated, plus details buffered for it.

    Attributes:
        active: True while a step is open (Accumulating); False when Idle.
        journey_id: Journey the step was opened in.
        journey_name: Display name of that journey.
        step_order: Orchestration step number (journey counter when opened).
        sequence_number: Position of the step in the parse.
        timestamp: Timestamp of the log that opened the step.
        log_id: Id of that log.
        event_type: AUTH / API / SELFASSERTED / ClaimsExchange.
        result: Outcome so far.
        error_message: Last error reported for the step.
        error_h_result: Engine error code for `error_message`.
        action_handler: Handler driving the step.
        ui_settings: Page configuration rendered by the step.
        selectable_options: Provider options offered to the user.
        selected_option: Option the user picked.
        backend_api_calls: Backend calls made during the step.
        sso_session_participant: SSO participation outcome.
        sso_session_activated: SSO activation outcome.
        flow_children: Child payloads buffered until the step is finalized.
        step_errors: Structured errors buffered for the step.
    """

    active: bool = False
    journey_id: str = ""
    journey_name: str = ""
    step_order: int = 0
    sequence_number: int = 0
    timestamp: datetime = EPOCH
    log_id: str = ""
    event_type: str = ""
    result: StepResult = StepResult.SUCCESS
    error_message: Optional[str] = None
    error_h_result: Optional[str] = None
    action_handler: Optional[str] = None
    ui_settings: Optional[UiSettings] = None
    selectable_options: List[str] = field(default_factory=list)
    selected_option: Optional[str] = None
    backend_api_calls: List[BackendApiCall] = field(default_factory=list)
    sso_session_participant: Optional[bool] = None
    sso_session_activated: Optional[bool] = None
    flow_children: List[FlowNodeChild] = field(default_factory=list)
    step_errors: List[StepError] = field(default_factory=list)

    def set_error(self, message: Optional[str], h_result: Optional[str] = None) -> None:
        self.result = StepResult.ERROR
        if message:
            self.error_message = message
            self.error_h_result = h_result


@dataclass
class StepRecord:
    """A finalized step node and the timestamp that opened its dedup window."""

    node: FlowNode
    first_seen: datetime


@dataclass
class ClipProcessingContext:
    """Parse-wide state shared by the processors.

    Attributes:
        journey_stack: Current journey nesting.
        statebag: Accumulated statebag and claims.
        execution_map: Per-node visit tracking.
        tree_builder: The execution tree being built.
        pending: Step currently being accumulated.
        main_journey_id: Policy id of the first log.
        sequence_number: Next step sequence number.
        errors: Non-fatal parse errors, in order.
        sessions: Authentication sessions seen so far.
        session_flow_count: Number of "Event:AUTH" headers seen.
        step_records: Finalized steps by (journey id, step order), for merging.
        current_log: Log whose clips are being processed.
        current_clip_index: Index of the clip being processed.
    """

    journey_stack: JourneyStack
    statebag: StatebagAccumulator
    execution_map: ExecutionMapBuilder
    tree_builder: FlowTreeBuilder
    pending: PendingStepData = field(default_factory=PendingStepData)
    main_journey_id: str = ""
    sequence_number: int = 0
    errors: List[str] = field(default_factory=list)
    sessions: List[SessionInfo] = field(default_factory=list)
    session_flow_count: int = 0
    step_records: Dict[Tuple[str, int], StepRecord] = field(default_factory=dict)

    # Headers of the current log
    correlation_id: str = ""
    tenant_id: str = ""
    policy_id: str = ""
    event_instance: str = ""
    current_event_type: str = "API"
    current_headers: Optional[HeadersContent] = None

    # Current log position
    current_log: Optional[TraceLogInput] = None
    current_log_id: str = ""
    current_timestamp: datetime = EPOCH
    current_clip_index: int = 0

    # Last handler seen, for HandlerResult dispatch
    last_clip_kind: Optional[ClipKind] = None
    last_predicate: Optional[str] = None
    last_predicate_result: Optional[bool] = None
    last_predicate_result_string: Optional[str] = None
    last_action: Optional[str] = None
    last_handler_result: Optional[HandlerResultContent] = None
    last_transition: Optional[TransitionContent] = None

    @property
    def current_clips(self) -> Sequence[Clip]:
        return self.current_log.clips if self.current_log is not None else ()

    def clear_handler_slots(self) -> None:
        self.last_clip_kind = None
        self.last_predicate = None
        self.last_predicate_result = None
        self.last_predicate_result_string = None
        self.last_action = None
        self.last_handler_result = None
        self.last_transition = None
        self.current_headers = None


def create_initial_context(
    journey_stack: JourneyStack,
    statebag: StatebagAccumulator,
    execution_map: ExecutionMapBuilder,
    tree_builder: FlowTreeBuilder,
) -> ClipProcessingContext:
    return ClipProcessingContext(
        journey_stack=journey_stack,
        statebag=statebag,
        execution_map=execution_map,
        tree_builder=tree_builder,
        main_journey_id=journey_stack.root().journey_id,
    )


def reset_log_context(ctx: ClipProcessingContext, log: TraceLogInput) -> None:
    """Point the context at a new log; handler slots do not carry across logs."""
    ctx.current_log = log
    ctx.current_log_id = log.id
    ctx.current_timestamp = log.timestamp
    ctx.current_clip_index = 0
    ctx.clear_handler_slots()


def begin_new_session(ctx: ClipProcessingContext) -> None:
    """Forget everything scoped to the previous authentication session.

    The caller finalizes the in-flight step first. Claims, statebag, journey
    nesting and merge bookkeeping are reset; the tree and the recorded
    sessions are kept.
    """
    ctx.statebag.reset()
    while ctx.journey_stack.is_in_sub_journey():
        ctx.journey_stack.pop()
    ctx.tree_builder.pop_all_sub_journeys()
    ctx.journey_stack.root().last_orch_step = 0
    ctx.step_records.clear()
    ctx.pending = PendingStepData()
    ctx.clear_handler_slots()
