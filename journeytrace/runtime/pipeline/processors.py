"""
processors.py - One processor per clip kind.

Each processor mutates the shared ClipProcessingContext and returns nothing.
Only the HandlerResult processor consults interpreters; only the Exception
processor writes to the tree directly, because a fatal exception ends its
log with no further clips to interpret.

    Headers        correlation headers; a repeated "Event:AUTH" starts a new session
    Transition     last state machine transition (informational)
    Predicate      upcoming gate handler name
    Action         upcoming imperative handler name
    HandlerResult  dispatch to the interpreter of the last Action/Predicate
    Exception      fatal error: error the open step, add a standalone error step
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .. import handlers
from ..interpreters.base import InterpretContext
from ..interpreters.registry import InterpreterRegistry
from ..keys import EVENT_AUTH, event_type_from_instance
from ..types import (
    Clip,
    ClipKind,
    FatalExceptionContent,
    FlowNodeContext,
    HandlerResultContent,
    HeadersContent,
    SessionInfo,
    StepError,
    StepErrorKind,
    StepFlowData,
    StepResult,
    TransitionContent,
)
from .context import ClipProcessingContext, begin_new_session
from .lifecycle import StepLifecycleManager

logger = logging.getLogger(__name__)


class ClipProcessor(ABC):
    """Handles every clip of one kind."""

    kind: ClipKind

    @abstractmethod
    def process(self, clip: Clip, ctx: ClipProcessingContext) -> None:
        """Apply `clip` to `ctx`."""
        ...


class HeadersProcessor(ClipProcessor):
    kind = ClipKind.HEADERS

    def __init__(self, lifecycle: StepLifecycleManager) -> None:
        self.lifecycle = lifecycle

    def process(self, clip: Clip, ctx: ClipProcessingContext) -> None:
        headers: HeadersContent = clip.content
        is_auth = headers.event_instance == EVENT_AUTH

        if is_auth and ctx.session_flow_count > 0:
            logger.debug(
                "Session %d starts in log %s, resetting journey state",
                ctx.session_flow_count,
                ctx.current_log_id,
            )
            self.lifecycle.finalize_current_step(ctx)
            begin_new_session(ctx)

        ctx.current_headers = headers
        ctx.correlation_id = headers.correlation_id
        ctx.tenant_id = headers.tenant_id
        ctx.policy_id = headers.policy_id
        ctx.event_instance = headers.event_instance
        ctx.current_event_type = event_type_from_instance(headers.event_instance)
        if not ctx.main_journey_id and headers.policy_id:
            ctx.main_journey_id = headers.policy_id

        if is_auth:
            ctx.sessions.append(
                SessionInfo(session_index=ctx.session_flow_count, start_timestamp=ctx.current_timestamp)
            )
            ctx.session_flow_count += 1
        ctx.last_clip_kind = ClipKind.HEADERS


class TransitionProcessor(ClipProcessor):
    kind = ClipKind.TRANSITION

    def process(self, clip: Clip, ctx: ClipProcessingContext) -> None:
        transition: TransitionContent = clip.content
        ctx.last_transition = transition
        ctx.last_clip_kind = ClipKind.TRANSITION


class PredicateProcessor(ClipProcessor):
    kind = ClipKind.PREDICATE

    def process(self, clip: Clip, ctx: ClipProcessingContext) -> None:
        ctx.last_predicate = str(clip.content)
        ctx.last_predicate_result = None
        ctx.last_predicate_result_string = None
        ctx.last_action = None
        ctx.last_handler_result = None
        ctx.last_clip_kind = ClipKind.PREDICATE


class ActionProcessor(ClipProcessor):
    kind = ClipKind.ACTION

    def process(self, clip: Clip, ctx: ClipProcessingContext) -> None:
        ctx.last_action = str(clip.content)
        ctx.last_predicate = None
        ctx.last_handler_result = None
        ctx.last_clip_kind = ClipKind.ACTION


class HandlerResultProcessor(ClipProcessor):
    """Dispatch point between clips and interpreters.

    Children of a result that opens a step belong to the new step, so they
    are buffered after the lifecycle has applied it; all other results
    contribute to the step already open. Interpreter failures are recorded
    as parse errors and processing moves on to the next clip.
    """

    kind = ClipKind.HANDLER_RESULT

    def __init__(self, registry: InterpreterRegistry, lifecycle: StepLifecycleManager) -> None:
        self.registry = registry
        self.lifecycle = lifecycle

    def process(self, clip: Clip, ctx: ClipProcessingContext) -> None:
        handler_result: HandlerResultContent = clip.content
        ctx.last_handler_result = handler_result
        ctx.last_clip_kind = ClipKind.HANDLER_RESULT

        handler_name = ctx.last_action or ctx.last_predicate
        if handler_result.predicate_result is not None and (ctx.last_predicate or not handler_name):
            ctx.last_predicate_result = handler_result.result
            ctx.last_predicate_result_string = handler_result.predicate_result
        if not handler_name:
            return

        interpreter = self.registry.get_interpreter(handler_name)
        if interpreter is None:
            logger.debug("No interpreter for %s", handler_name)
            return

        try:
            result = interpreter.interpret(self._interpret_context(clip, handler_name, handler_result, ctx))
            if result.create_step:
                self.lifecycle.apply(result, ctx)
                self.lifecycle.buffer(result, ctx, handler_name)
            else:
                self.lifecycle.buffer(result, ctx, handler_name)
                self.lifecycle.apply(result, ctx)
        except Exception as e:
            logger.warning(
                "Interpreter for %s failed on log %s: %s",
                handlers.short_name(handler_name),
                ctx.current_log_id,
                e,
            )
            ctx.errors.append(f"Interpreter error in {handler_name}: {e}")

    def _interpret_context(
        self,
        clip: Clip,
        handler_name: str,
        handler_result: HandlerResultContent,
        ctx: ClipProcessingContext,
    ) -> InterpretContext:
        return InterpretContext(
            clip=clip,
            clip_index=ctx.current_clip_index,
            clips=ctx.current_clips,
            handler_name=handler_name,
            handler_result=handler_result,
            journey_stack=ctx.journey_stack,
            pending=ctx.pending,
            sequence_number=ctx.sequence_number,
            timestamp=ctx.current_timestamp,
            log_id=ctx.current_log_id,
            statebag=ctx.statebag.get_statebag_snapshot(),
            claims=ctx.statebag.get_claims_snapshot(),
        )


class ExceptionProcessor(ClipProcessor):
    kind = ClipKind.EXCEPTION

    def process(self, clip: Clip, ctx: ClipProcessingContext) -> None:
        fatal: FatalExceptionContent = clip.content
        message = fatal.exception.message
        h_result = fatal.exception.h_result or ""
        ctx.errors.append(message)
        logger.warning("Fatal exception in log %s: %s", ctx.current_log_id, message)

        if ctx.pending.active:
            ctx.pending.set_error(message, fatal.exception.h_result)

        journey = ctx.journey_stack.current()
        ctx.sequence_number += 1
        data = StepFlowData(
            step_order=journey.last_orch_step,
            current_journey_name=journey.journey_name,
            result=StepResult.ERROR,
            errors=[StepError(kind=StepErrorKind.UNHANDLED, h_result=h_result, message=message)],
        )
        context = FlowNodeContext(
            timestamp=ctx.current_timestamp,
            sequence_number=ctx.sequence_number,
            log_id=ctx.current_log_id,
            event_type="AUTH",
            statebag_snapshot=ctx.statebag.get_statebag_snapshot(),
            claims_snapshot=ctx.statebag.get_claims_snapshot(),
        )
        node = ctx.tree_builder.add_error_step(journey.journey_id, data, context)
        ctx.execution_map.add_step(node.id, StepResult.ERROR, ctx.sequence_number)
        ctx.last_clip_kind = ClipKind.EXCEPTION
