"""
base.py - Interpreter contract and normalized interpretation result.

An interpreter turns one HandlerResult clip into an InterpretResult: the
statebag/claims updates it carries plus the tree mutations it implies
(create or finalize a step, push or pop a sub-journey, attach children,
report errors). Interpreters never touch the tree themselves; the step
lifecycle manager applies their results.

Interpreters read the pending step but never write to it; step-scoped
details such as the selected option or SSO flags travel on the result.
Only the orchestration interpreter keeps state between calls, and clears it
in reset().

Usage:
    from journeytrace.runtime.interpreters.base import BaseInterpreter, InterpretResult

    class MyInterpreter(BaseInterpreter):
        handler_names = ("Web.TPEngine.StateMachineHandlers.MyHandler",)

        def interpret(self, ctx):
            return InterpretResult.no_op(
                statebag_updates=statebag_from_result(ctx.handler_result),
            )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from ..journey_stack import JourneyStack
from ..record_extractors import claims_from_result, statebag_from_result
from ..types import (
    BackendApiCall,
    Clip,
    FlowNodeChild,
    HandlerResultContent,
    StepError,
    StepResult,
    UiSettings,
)
from ..types._time import EPOCH

if TYPE_CHECKING:
    from ..pipeline.context import PendingStepData


@dataclass
class SubJourneyPush:
    journey_id: str
    journey_name: str


@dataclass
class InterpretContext:
    """Everything an interpreter may read while interpreting one clip.

    Attributes:
        clip: The HandlerResult clip.
        clip_index: Position of the clip in its log.
        clips: All clips of the log, for lookahead.
        handler_name: Handler that produced the result (last Action or Predicate).
        handler_result: Decoded HandlerResult content.
        journey_stack: Current journey nesting (read-only for interpreters).
        pending: Data of the step currently being accumulated.
        sequence_number: Next step sequence number.
        timestamp: Timestamp of the log being processed.
        log_id: Id of the log being processed.
        statebag: Statebag snapshot before this result is applied.
        claims: Claims snapshot before this result is applied.
    """

    clip: Clip
    clip_index: int
    clips: Sequence[Clip]
    handler_name: str
    handler_result: Optional[HandlerResultContent]
    journey_stack: JourneyStack
    pending: "PendingStepData"
    sequence_number: int = 0
    timestamp: datetime = EPOCH
    log_id: str = ""
    statebag: Dict[str, str] = field(default_factory=dict)
    claims: Dict[str, str] = field(default_factory=dict)


@dataclass
class InterpretResult:
    """Normalized outcome of interpreting one handler result.

    Attributes:
        success: False when the interpreter could not make sense of the clip.
        create_step: Open a new step (finalizing the current one first).
        finalize_step: Close the current step without opening a new one.
        statebag_updates: Orchestration state written by the handler.
        claims_updates: Claims written by the handler.
        push_sub_journey: Sub-journey entered by this handler.
        pop_sub_journey: Number of sub-journey levels closed (0 for none).
        error: Error message to attach to the step.
        error_h_result: Engine error code for `error`.
        step_result: Outcome override for the step.
        action_handler: Handler to record as the step's driver.
        flow_children: Child payloads for the step.
        step_errors: Structured errors for the step.
        ui_settings: Page configuration rendered by the step.
        backend_api_calls: Backend calls made by the handler.
        selected_option: Option the user picked.
        sso_session_participant: SSO participation outcome.
        sso_session_activated: SSO activation outcome.
    """

    success: bool = True
    create_step: bool = False
    finalize_step: bool = False
    statebag_updates: Dict[str, str] = field(default_factory=dict)
    claims_updates: Dict[str, str] = field(default_factory=dict)
    push_sub_journey: Optional[SubJourneyPush] = None
    pop_sub_journey: int = 0
    error: Optional[str] = None
    error_h_result: Optional[str] = None
    step_result: Optional[StepResult] = None
    action_handler: Optional[str] = None
    flow_children: List[FlowNodeChild] = field(default_factory=list)
    step_errors: List[StepError] = field(default_factory=list)
    ui_settings: Optional[UiSettings] = None
    backend_api_calls: List[BackendApiCall] = field(default_factory=list)
    selected_option: Optional[str] = None
    sso_session_participant: Optional[bool] = None
    sso_session_activated: Optional[bool] = None

    @classmethod
    def no_op(cls, **kwargs: Any) -> "InterpretResult":
        return cls(success=True, create_step=False, finalize_step=False, **kwargs)

    @classmethod
    def new_step(cls, **kwargs: Any) -> "InterpretResult":
        return cls(success=True, create_step=True, finalize_step=False, **kwargs)

    @classmethod
    def finalize(cls, **kwargs: Any) -> "InterpretResult":
        return cls(success=True, create_step=False, finalize_step=True, **kwargs)

    @classmethod
    def failure(cls, error: str) -> "InterpretResult":
        return cls(success=False, error=error)


class BaseInterpreter(ABC):
    """Base class for handler-family interpreters.

    Subclasses declare `handler_names` and implement `interpret`.
    """

    handler_names: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return type(self).__name__

    def can_handle(self, handler_name: str) -> bool:
        return handler_name in self.handler_names

    @abstractmethod
    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        """Interpret the handler result in `ctx`."""
        ...

    def reset(self) -> None:
        """Clear state kept between calls (most interpreters keep none)."""
        pass

    @staticmethod
    def updates(ctx: InterpretContext) -> Tuple[Dict[str, str], Dict[str, str]]:
        """(statebag updates, claims updates) carried by the result."""
        return statebag_from_result(ctx.handler_result), claims_from_result(ctx.handler_result)


class DefaultInterpreter(BaseInterpreter):
    """Pass-through for handlers with no dedicated interpreter."""

    handler_names = ()

    def can_handle(self, handler_name: str) -> bool:
        return False

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()
        statebag_updates, claims_updates = self.updates(ctx)
        return InterpretResult.no_op(statebag_updates=statebag_updates, claims_updates=claims_updates)
