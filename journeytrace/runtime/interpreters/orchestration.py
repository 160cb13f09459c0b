"""
orchestration.py - Step-advance detection from OrchestrationManager results.

The OrchestrationManager result carries the ORCH_CS counter. A new step is
opened when the counter moves, when it implies one or more sub-journeys
completed, or when the same counter is reported after a pause longer than
the retry threshold (a retried interaction, not a continuation).

Decision table, with `new` the counter after this result:

    no ORCH_CS update, inside a sub-journey  -> finalize + pop 1
    no ORCH_CS update, at the main journey   -> no-op
    pops > 0, gap, or new != current counter -> create step (pop first)
    otherwise                                -> no-op (same step)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from journeytrace.config.trace_config import get_retry_threshold_ms

from .. import handlers
from ..keys import StatebagKey, extract_tp_from_ctp, parse_orch_step
from ..pop_rules import NO_COUNTER_POP_COUNT, compute_pop_count
from ..types import FlowNodeChild, StepResult, TechnicalProfileFlowData
from ..types._time import millis_between
from .base import BaseInterpreter, InterpretContext, InterpretResult

logger = logging.getLogger(__name__)


class OrchestrationInterpreter(BaseInterpreter):
    handler_names = (handlers.ORCHESTRATION_MANAGER,)

    def __init__(self, retry_threshold_ms: Optional[int] = None) -> None:
        self.retry_threshold_ms = (
            get_retry_threshold_ms() if retry_threshold_ms is None else retry_threshold_ms
        )
        self._last_timestamp: Optional[datetime] = None

    def reset(self) -> None:
        self._last_timestamp = None

    def _is_retry_gap(self, timestamp: datetime) -> bool:
        gap = (
            self._last_timestamp is not None
            and millis_between(self._last_timestamp, timestamp) > self.retry_threshold_ms
        )
        self._last_timestamp = timestamp
        return gap

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        result = ctx.handler_result
        if result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        gap = self._is_retry_gap(ctx.timestamp)

        children: List[FlowNodeChild] = []
        tp_id = extract_tp_from_ctp(statebag_updates.get(StatebagKey.CTP.value))
        if tp_id:
            children.append(FlowNodeChild(TechnicalProfileFlowData(technical_profile_id=tp_id)))

        error = result.exception.message if result.exception else None
        error_h_result = result.exception.h_result if result.exception else None
        stack = ctx.journey_stack

        if StatebagKey.ORCH_CS.value not in statebag_updates:
            if stack.is_in_sub_journey():
                logger.debug(
                    "No orchestration counter inside %s, closing sub-journey",
                    stack.current().journey_id,
                )
                return InterpretResult.finalize(
                    statebag_updates=statebag_updates,
                    claims_updates=claims_updates,
                    pop_sub_journey=NO_COUNTER_POP_COUNT,
                    flow_children=children,
                )
            return InterpretResult.no_op(
                statebag_updates=statebag_updates,
                claims_updates=claims_updates,
                step_result=StepResult.ERROR if error else None,
                error=error,
                error_h_result=error_h_result,
                flow_children=children,
            )

        merged = {**ctx.statebag, **statebag_updates}
        new_step = parse_orch_step(merged.get(StatebagKey.ORCH_CS.value))
        pops = compute_pop_count(stack.counters(), new_step)
        changed = new_step > 0 and (pops > 0 or gap or new_step != stack.current().last_orch_step)

        if changed:
            return InterpretResult.new_step(
                statebag_updates=statebag_updates,
                claims_updates=claims_updates,
                action_handler=handlers.ORCHESTRATION_MANAGER,
                step_result=StepResult.ERROR if error else StepResult.SUCCESS,
                error=error,
                error_h_result=error_h_result,
                pop_sub_journey=pops,
                flow_children=children,
            )

        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            step_result=StepResult.ERROR if error else None,
            error=error,
            error_h_result=error_h_result,
            flow_children=children,
        )
