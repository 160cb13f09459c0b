"""
self_asserted.py - The three phases of a self-asserted (user input) page.

    SelfAssertedAttributeProviderRedirectHandler  page shown, waiting for input
    SelfAssertedMessageValidationHandler          submission validated
    SelfAssertedAttributeProviderActionHandler    page completed

A failed validation is reported as a handled step error without finalizing
the step: the user stays on the page and may submit again.
"""

from __future__ import annotations

from typing import List, Optional

from .. import handlers
from .. import record_extractors as rx
from ..types import (
    ClaimMapping,
    FlowNodeChild,
    StepError,
    StepErrorKind,
    StepResult,
    TechnicalProfileFlowData,
)
from .base import BaseInterpreter, InterpretContext, InterpretResult

SELF_ASSERTED_PROVIDER = "SelfAssertedAttributeProvider"


class SelfAssertedRedirectInterpreter(BaseInterpreter):
    handler_names = (handlers.SELF_ASSERTED_REDIRECT,)

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            action_handler=handlers.SELF_ASSERTED_REDIRECT,
            step_result=StepResult.PENDING_INPUT,
        )


def validation_children(
    self_asserted_tp: Optional[str],
    validation_tps: List[str],
    mappings: List[ClaimMapping],
) -> List[FlowNodeChild]:
    """Validation TPs, nested under the self-asserted TP when it is known.

    Claim mappings are recorded on the first validation TP only.
    """
    nested = [
        FlowNodeChild(
            TechnicalProfileFlowData(
                technical_profile_id=tp_id,
                claim_mappings=(mappings or None) if index == 0 else None,
            )
        )
        for index, tp_id in enumerate(validation_tps)
    ]
    if not self_asserted_tp:
        return nested

    data = TechnicalProfileFlowData(technical_profile_id=self_asserted_tp, provider_type=SELF_ASSERTED_PROVIDER)
    return [FlowNodeChild(data, nested)]


class SelfAssertedValidationInterpreter(BaseInterpreter):
    handler_names = (handlers.SELF_ASSERTED_VALIDATION,)

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        record = ctx.handler_result.recorder_record
        children = validation_children(
            rx.ctp_technical_profile(ctx.handler_result),
            rx.validation_technical_profiles(record),
            rx.validation_claim_mappings(record),
        )

        found = rx.validation_error(ctx.handler_result)
        if found is None:
            return InterpretResult.no_op(
                statebag_updates=statebag_updates,
                claims_updates=claims_updates,
                action_handler=handlers.SELF_ASSERTED_VALIDATION,
                flow_children=children,
            )

        message, h_result = found
        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            action_handler=handlers.SELF_ASSERTED_VALIDATION,
            flow_children=children,
            step_result=StepResult.ERROR,
            error=message,
            error_h_result=h_result,
            step_errors=[StepError(kind=StepErrorKind.HANDLED, h_result=h_result or "", message=message)],
        )


class SelfAssertedActionInterpreter(BaseInterpreter):
    handler_names = (handlers.SELF_ASSERTED_ACTION,)

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        return InterpretResult.finalize(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            action_handler=handlers.SELF_ASSERTED_ACTION,
            step_result=StepResult.SUCCESS,
        )
