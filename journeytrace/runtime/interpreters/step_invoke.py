"""
step_invoke.py - ShouldOrchestrationStepBeInvokedHandler.

The handler lists the technical profiles enabled for the step. A single
enabled profile is the one the step runs; several mean the user is offered
a choice, recorded as a provider-selection child.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from ..types import FlowNodeChild, HomeRealmDiscoveryFlowData, TechnicalProfileFlowData
from .base import BaseInterpreter, InterpretContext, InterpretResult


class StepInvokeInterpreter(BaseInterpreter):
    handler_names = (handlers.SHOULD_STEP_BE_INVOKED,)

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        record = ctx.handler_result.recorder_record
        options = rx.enabled_technical_profiles(record)
        initiating = rx.initiating_claims_exchange(record)

        children = []
        if initiating is not None:
            children.append(initiating.to_child())
        elif len(options) == 1:
            children.append(FlowNodeChild(TechnicalProfileFlowData(technical_profile_id=options[0])))

        if len(options) > 1:
            children.append(FlowNodeChild(HomeRealmDiscoveryFlowData(selectable_options=options)))

        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            flow_children=children,
        )
