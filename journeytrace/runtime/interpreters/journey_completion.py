"""
journey_completion.py - Claims sent back to the relying party.

The issuing technical profile is recorded twice: as a TP child (its provider
being the protocol it speaks) and as a SendClaims child.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from ..types import FlowNodeChild, SendClaimsFlowData, TechnicalProfileFlowData
from .base import BaseInterpreter, InterpretContext, InterpretResult


class JourneyCompletionInterpreter(BaseInterpreter):
    handler_names = handlers.STEP_COMPLETION_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        record = ctx.handler_result.recorder_record
        ref = rx.initiating_claims_exchange(record) or rx.backend_claims_exchange(record)

        children = []
        if ref is not None:
            children.append(
                FlowNodeChild(
                    TechnicalProfileFlowData(
                        technical_profile_id=ref.technical_profile_id,
                        provider_type=ref.protocol_type or "Unknown",
                    )
                )
            )
            children.append(
                FlowNodeChild(SendClaimsFlowData(technical_profile_id=ref.technical_profile_id, protocol=ref.protocol_type))
            )

        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            action_handler=ctx.handler_name,
            flow_children=children,
        )
