"""
claims_transformation.py - Input/output/persisted claims transformation handlers.

OutputClaimsTransformationHandler results carry both the technical profile
context (GettingClaims.InitiatingBackendClaimsExchange) and the
transformations executed in it; when both are present the transformations
are nested under that profile.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from ..types import FlowNodeChild
from .base import BaseInterpreter, InterpretContext, InterpretResult


class ClaimsTransformationInterpreter(BaseInterpreter):
    handler_names = handlers.CLAIMS_TRANSFORMATION_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        record = ctx.handler_result.recorder_record
        transformations = [FlowNodeChild(ct) for ct in rx.output_claims_transformations(record)]
        tp_context = rx.backend_claims_exchange(record)

        if tp_context is not None and transformations:
            children = [tp_context.to_child(transformations)]
        else:
            children = transformations

        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            action_handler=handlers.CLAIMS_TRANSFORMATION_ACTION,
            flow_children=children,
            backend_api_calls=rx.backend_api_calls(ctx.handler_result, statebag_updates),
        )
