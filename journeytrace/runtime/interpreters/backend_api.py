"""
backend_api.py - Claims exchange protocol predicates.

IsClaimsExchangeProtocol{AServiceCall,ARedirection,AnApi}Handler results
name the technical profile the step actually triggered, with its provider
and protocol, and may carry a PROT trace of the backend request. Once a
concrete profile is known, the provider-selection children buffered for the
step are superseded (the handler-result processor drops them).
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from .base import BaseInterpreter, InterpretContext, InterpretResult


class BackendApiInterpreter(BaseInterpreter):
    handler_names = handlers.CLAIMS_EXCHANGE_PROTOCOL_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        profiles = rx.claims_exchange_technical_profiles(ctx.handler_result.recorder_record)
        calls = rx.backend_api_calls(ctx.handler_result, statebag_updates)

        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            flow_children=[ref.to_child() for ref in profiles],
            backend_api_calls=calls,
        )
