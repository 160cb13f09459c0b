"""
validate_api_response.py - ValidateApiResponseHandler.

TAGE in the result names the claims exchange the user picked; it becomes the
step's selected option.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from .base import BaseInterpreter, InterpretContext, InterpretResult


class ValidateApiResponseInterpreter(BaseInterpreter):
    handler_names = (handlers.VALIDATE_API_RESPONSE,)

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            selected_option=rx.target_entity(ctx.handler_result) or None,
        )
