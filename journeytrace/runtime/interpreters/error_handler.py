"""
error_handler.py - Request validation failures and SendErrorHandler.

A failed InitiatingMessageValidationHandler, or any SendErrorHandler result
carrying an exception message, opens an error step. Handler names are also
matched by substring, since some engine builds log them with a suffix.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from ..types import StepResult
from .base import BaseInterpreter, InterpretContext, InterpretResult


class ErrorHandlerInterpreter(BaseInterpreter):
    handler_names = handlers.ERROR_HANDLERS

    def can_handle(self, handler_name: str) -> bool:
        return any(name == handler_name or name in handler_name for name in self.handler_names)

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        result = ctx.handler_result
        if result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        is_send_error = handlers.short_name(handlers.SEND_ERROR) in ctx.handler_name

        found = rx.validation_error(result) if (result.result is False or is_send_error) else None
        if found is None:
            return InterpretResult.no_op(statebag_updates=statebag_updates, claims_updates=claims_updates)

        message, h_result = found
        return InterpretResult.new_step(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            step_result=StepResult.ERROR,
            error=message,
            error_h_result=h_result,
            action_handler=self._action_handler(ctx.handler_name),
        )

    def _action_handler(self, handler_name: str) -> str:
        for name in self.handler_names:
            if name in handler_name:
                return handlers.short_name(name)
        return handlers.short_name(handler_name)
