"""
display_control.py - Display control action request/response handlers.

Only the response carries the action outcome: the control id and action
("emailVerificationControl/SendCode"), the result code, and the technical
profiles the action ran, in the order they ran.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from .base import BaseInterpreter, InterpretContext, InterpretResult


class DisplayControlInterpreter(BaseInterpreter):
    handler_names = handlers.DISPLAY_CONTROL_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        children = []
        if ctx.handler_name == handlers.DISPLAY_CONTROL_ACTION_RESPONSE:
            child = rx.display_control_action(ctx.handler_result.recorder_record)
            if child is not None:
                children.append(child)

        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            flow_children=children,
        )
