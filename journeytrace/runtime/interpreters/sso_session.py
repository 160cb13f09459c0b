"""
sso_session.py - Single sign-on session handlers.

The participant check answers through PredicateResult; activation reports
through Result. A reset clears the participant flag.
"""

from __future__ import annotations

from .. import handlers
from .base import BaseInterpreter, InterpretContext, InterpretResult


class SsoSessionInterpreter(BaseInterpreter):
    handler_names = handlers.SSO_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        result = ctx.handler_result
        if result is None:
            return InterpretResult.no_op()

        flags = {}
        if ctx.handler_name == handlers.SSO_PARTICIPANT:
            flags["sso_session_participant"] = result.predicate_result == "True"
        elif ctx.handler_name == handlers.SSO_ACTIVATE:
            flags["sso_session_activated"] = result.result is True
        elif ctx.handler_name == handlers.SSO_RESET:
            flags["sso_session_participant"] = False

        statebag_updates, claims_updates = self.updates(ctx)
        return InterpretResult.no_op(statebag_updates=statebag_updates, claims_updates=claims_updates, **flags)
