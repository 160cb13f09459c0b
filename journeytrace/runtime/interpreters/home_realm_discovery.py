"""
home_realm_discovery.py - Provider selection offered to the user.

Only the options still available are recorded. No technical profile is
attached here: the chosen option is resolved later from TAGE or from the
profiles the step (or the next one) ends up running.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from ..types import FlowNodeChild, HomeRealmDiscoveryFlowData
from .base import BaseInterpreter, InterpretContext, InterpretResult


class HomeRealmDiscoveryInterpreter(BaseInterpreter):
    handler_names = handlers.HRD_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        options = rx.available_hrd_options(ctx.handler_result.recorder_record)
        children = [FlowNodeChild(HomeRealmDiscoveryFlowData(selectable_options=options))] if options else []

        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            action_handler=handlers.HOME_REALM_DISCOVERY_ACTION,
            flow_children=children,
        )
