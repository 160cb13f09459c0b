"""
claims_exchange.py - Claims exchange action handlers.

    ClaimsExchangeRedirectHandler  redirect to an external provider
    ClaimsExchangeSubmitHandler    return from the provider, step succeeds
    ClaimsExchangeSelectHandler    provider options offered to the user
    ClaimsExchangeActionHandler    backend exchange

The invoked technical profile is looked up in InitiatingClaimsExchange,
then GettingClaims.InitiatingBackendClaimsExchange, then the CTP entry.
"""

from __future__ import annotations

from typing import Optional

from .. import handlers
from .. import record_extractors as rx
from ..types import FlowNodeChild, HomeRealmDiscoveryFlowData, StepResult
from .base import BaseInterpreter, InterpretContext, InterpretResult


def invoked_technical_profile(ctx: InterpretContext) -> Optional[rx.TechnicalProfileRef]:
    result = ctx.handler_result
    record = result.recorder_record if result else None
    ref = rx.initiating_claims_exchange(record) or rx.backend_claims_exchange(record)
    if ref is not None:
        return ref
    tp_id = rx.ctp_technical_profile(result)
    return rx.TechnicalProfileRef(tp_id) if tp_id else None


class ClaimsExchangeInterpreter(BaseInterpreter):
    handler_names = handlers.CLAIMS_EXCHANGE_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)

        if ctx.handler_name == handlers.CLAIMS_EXCHANGE_SELECT:
            options = rx.enabled_technical_profiles(ctx.handler_result.recorder_record)
            children = [FlowNodeChild(HomeRealmDiscoveryFlowData(selectable_options=options))] if options else []
            return InterpretResult.no_op(
                statebag_updates=statebag_updates,
                claims_updates=claims_updates,
                action_handler=handlers.CLAIMS_EXCHANGE_SELECT,
                flow_children=children,
            )

        ref = invoked_technical_profile(ctx)
        children = [ref.to_child()] if ref else []

        if ctx.handler_name == handlers.CLAIMS_EXCHANGE_SUBMIT:
            return InterpretResult.finalize(
                statebag_updates=statebag_updates,
                claims_updates=claims_updates,
                action_handler=handlers.CLAIMS_EXCHANGE_SUBMIT,
                step_result=StepResult.SUCCESS,
                flow_children=children,
            )

        action = (
            handlers.CLAIMS_EXCHANGE_REDIRECT
            if ctx.handler_name == handlers.CLAIMS_EXCHANGE_REDIRECT
            else handlers.CLAIMS_EXCHANGE_ACTION
        )
        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            action_handler=action,
            flow_children=children,
        )
