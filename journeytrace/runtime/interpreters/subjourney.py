"""
subjourney.py - Sub-journey dispatch, transfer and exit.

Enqueue, dispatch and transfer enter the sub-journey named in the record;
exit returns to the parent journey.
"""

from __future__ import annotations

import logging

from .. import handlers
from .. import record_extractors as rx
from .base import BaseInterpreter, InterpretContext, InterpretResult, SubJourneyPush

logger = logging.getLogger(__name__)

_ENTERING = (handlers.ENQUEUE_NEW_JOURNEY, handlers.SUBJOURNEY_DISPATCH, handlers.SUBJOURNEY_TRANSFER)


class SubJourneyInterpreter(BaseInterpreter):
    handler_names = handlers.SUBJOURNEY_HANDLERS

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)

        if ctx.handler_name == handlers.SUBJOURNEY_EXIT:
            return InterpretResult.no_op(
                statebag_updates=statebag_updates,
                claims_updates=claims_updates,
                action_handler=handlers.SUBJOURNEY_EXIT,
                pop_sub_journey=1,
            )

        if ctx.handler_name in _ENTERING:
            journey_id = rx.sub_journey_id(ctx.handler_result.recorder_record)
            if journey_id:
                return InterpretResult.no_op(
                    statebag_updates=statebag_updates,
                    claims_updates=claims_updates,
                    action_handler=ctx.handler_name,
                    push_sub_journey=SubJourneyPush(journey_id=journey_id, journey_name=journey_id),
                )
            logger.debug("%s result names no sub-journey (log %s)", handlers.short_name(ctx.handler_name), ctx.log_id)

        return InterpretResult.no_op(statebag_updates=statebag_updates, claims_updates=claims_updates)
