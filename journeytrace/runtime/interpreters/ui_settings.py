"""
ui_settings.py - ApiUIManager page configuration.
"""

from __future__ import annotations

from .. import handlers
from .. import record_extractors as rx
from .base import BaseInterpreter, InterpretContext, InterpretResult


class UiSettingsInterpreter(BaseInterpreter):
    handler_names = (handlers.API_UI_MANAGER,)

    def interpret(self, ctx: InterpretContext) -> InterpretResult:
        if ctx.handler_result is None:
            return InterpretResult.no_op()

        statebag_updates, claims_updates = self.updates(ctx)
        settings = rx.ui_settings(ctx.handler_result.recorder_record, {**ctx.statebag, **statebag_updates})
        return InterpretResult.no_op(
            statebag_updates=statebag_updates,
            claims_updates=claims_updates,
            ui_settings=settings,
        )
