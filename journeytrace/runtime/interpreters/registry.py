"""
registry.py - Handler name to interpreter lookup.

The registry is an explicit object owned by whoever parses (a TraceParser,
the API app), populated once and reset with reset_interpreters() at the
start of every parse. Interpreters that keep state between calls clear it
there, so one registry serves many sequential parses. Parses sharing a
registry must not run concurrently.

Lookup order:
    1. exact handler name
    2. first interpreter whose can_handle() accepts the name
    3. the pass-through DefaultInterpreter, when fallback is enabled

Usage:
    from journeytrace.runtime.interpreters.registry import create_default_registry

    registry = create_default_registry()
    registry.reset_interpreters()
    interpreter = registry.get_interpreter(handler_name)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from journeytrace.config.trace_config import is_registry_fallback_enabled

from ..errors import InterpreterRegistrationError
from .base import BaseInterpreter, DefaultInterpreter
from .backend_api import BackendApiInterpreter
from .claims_exchange import ClaimsExchangeInterpreter
from .claims_transformation import ClaimsTransformationInterpreter
from .display_control import DisplayControlInterpreter
from .error_handler import ErrorHandlerInterpreter
from .home_realm_discovery import HomeRealmDiscoveryInterpreter
from .journey_completion import JourneyCompletionInterpreter
from .orchestration import OrchestrationInterpreter
from .self_asserted import (
    SelfAssertedActionInterpreter,
    SelfAssertedRedirectInterpreter,
    SelfAssertedValidationInterpreter,
)
from .sso_session import SsoSessionInterpreter
from .step_invoke import StepInvokeInterpreter
from .subjourney import SubJourneyInterpreter
from .ui_settings import UiSettingsInterpreter
from .validate_api_response import ValidateApiResponseInterpreter

logger = logging.getLogger(__name__)


@dataclass
class InterpreterRegistryStats:
    interpreter_count: int = 0
    handler_count: int = 0
    handler_names: List[str] = field(default_factory=list)
    interpreter_details: Dict[str, List[str]] = field(default_factory=dict)


class InterpreterRegistry:
    def __init__(
        self,
        fallback_enabled: Optional[bool] = None,
        default_interpreter: Optional[BaseInterpreter] = None,
    ) -> None:
        self._interpreters: List[BaseInterpreter] = []
        self._by_name: Dict[str, BaseInterpreter] = {}
        self._default = default_interpreter or DefaultInterpreter()
        self._fallback_enabled = (
            is_registry_fallback_enabled() if fallback_enabled is None else fallback_enabled
        )

    @property
    def fallback_enabled(self) -> bool:
        return self._fallback_enabled

    def register(self, interpreter: BaseInterpreter) -> "InterpreterRegistry":
        """Index an interpreter by each of its handler names.

        Raises:
            InterpreterRegistrationError: If a name is already registered.
        """
        for handler_name in interpreter.handler_names:
            owner = self._by_name.get(handler_name)
            if owner is not None:
                raise InterpreterRegistrationError(
                    f"Handler '{handler_name}' is already registered to {owner.name}; "
                    f"unregister it before registering {interpreter.name}"
                )
        self._interpreters.append(interpreter)
        for handler_name in interpreter.handler_names:
            self._by_name[handler_name] = interpreter
        return self

    def register_all(self, interpreters: Iterable[BaseInterpreter]) -> "InterpreterRegistry":
        for interpreter in interpreters:
            self.register(interpreter)
        return self

    def unregister(self, handler_name: str) -> bool:
        """Remove the interpreter owning `handler_name` (and all its names)."""
        for index, interpreter in enumerate(self._interpreters):
            if handler_name in interpreter.handler_names:
                for name in interpreter.handler_names:
                    self._by_name.pop(name, None)
                del self._interpreters[index]
                return True
        return False

    def clear(self) -> None:
        self._interpreters.clear()
        self._by_name.clear()

    def get_interpreter(self, handler_name: str) -> Optional[BaseInterpreter]:
        interpreter = self._by_name.get(handler_name)
        if interpreter is not None:
            return interpreter
        for candidate in self._interpreters:
            if candidate.can_handle(handler_name):
                return candidate
        if self._fallback_enabled:
            return self._default
        return None

    def has_interpreter(self, handler_name: str) -> bool:
        return handler_name in self._by_name or any(i.can_handle(handler_name) for i in self._interpreters)

    def get_all(self) -> List[BaseInterpreter]:
        return list(self._interpreters)

    def get_registered_handler_names(self) -> List[str]:
        return list(self._by_name)

    def get_default_interpreter(self) -> BaseInterpreter:
        return self._default

    def reset_interpreters(self) -> None:
        """Clear per-parse state held by interpreters."""
        for interpreter in self._interpreters:
            interpreter.reset()
        self._default.reset()

    def get_stats(self) -> InterpreterRegistryStats:
        return InterpreterRegistryStats(
            interpreter_count=len(self._interpreters),
            handler_count=len(self._by_name),
            handler_names=self.get_registered_handler_names(),
            interpreter_details={i.name: list(i.handler_names) for i in self._interpreters},
        )


def default_interpreters(retry_threshold_ms: Optional[int] = None) -> List[BaseInterpreter]:
    """One fresh instance of every handler-family interpreter."""
    return [
        OrchestrationInterpreter(retry_threshold_ms=retry_threshold_ms),
        StepInvokeInterpreter(),
        BackendApiInterpreter(),
        ClaimsExchangeInterpreter(),
        ClaimsTransformationInterpreter(),
        HomeRealmDiscoveryInterpreter(),
        SelfAssertedRedirectInterpreter(),
        SelfAssertedValidationInterpreter(),
        SelfAssertedActionInterpreter(),
        SubJourneyInterpreter(),
        UiSettingsInterpreter(),
        SsoSessionInterpreter(),
        DisplayControlInterpreter(),
        JourneyCompletionInterpreter(),
        ValidateApiResponseInterpreter(),
        ErrorHandlerInterpreter(),
    ]


def create_default_registry(
    fallback_enabled: Optional[bool] = None,
    retry_threshold_ms: Optional[int] = None,
) -> InterpreterRegistry:
    registry = InterpreterRegistry(fallback_enabled=fallback_enabled)
    registry.register_all(default_interpreters(retry_threshold_ms))
    logger.debug("Registered %d interpreters", len(registry.get_all()))
    return registry
