# journeytrace/runtime/interpreters package
# One interpreter per handler family, turning HandlerResult clips into
# InterpretResult values the step lifecycle manager applies.
#
# Usage:
#     from journeytrace.runtime.interpreters import create_default_registry
#     registry = create_default_registry()
#     interpreter = registry.get_interpreter(handler_name)

from .base import (
    BaseInterpreter,
    DefaultInterpreter,
    InterpretContext,
    InterpretResult,
    SubJourneyPush,
)
from .registry import (
    InterpreterRegistry,
    InterpreterRegistryStats,
    create_default_registry,
    default_interpreters,
)

__all__ = [
    "BaseInterpreter",
    "DefaultInterpreter",
    "InterpretContext",
    "InterpretResult",
    "SubJourneyPush",
    "InterpreterRegistry",
    "InterpreterRegistryStats",
    "create_default_registry",
    "default_interpreters",
]
