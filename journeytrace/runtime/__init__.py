# journeytrace/runtime package
# Journey trace reconstruction engine.
#
# Core components:
#   - types: Clip and flow tree dataclasses, JSON decoding
#   - interpreters: Handler-family interpreters and their registry
#   - pipeline: Clip processors and the step lifecycle state machine
#   - flow_analyzer: Grouping logs into per-user flows
#   - trace_parser: TraceParser entry point
#
# Usage:
#     from journeytrace.runtime import TraceParser, decode_logs
#     result = TraceParser().parse(decode_logs(raw_logs))

from .errors import (
    ClipDecodeError,
    FlowTreeError,
    InterpreterRegistrationError,
    JourneyStackError,
    TraceError,
)
from .flow_analyzer import FlowAnalyzer, UserFlow, group_logs_into_flows
from .interpreters import InterpreterRegistry, create_default_registry
from .types import TraceLogInput, decode_logs
from .trace_parser import FlowParseResult, TraceParser, TraceParseResult, parse_trace

__all__ = [
    "ClipDecodeError",
    "FlowTreeError",
    "InterpreterRegistrationError",
    "JourneyStackError",
    "TraceError",
    "FlowAnalyzer",
    "UserFlow",
    "group_logs_into_flows",
    "InterpreterRegistry",
    "create_default_registry",
    "TraceLogInput",
    "decode_logs",
    "FlowParseResult",
    "TraceParser",
    "TraceParseResult",
    "parse_trace",
]
