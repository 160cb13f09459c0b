# journeytrace package
# Rebuilds user journey execution trees from journey recorder logs.
#
# Usage:
#     from journeytrace import TraceParser, decode_logs
#     result = TraceParser().parse(decode_logs(raw_logs))

from .runtime import (
    ClipDecodeError,
    TraceError,
    TraceParser,
    TraceParseResult,
    create_default_registry,
    decode_logs,
    parse_trace,
)

__version__ = "0.1.0"

__all__ = [
    "ClipDecodeError",
    "TraceError",
    "TraceParser",
    "TraceParseResult",
    "create_default_registry",
    "decode_logs",
    "parse_trace",
    "__version__",
]
