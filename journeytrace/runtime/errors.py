"""
errors.py - Exception types raised by the trace reconstruction engine.

Only configuration mistakes and broken internal invariants raise; malformed
but decodable journey logs are reported as data on the parse result.
"""

from __future__ import annotations


class TraceError(Exception):
    """Base class for journey trace errors."""

    pass


class InterpreterRegistrationError(TraceError):
    """Raised when two interpreters claim the same handler name."""

    pass


class JourneyStackError(TraceError):
    """Raised when the journey stack is popped past its root context."""

    pass


class FlowTreeError(TraceError):
    """Raised when the flow tree builder is popped past the root node."""

    pass


class ClipDecodeError(TraceError):
    """Raised when raw JSON cannot be decoded into journey logs or clips."""

    pass
