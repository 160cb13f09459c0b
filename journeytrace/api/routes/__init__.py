"""
Routes package for the Journey Trace API.

This package contains the FastAPI routers for:
- trace: Journey recorder log parsing
"""

from .trace import router as trace_router

__all__ = [
    "trace_router",
]
