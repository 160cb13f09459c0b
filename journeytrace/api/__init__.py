"""
Journey Trace API - FastAPI REST API for journey trace reconstruction.

Endpoints:
    POST   /api/trace/parse   - Rebuild the execution tree from recorder logs
    POST   /api/trace/flows   - Group logs into user flows and parse each
    GET    /api/health        - Health check
"""

from .routes import trace_router
from .server import TraceService, create_app, get_trace_service

__all__ = [
    "create_app",
    "TraceService",
    "get_trace_service",
    "trace_router",
]
