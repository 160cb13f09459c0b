"""
FastAPI server exposing journey trace reconstruction.

One TraceService (a TraceParser and the interpreter registry it owns) backs
the app. The registry keeps per-parse state, so parses are serialized with
a lock; run several processes for parallel throughput.

Usage:
    # Run standalone
    python -m journeytrace.api.server --port 5002

    # Or via factory
    from journeytrace.api import create_app
    app = create_app()
    uvicorn.run(app, port=5002)

API Structure:
    POST /api/trace/parse   - Rebuild the execution tree from recorder logs
    POST /api/trace/flows   - Group logs into user flows and parse each
    GET  /api/health        - Health check
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from journeytrace.runtime.trace_parser import FlowParseResult, TraceParser, TraceParseResult
from journeytrace.runtime.types import TraceLogInput

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str
    timestamp: str
    interpreter_count: int
    handler_count: int
    parse_count: int = 0


# =============================================================================
# TraceService - serialized access to one parser
# =============================================================================


class TraceService:
    """Owns the parser used by the API and serializes parses against it.

    Attributes:
        parser: TraceParser whose registry is shared by every request.
        parse_count: Parses completed since startup.
    """

    def __init__(
        self,
        dedup_threshold_ms: Optional[int] = None,
        retry_threshold_ms: Optional[int] = None,
    ) -> None:
        self.parser = TraceParser(dedup_threshold_ms=dedup_threshold_ms, retry_threshold_ms=retry_threshold_ms)
        self.parse_count = 0
        self._lock = threading.Lock()

    def parse(self, logs: List[TraceLogInput]) -> TraceParseResult:
        with self._lock:
            result = self.parser.parse(logs)
            self.parse_count += 1
        return result

    def parse_flows(self, logs: List[TraceLogInput]) -> List[FlowParseResult]:
        with self._lock:
            results = self.parser.parse_flows(logs)
            self.parse_count += 1
        return results

    def stats(self) -> Dict[str, Any]:
        registry_stats = self.parser.registry.get_stats()
        return {
            "interpreter_count": registry_stats.interpreter_count,
            "handler_count": registry_stats.handler_count,
            "parse_count": self.parse_count,
        }


_trace_service: Optional[TraceService] = None


def get_trace_service() -> TraceService:
    """Get the global TraceService instance."""
    global _trace_service
    if _trace_service is None:
        _trace_service = TraceService()
    return _trace_service


# =============================================================================
# FastAPI Application Factory
# =============================================================================


def create_app(
    enable_cors: bool = True,
    dedup_threshold_ms: Optional[int] = None,
    retry_threshold_ms: Optional[int] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        enable_cors: Whether to enable CORS middleware.
        dedup_threshold_ms: Step merge window override.
        retry_threshold_ms: Orchestration retry gap override.

    Returns:
        Configured FastAPI application.
    """
    global _trace_service
    _trace_service = TraceService(dedup_threshold_ms=dedup_threshold_ms, retry_threshold_ms=retry_threshold_ms)

    app = FastAPI(
        title="Journey Trace API",
        description="Rebuilds user journey execution trees from journey recorder logs.",
        version="0.1.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    from .routes import trace_router

    app.include_router(trace_router, prefix="/api")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(
            "%s %s %s %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat(),
            **get_trace_service().stats(),
        )

    return app


def main():
    """Run the API server."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Journey Trace API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5002, help="Port to bind to")
    parser.add_argument("--no-cors", action="store_true", help="Disable CORS")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    app = create_app(enable_cors=not args.no_cors)

    print(f"Starting Journey Trace API server at http://{args.host}:{args.port}")
    print("    POST   /api/trace/parse   - Rebuild execution tree")
    print("    POST   /api/trace/flows   - Parse each user flow")
    print("    GET    /api/health        - Health check")

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
