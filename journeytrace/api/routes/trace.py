"""
Trace endpoints for the Journey Trace API.

Provides REST endpoints for:
- Parsing journey recorder logs into an execution tree
- Grouping logs into user flows and parsing each flow
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from journeytrace.runtime.errors import ClipDecodeError
from journeytrace.runtime.flow_analyzer import filter_by_correlation_id
from journeytrace.runtime.trace_parser import TraceParseResult
from journeytrace.runtime.types import TraceLogInput, decode_logs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trace", tags=["trace"])


# =============================================================================
# Pydantic Models
# =============================================================================


class ParseRequest(BaseModel):
    """Request for the parse endpoint."""

    logs: List[Dict[str, Any]] = Field(..., description="Journey recorder logs (id, timestamp, clips, ...)")
    correlation_id: Optional[str] = Field(None, description="Only parse logs with this correlation id")


class FlowsRequest(BaseModel):
    """Request for the flows endpoint."""

    logs: List[Dict[str, Any]] = Field(..., description="Journey recorder logs, any number of users")


class ParseSummary(BaseModel):
    """Counts reported alongside the parse result."""

    log_count: int = Field(0, description="Logs parsed")
    step_count: int = Field(0, description="Step nodes in the tree")
    error_count: int = Field(0, description="Errors reported by the parse")


# =============================================================================
# Service Access
# =============================================================================


def _get_trace_service():
    """Get the global TraceService instance."""
    # Import here to avoid circular imports
    from ..server import get_trace_service

    return get_trace_service()


# =============================================================================
# Endpoints
# =============================================================================


def _decode(raw_logs: List[Dict[str, Any]]) -> List[TraceLogInput]:
    try:
        return decode_logs(raw_logs)
    except ClipDecodeError as e:
        logger.info("Rejected undecodable trace input: %s", e)
        raise HTTPException(
            status_code=422,
            detail={
                "error": "decode_error",
                "message": str(e),
            },
        )


def _result_body(result: TraceParseResult, log_count: int) -> Dict[str, Any]:
    body = result.to_dict()
    body["summary"] = ParseSummary(
        log_count=log_count,
        step_count=len(result.steps),
        error_count=len(result.errors),
    ).model_dump()
    return body


@router.post("/parse")
def parse_trace(request: ParseRequest) -> Dict[str, Any]:
    """Rebuild the execution tree from recorder logs.

    Returns:
        The parse result dict plus a summary. A parse that reports errors
        still returns 200; `success` is false and `errors` lists them.

    Raises:
        422: Logs or clips could not be decoded.
    """
    logs = _decode(request.logs)
    if request.correlation_id:
        logs = filter_by_correlation_id(logs, request.correlation_id)

    result = _get_trace_service().parse(logs)
    return _result_body(result, len(logs))


@router.post("/flows")
def parse_flows(request: FlowsRequest) -> Dict[str, Any]:
    """Group logs into user flows (correlation id and AUTH session) and parse each.

    Returns:
        {"flows": [{"flow": ..., "result": ...}]} in flow order.

    Raises:
        422: Logs or clips could not be decoded.
    """
    logs = _decode(request.logs)
    results = _get_trace_service().parse_flows(logs)
    return {
        "flows": [
            {"flow": item.flow.to_dict(), "result": _result_body(item.result, len(item.flow.log_ids))}
            for item in results
        ]
    }
