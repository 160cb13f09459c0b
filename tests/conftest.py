"""
Test fixtures and clip builders for journey trace tests.

Builders return raw JSON-shaped dicts (as the journey recorder emits them) so
tests exercise decoding as well as interpretation:

    log = make_log("log-1", 0, [headers(), *orch(1)])
    result = parser.parse(decode_logs([log]))
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from journeytrace.config.trace_config import (
    ENV_DEDUP_THRESHOLD,
    ENV_REGISTRY_FALLBACK,
    ENV_RETRY_THRESHOLD,
    reset_config,
)
from journeytrace.runtime import handlers
from journeytrace.runtime.execution_map import ExecutionMapBuilder
from journeytrace.runtime.flow_tree import FlowTreeBuilder
from journeytrace.runtime.interpreters.base import InterpretContext
from journeytrace.runtime.interpreters.registry import create_default_registry
from journeytrace.runtime.journey_stack import JourneyStack
from journeytrace.runtime.pipeline import ClipPipeline, PendingStepData, create_initial_context
from journeytrace.runtime.statebag import StatebagAccumulator
from journeytrace.runtime.trace_parser import TraceParser
from journeytrace.runtime.types import decode_clip, decode_logs

POLICY_ID = "B2C_1A_SignUpOrSignIn"
JOURNEY_NAME = "SignUpOrSignIn"
BASE_TIME = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Raw clip builders
# ============================================================================


def ts(offset_ms: int = 0) -> str:
    """ISO-8601 timestamp `offset_ms` after BASE_TIME, with a Z suffix."""
    moment = BASE_TIME + timedelta(milliseconds=offset_ms)
    return moment.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def headers(event: str = "Event:AUTH", policy_id: str = POLICY_ID, correlation_id: str = "corr-1") -> Dict[str, Any]:
    return {
        "Kind": "Headers",
        "Content": {
            "UserJourneyRecorderEndpoint": "urn:journeyrecorder:applicationinsights",
            "CorrelationId": correlation_id,
            "EventInstance": event,
            "TenantId": "contoso.onmicrosoft.com",
            "PolicyId": policy_id,
        },
    }


def action(handler_name: str) -> Dict[str, Any]:
    return {"Kind": "Action", "Content": handler_name}


def predicate(handler_name: str) -> Dict[str, Any]:
    return {"Kind": "Predicate", "Content": handler_name}


def transition(event_name: str = "PreStep", state_name: str = "Initial") -> Dict[str, Any]:
    return {"Kind": "Transition", "Content": {"EventName": event_name, "StateName": state_name}}


def sb(**values: Any) -> Dict[str, Any]:
    """Statebag delta in the engine's {"v": ...} entry shape."""
    return {key: {"c": "2024-03-01T09:00:00Z", "k": key, "v": value, "p": True} for key, value in values.items()}


def record(*entries) -> Dict[str, Any]:
    """RecorderRecord {"Values": [...]} from (key, value) pairs."""
    return {"Values": [{"Key": key, "Value": value} for key, value in entries]}


def handler_result(
    statebag: Optional[Dict[str, Any]] = None,
    recorder_record: Optional[Dict[str, Any]] = None,
    result: bool = True,
    predicate_result: Optional[str] = None,
    exception: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    content: Dict[str, Any] = {"Result": result}
    if predicate_result is not None:
        content["PredicateResult"] = predicate_result
    if statebag is not None:
        content["Statebag"] = statebag
    if recorder_record is not None:
        content["RecorderRecord"] = recorder_record
    if exception is not None:
        content["Exception"] = exception
    return {"Kind": "HandlerResult", "Content": content}


def fatal_exception(message: str, h_result: str = "-2146233088") -> Dict[str, Any]:
    return {
        "Kind": "FatalException",
        "Content": {"Time": "9:00 AM", "Exception": {"Message": message, "HResult": h_result}},
    }


def orch(step: Optional[int], claims: Optional[Dict[str, str]] = None, **extra: Any) -> List[Dict[str, Any]]:
    """OrchestrationManager action + result; `step=None` omits ORCH_CS."""
    statebag = sb(**extra)
    if step is not None:
        statebag.update(sb(ORCH_CS=str(step)))
    if claims is not None:
        statebag["Complex-CLMS"] = dict(claims)
    return [action(handlers.ORCHESTRATION_MANAGER), handler_result(statebag=statebag)]


def enabled_profiles(*tp_ids: str) -> Dict[str, Any]:
    """EnabledForUserJourneysTrue container listing `tp_ids`."""
    return {
        "Values": [
            {"Key": "TechnicalProfileEnabled", "Value": record(("TechnicalProfile", tp_id), ("EnabledResult", True))}
            for tp_id in tp_ids
        ]
    }


def step_invoked(*tp_ids: str) -> List[Dict[str, Any]]:
    return [
        predicate(handlers.SHOULD_STEP_BE_INVOKED),
        handler_result(
            predicate_result="True",
            recorder_record=record(("EnabledForUserJourneysTrue", enabled_profiles(*tp_ids))),
        ),
    ]


def make_log(
    log_id: str,
    offset_ms: int,
    clips: List[Dict[str, Any]],
    policy_id: str = POLICY_ID,
    correlation_id: str = "corr-1",
) -> Dict[str, Any]:
    return {
        "id": log_id,
        "timestamp": ts(offset_ms),
        "policyId": policy_id,
        "correlationId": correlation_id,
        "clips": clips,
    }


# ============================================================================
# Engine fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_trace_config(monkeypatch):
    """Clear config env overrides and the yaml cache around every test."""
    for name in (ENV_DEDUP_THRESHOLD, ENV_RETRY_THRESHOLD, ENV_REGISTRY_FALLBACK):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def registry():
    return create_default_registry(fallback_enabled=True, retry_threshold_ms=1000)


@pytest.fixture
def parser(registry):
    return TraceParser(registry=registry, dedup_threshold_ms=1000)


@pytest.fixture
def parse(parser):
    """Parse raw log dicts with the shared parser."""

    def _parse(raw_logs):
        return parser.parse(decode_logs(raw_logs))

    return _parse


class PipelineHarness:
    """Runs logs through a ClipPipeline while exposing the live context."""

    def __init__(self, registry, dedup_threshold_ms: int = 1000) -> None:
        self.tree = FlowTreeBuilder()
        self.tree.set_root_info(JOURNEY_NAME, POLICY_ID)
        self.ctx = create_initial_context(
            JourneyStack(POLICY_ID, JOURNEY_NAME),
            StatebagAccumulator(),
            ExecutionMapBuilder(),
            self.tree,
        )
        self.pipeline = ClipPipeline(registry, dedup_threshold_ms=dedup_threshold_ms)

    def run(self, *raw_logs) -> "PipelineHarness":
        for log in decode_logs(list(raw_logs)):
            self.pipeline.process_log(log, self.ctx)
        return self

    def finish(self) -> "PipelineHarness":
        self.pipeline.lifecycle.finalize_current_step(self.ctx)
        return self


@pytest.fixture
def harness(registry):
    registry.reset_interpreters()
    return PipelineHarness(registry)


def interpret_context(
    handler_name: str,
    raw_result: Dict[str, Any],
    statebag: Optional[Dict[str, str]] = None,
    stack: Optional[JourneyStack] = None,
    pending: Optional[PendingStepData] = None,
    offset_ms: int = 0,
) -> InterpretContext:
    """InterpretContext for calling one interpreter directly."""
    clip = decode_clip(raw_result)
    return InterpretContext(
        clip=clip,
        clip_index=0,
        clips=[clip],
        handler_name=handler_name,
        handler_result=clip.content,
        journey_stack=stack or JourneyStack(POLICY_ID, JOURNEY_NAME),
        pending=pending or PendingStepData(active=True, step_order=1),
        timestamp=BASE_TIME + timedelta(milliseconds=offset_ms),
        log_id="log-1",
        statebag=dict(statebag or {}),
    )
