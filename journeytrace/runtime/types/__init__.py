"""
types - Core type definitions for journey trace reconstruction.

Usage:
    from journeytrace.runtime.types import (
        Clip, ClipKind, TraceLogInput, HandlerResultContent, RecordObject,
        FlowNode, FlowNodeType, FlowNodeChild, StepFlowData, StepResult,
        decode_logs,
    )
"""

from .clips import (
    Clip,
    ClipKind,
    ExceptionContent,
    FatalExceptionContent,
    HandlerResultContent,
    HeadersContent,
    RecordEntry,
    RecordObject,
    RecordValue,
    TraceLogInput,
    TransitionContent,
    decode_clip,
    decode_log,
    decode_logs,
    to_record_value,
)
from .flow_node import (
    BackendApiCall,
    ClaimMapping,
    ClaimsTransformationFlowData,
    ClaimValue,
    DisplayControlFlowData,
    FlowNode,
    FlowNodeChild,
    FlowNodeContext,
    FlowNodeType,
    HomeRealmDiscoveryFlowData,
    ParameterValue,
    RootFlowData,
    SendClaimsFlowData,
    SessionInfo,
    StepError,
    StepErrorKind,
    StepFlowData,
    StepResult,
    SubJourneyFlowData,
    TechnicalProfileFlowData,
    TenantBranding,
    UiSettings,
)

__all__ = [
    "Clip",
    "ClipKind",
    "ExceptionContent",
    "FatalExceptionContent",
    "HandlerResultContent",
    "HeadersContent",
    "RecordEntry",
    "RecordObject",
    "RecordValue",
    "TraceLogInput",
    "TransitionContent",
    "decode_clip",
    "decode_log",
    "decode_logs",
    "to_record_value",
    "BackendApiCall",
    "ClaimMapping",
    "ClaimsTransformationFlowData",
    "ClaimValue",
    "DisplayControlFlowData",
    "FlowNode",
    "FlowNodeChild",
    "FlowNodeContext",
    "FlowNodeType",
    "HomeRealmDiscoveryFlowData",
    "ParameterValue",
    "RootFlowData",
    "SendClaimsFlowData",
    "SessionInfo",
    "StepError",
    "StepErrorKind",
    "StepFlowData",
    "StepResult",
    "SubJourneyFlowData",
    "TechnicalProfileFlowData",
    "TenantBranding",
    "UiSettings",
]
