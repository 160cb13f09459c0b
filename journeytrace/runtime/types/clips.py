"""
clips.py - Typed model of journey recorder clips and logs.

A journey recorder log is an ordered list of clips. Each clip has a Kind and a
Content whose shape depends on the kind. HandlerResult clips carry a
RecorderRecord: a loosely typed tree of {Key, Value} entries that is decoded
here into a small recursive sum type so extraction code never has to
inspect raw JSON.

Record value sum type:
    RecordValue = str | int | float | bool | None
                | RecordObject          ({"Values": [{"Key": ..., "Value": ...}]})
                | List[RecordValue]
                | Dict[str, RecordValue] (any other JSON object)

Usage:
    from journeytrace.runtime.types.clips import decode_logs, ClipKind

    logs = decode_logs(json.loads(raw_text))
    for log in logs:
        for clip in log.clips:
            if clip.kind == ClipKind.HANDLER_RESULT:
                ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from ..errors import ClipDecodeError
from ._time import _datetime_to_iso, coerce_timestamp


class ClipKind(str, Enum):
    """Kinds of clip emitted by the journey recorder."""

    HEADERS = "Headers"
    TRANSITION = "Transition"
    PREDICATE = "Predicate"
    ACTION = "Action"
    HANDLER_RESULT = "HandlerResult"
    EXCEPTION = "Exception"


# The recorder emits fatal exceptions as "FatalException".
_KIND_ALIASES = {
    "FatalException": ClipKind.EXCEPTION,
}


# =============================================================================
# Record tree
# =============================================================================


@dataclass
class RecordEntry:
    """One {Key, Value} pair inside a RecorderRecord object."""

    key: str
    value: "RecordValue"


@dataclass
class RecordObject:
    """An ordered {"Values": [...]} object from the recorder record tree."""

    values: List[RecordEntry] = field(default_factory=list)

    def __iter__(self) -> Iterator[RecordEntry]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def get(self, key: str, default: Any = None) -> "RecordValue":
        """Value of the first entry with this key."""
        for entry in self.values:
            if entry.key == key:
                return entry.value
        return default

    def get_all(self, key: str) -> List["RecordValue"]:
        """Values of every entry with this key, in order."""
        return [entry.value for entry in self.values if entry.key == key]

    def has(self, key: str) -> bool:
        return any(entry.key == key for entry in self.values)


RecordValue = Union[str, int, float, bool, None, RecordObject, List[Any], Dict[str, Any]]


def _is_values_object(raw: Mapping[str, Any]) -> bool:
    values = raw.get("Values")
    if not isinstance(values, list):
        return False
    return all(isinstance(item, Mapping) and "Key" in item for item in values)


def to_record_value(raw: Any) -> RecordValue:
    """Convert decoded JSON into the record sum type."""
    if isinstance(raw, Mapping):
        if _is_values_object(raw):
            return RecordObject(
                [RecordEntry(str(item["Key"]), to_record_value(item.get("Value"))) for item in raw["Values"]]
            )
        return {str(k): to_record_value(v) for k, v in raw.items()}
    if isinstance(raw, list):
        return [to_record_value(item) for item in raw]
    return raw


# =============================================================================
# Clip contents
# =============================================================================


@dataclass
class ExceptionContent:
    """Exception details, possibly wrapping an inner exception.

    Attributes:
        message: Human-readable error message.
        h_result: Numeric error code as text (e.g. "-2146233088").
        kind: "Handled" or "Unhandled" when the recorder reports it.
        data: Additional error context.
        inner: Wrapped inner exception.
    """

    message: str
    h_result: Optional[str] = None
    kind: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    inner: Optional["ExceptionContent"] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["ExceptionContent"]:
        if not isinstance(raw, Mapping):
            return None
        h_result = raw.get("HResult")
        data = raw.get("Data")
        return cls(
            message=str(raw.get("Message") or ""),
            h_result=str(h_result) if h_result is not None else None,
            kind=raw.get("Kind"),
            data=dict(data) if isinstance(data, Mapping) else {},
            inner=cls.from_raw(raw.get("Exception")),
        )


@dataclass
class HeadersContent:
    """Correlation headers opening a journey recorder log."""

    correlation_id: str = ""
    event_instance: str = ""
    tenant_id: str = ""
    policy_id: str = ""
    user_journey_recorder_endpoint: str = ""

    @classmethod
    def from_raw(cls, raw: Any) -> "HeadersContent":
        if not isinstance(raw, Mapping):
            raise ClipDecodeError("Headers clip content must be an object")
        return cls(
            correlation_id=str(raw.get("CorrelationId") or ""),
            event_instance=str(raw.get("EventInstance") or ""),
            tenant_id=str(raw.get("TenantId") or ""),
            policy_id=str(raw.get("PolicyId") or ""),
            user_journey_recorder_endpoint=str(raw.get("UserJourneyRecorderEndpoint") or ""),
        )


@dataclass
class TransitionContent:
    event_name: str = ""
    state_name: str = ""

    @classmethod
    def from_raw(cls, raw: Any) -> "TransitionContent":
        if not isinstance(raw, Mapping):
            raise ClipDecodeError("Transition clip content must be an object")
        return cls(
            event_name=str(raw.get("EventName") or ""),
            state_name=str(raw.get("StateName") or ""),
        )


@dataclass
class HandlerResultContent:
    """Result of one handler execution.

    Attributes:
        result: Whether the handler succeeded (or, for predicates, the outcome).
        predicate_result: "True"/"False" for predicate handlers.
        statebag: Raw statebag delta written by the handler.
        recorder_record: Decoded record tree, if any.
        exception: Exception raised by the handler, if any.
    """

    result: bool = True
    predicate_result: Optional[str] = None
    statebag: Dict[str, Any] = field(default_factory=dict)
    recorder_record: Optional[RecordObject] = None
    exception: Optional[ExceptionContent] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "HandlerResultContent":
        if not isinstance(raw, Mapping):
            raise ClipDecodeError("HandlerResult clip content must be an object")
        statebag = raw.get("Statebag")
        record = to_record_value(raw.get("RecorderRecord")) if raw.get("RecorderRecord") is not None else None
        predicate_result = raw.get("PredicateResult")
        return cls(
            result=bool(raw.get("Result", True)),
            predicate_result=str(predicate_result) if predicate_result is not None else None,
            statebag=dict(statebag) if isinstance(statebag, Mapping) else {},
            recorder_record=record if isinstance(record, RecordObject) else None,
            exception=ExceptionContent.from_raw(raw.get("Exception")),
        )

    def record_values(self) -> List[RecordEntry]:
        """Top-level recorder record entries (empty when absent)."""
        if self.recorder_record is None:
            return []
        return list(self.recorder_record.values)


@dataclass
class FatalExceptionContent:
    exception: ExceptionContent
    time: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "FatalExceptionContent":
        if not isinstance(raw, Mapping):
            raise ClipDecodeError("Exception clip content must be an object")
        exception = ExceptionContent.from_raw(raw.get("Exception"))
        if exception is None:
            exception = ExceptionContent(message=str(raw.get("Message") or "Unknown fatal exception"))
        return cls(exception=exception, time=raw.get("Time"))


ClipContent = Union[
    HeadersContent,
    TransitionContent,
    HandlerResultContent,
    FatalExceptionContent,
    str,
    Any,
]


@dataclass
class Clip:
    """One atomic journey recorder fragment.

    Predicate and Action clips carry the fully-qualified handler name as a
    string. Unknown kinds keep their raw content and are skipped by the
    pipeline.
    """

    kind: str
    content: ClipContent

    @property
    def is_known(self) -> bool:
        return self.kind in ClipKind._value2member_map_


@dataclass
class TraceLogInput:
    """One journey recorder log: a timestamped, ordered batch of clips."""

    id: str
    timestamp: datetime
    policy_id: str = ""
    correlation_id: str = ""
    clips: List[Clip] = field(default_factory=list)

    def headers(self) -> Optional[HeadersContent]:
        """First Headers clip content in this log."""
        for clip in self.clips:
            if clip.kind == ClipKind.HEADERS:
                return clip.content
        return None

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _datetime_to_iso(self.timestamp),
            "policy_id": self.policy_id,
            "correlation_id": self.correlation_id,
            "clip_count": len(self.clips),
        }


# =============================================================================
# Decoding
# =============================================================================


def decode_clip(raw: Any) -> Clip:
    """Decode one raw {"Kind", "Content"} object."""
    if not isinstance(raw, Mapping) or "Kind" not in raw:
        raise ClipDecodeError(f"Clip must be an object with a Kind: {raw!r}")

    kind = str(raw["Kind"])
    kind = _KIND_ALIASES.get(kind, kind)
    content = raw.get("Content")

    if kind == ClipKind.HEADERS:
        return Clip(ClipKind.HEADERS, HeadersContent.from_raw(content))
    if kind == ClipKind.TRANSITION:
        return Clip(ClipKind.TRANSITION, TransitionContent.from_raw(content))
    if kind in (ClipKind.PREDICATE, ClipKind.ACTION):
        if not isinstance(content, str):
            raise ClipDecodeError(f"{kind} clip content must be a handler name")
        return Clip(ClipKind(kind), content)
    if kind == ClipKind.HANDLER_RESULT:
        return Clip(ClipKind.HANDLER_RESULT, HandlerResultContent.from_raw(content))
    if kind == ClipKind.EXCEPTION:
        return Clip(ClipKind.EXCEPTION, FatalExceptionContent.from_raw(content))
    return Clip(kind, content)


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def decode_log(raw: Any) -> TraceLogInput:
    """Decode one raw log object.

    Accepts camelCase (`policyId`) or snake_case (`policy_id`) field names.
    """
    if not isinstance(raw, Mapping):
        raise ClipDecodeError(f"Log must be an object: {raw!r}")

    timestamp_raw = _first(raw, "timestamp", "Timestamp")
    if timestamp_raw is None:
        raise ClipDecodeError(f"Log {raw.get('id')!r} has no timestamp")
    try:
        timestamp = coerce_timestamp(timestamp_raw)
    except ValueError as exc:
        raise ClipDecodeError(str(exc)) from exc

    raw_clips = _first(raw, "clips", "Clips") or []
    if not isinstance(raw_clips, Sequence) or isinstance(raw_clips, (str, bytes)):
        raise ClipDecodeError(f"Log {raw.get('id')!r} clips must be a list")

    return TraceLogInput(
        id=str(_first(raw, "id", "Id") or ""),
        timestamp=timestamp,
        policy_id=str(_first(raw, "policyId", "policy_id", "PolicyId") or ""),
        correlation_id=str(_first(raw, "correlationId", "correlation_id", "CorrelationId") or ""),
        clips=[decode_clip(c) for c in raw_clips],
    )


def decode_logs(raw: Any) -> List[TraceLogInput]:
    """Decode a list of logs, or an object with a "logs" list."""
    if isinstance(raw, Mapping) and "logs" in raw:
        raw = raw["logs"]
    if not isinstance(raw, list):
        raise ClipDecodeError("Expected a JSON array of logs or an object with a 'logs' array")
    return [decode_log(item) for item in raw]
