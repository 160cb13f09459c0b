"""
flow_node.py - Execution tree node types.

The reconstructed trace is a strict tree rooted at a single Root node:

    Root
    ├── Step                      (root-level orchestration step)
    │   ├── TechnicalProfile
    │   │   └── ClaimsTransformation / TechnicalProfile (validation)
    │   ├── HomeRealmDiscovery
    │   ├── DisplayControl
    │   │   └── TechnicalProfile
    │   └── SendClaims
    └── SubJourney
        └── Step ...

Every node carries a type-specific payload (`data`) and a context snapshot
captured at creation time. Interpreters describe children they want attached
as FlowNodeChild payload trees; the FlowTreeBuilder turns them into nodes.

Usage:
    from journeytrace.runtime.types.flow_node import (
        FlowNode, FlowNodeType, StepFlowData, StepResult, TechnicalProfileFlowData,
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ._time import EPOCH, _datetime_to_iso


# =============================================================================
# Enums
# =============================================================================


class FlowNodeType(str, Enum):
    """Discriminator for execution tree nodes."""

    ROOT = "root"
    SUB_JOURNEY = "subjourney"
    STEP = "step"
    TECHNICAL_PROFILE = "tp"
    CLAIMS_TRANSFORMATION = "ct"
    HOME_REALM_DISCOVERY = "hrd"
    DISPLAY_CONTROL = "dc"
    SEND_CLAIMS = "sendClaims"


class StepResult(str, Enum):
    """Outcome of an orchestration step."""

    SUCCESS = "Success"
    SKIPPED = "Skipped"
    ERROR = "Error"
    PENDING_INPUT = "PendingInput"


class StepErrorKind(str, Enum):
    HANDLED = "Handled"
    UNHANDLED = "Unhandled"


def _to_plain(value: Any) -> Any:
    """Recursively convert dataclasses/enums/datetimes to JSON-ready values.

    None-valued dataclass fields are omitted.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _datetime_to_iso(value)
    if is_dataclass(value) and not isinstance(value, type):
        result: Dict[str, Any] = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            result[f.name] = _to_plain(item)
        return result
    if isinstance(value, dict):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


# =============================================================================
# Supporting types
# =============================================================================


@dataclass
class StepError:
    """An error attached to a step.

    Attributes:
        kind: Handled (validation failure the user can retry) or Unhandled.
        h_result: Engine error code as text, "" when unknown.
        message: Error message as reported by the engine.
    """

    kind: StepErrorKind
    h_result: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return _to_plain(self)


@dataclass
class ClaimMapping:
    partner_claim_type: str
    policy_claim_type: str


@dataclass
class ClaimValue:
    claim_type: str
    value: str


@dataclass
class ParameterValue:
    id: str
    value: str


@dataclass
class BackendApiCall:
    """A backend call reconstructed from the PROT statebag entry.

    Attributes:
        request_type: "AAD" or "REST" when recognisable.
        request_uri: Target URI of the request.
        raw_response: Response body text.
        response: Parsed JSON response when the body is valid JSON.
    """

    request_type: Optional[str] = None
    request_uri: Optional[str] = None
    raw_response: Optional[str] = None
    response: Optional[Any] = None

    def is_empty(self) -> bool:
        return (
            self.request_type is None
            and self.request_uri is None
            and self.raw_response is None
            and self.response is None
        )


@dataclass
class TenantBranding:
    banner_logo_url: Optional[str] = None
    background_color: Optional[str] = None


@dataclass
class UiSettings:
    """Page configuration shown to the user during a step."""

    content_definition: Optional[str] = None
    page_type: Optional[str] = None
    remote_resource: Optional[str] = None
    page_id: Optional[str] = None
    language: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    tenant_branding: Optional[TenantBranding] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class SessionInfo:
    """One authentication session within a correlation id.

    Attributes:
        session_index: 0-based index of the session.
        start_timestamp: Timestamp of the log that opened the session.
        step_count: Steps finalized while the session was active.
    """

    session_index: int
    start_timestamp: datetime
    step_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _to_plain(self)


# =============================================================================
# Node payloads
# =============================================================================


@dataclass
class RootFlowData:
    policy_id: str = ""
    type: FlowNodeType = FlowNodeType.ROOT


@dataclass
class SubJourneyFlowData:
    journey_id: str
    type: FlowNodeType = FlowNodeType.SUB_JOURNEY


@dataclass
class StepFlowData:
    """Payload of a Step node.

    Attributes:
        step_order: Orchestration step number within its journey.
        current_journey_name: Journey (or sub-journey) the step ran in.
        result: Step outcome.
        errors: Errors attached to the step.
        duration: Milliseconds until the next step started (post-processed).
        action_handler: Handler that drove the step.
        ui_settings: Page configuration, if the step rendered UI.
        selectable_options: Provider options offered (home realm discovery).
        selected_option: Option the user picked.
        backend_api_calls: Backend calls made during the step.
        sso_session_participant: SSO participation outcome, when reported.
        sso_session_activated: SSO session activation outcome, when reported.
    """

    step_order: int
    current_journey_name: str
    result: StepResult = StepResult.SUCCESS
    errors: List[StepError] = field(default_factory=list)
    duration: Optional[int] = None
    action_handler: Optional[str] = None
    ui_settings: Optional[UiSettings] = None
    selectable_options: List[str] = field(default_factory=list)
    selected_option: Optional[str] = None
    backend_api_calls: Optional[List[BackendApiCall]] = None
    sso_session_participant: Optional[bool] = None
    sso_session_activated: Optional[bool] = None
    type: FlowNodeType = FlowNodeType.STEP


@dataclass
class TechnicalProfileFlowData:
    technical_profile_id: str
    provider_type: str = "Unknown"
    protocol_type: Optional[str] = None
    claims_snapshot: Optional[Dict[str, str]] = None
    claim_mappings: Optional[List[ClaimMapping]] = None
    type: FlowNodeType = FlowNodeType.TECHNICAL_PROFILE


@dataclass
class ClaimsTransformationFlowData:
    transformation_id: str
    input_claims: List[ClaimValue] = field(default_factory=list)
    input_parameters: List[ParameterValue] = field(default_factory=list)
    output_claims: List[ClaimValue] = field(default_factory=list)
    type: FlowNodeType = FlowNodeType.CLAIMS_TRANSFORMATION


@dataclass
class HomeRealmDiscoveryFlowData:
    selectable_options: List[str] = field(default_factory=list)
    selected_option: Optional[str] = None
    ui_settings: Optional[UiSettings] = None
    type: FlowNodeType = FlowNodeType.HOME_REALM_DISCOVERY


@dataclass
class DisplayControlFlowData:
    display_control_id: str
    action: str = ""
    result_code: Optional[str] = None
    claim_mappings: Optional[List[ClaimMapping]] = None
    type: FlowNodeType = FlowNodeType.DISPLAY_CONTROL


@dataclass
class SendClaimsFlowData:
    technical_profile_id: str
    protocol: Optional[str] = None
    type: FlowNodeType = FlowNodeType.SEND_CLAIMS


FlowNodeData = Union[
    RootFlowData,
    SubJourneyFlowData,
    StepFlowData,
    TechnicalProfileFlowData,
    ClaimsTransformationFlowData,
    HomeRealmDiscoveryFlowData,
    DisplayControlFlowData,
    SendClaimsFlowData,
]

# Payloads an interpreter may ask to attach below a step.
ChildFlowData = Union[
    TechnicalProfileFlowData,
    ClaimsTransformationFlowData,
    HomeRealmDiscoveryFlowData,
    DisplayControlFlowData,
    SendClaimsFlowData,
]


# =============================================================================
# Nodes
# =============================================================================


@dataclass
class FlowNodeContext:
    """Point-in-time snapshot captured when a node is created."""

    timestamp: datetime = EPOCH
    sequence_number: int = 0
    log_id: str = ""
    event_type: str = ""
    statebag_snapshot: Dict[str, str] = field(default_factory=dict)
    claims_snapshot: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return _to_plain(self)


@dataclass
class FlowNodeChild:
    """A child payload tree produced by an interpreter, not yet a node."""

    data: ChildFlowData
    children: List["FlowNodeChild"] = field(default_factory=list)


@dataclass
class FlowNode:
    """One node of the execution tree.

    Attributes:
        id: Stable identifier (e.g. "step-SignUpOrSignIn-3", "tp-AAD-Read").
        name: Human-readable name.
        type: Node type discriminator.
        triggered_at_step: Orchestration step active when the node was created.
        last_step: Highest step number reached below this node.
        children: Ordered child nodes, exclusively owned.
        data: Type-specific payload.
        context: Creation-time context snapshot.
    """

    id: str
    name: str
    type: FlowNodeType
    triggered_at_step: int
    last_step: int
    data: FlowNodeData
    context: FlowNodeContext = field(default_factory=FlowNodeContext)
    children: List["FlowNode"] = field(default_factory=list)

    def walk(self):
        """Yield this node and all descendants depth-first, pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        data = _to_plain(self.data)
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "triggered_at_step": self.triggered_at_step,
            "last_step": self.last_step,
            "data": data,
            "context": self.context.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }
