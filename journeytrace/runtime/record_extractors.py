"""
record_extractors.py - Named, pure extractors over handler results.

Every function here reads one bounded slice of a HandlerResult clip (its
statebag delta or its RecorderRecord tree) and returns typed fragments.
Nothing here touches pipeline state, so each extractor can be exercised
against literal fixtures.

Record values are either RecordObject ({"Values": [{Key, Value}]}) or plain
JSON objects; `_field` and `_values_for` read both shapes.

Usage:
    from journeytrace.runtime import record_extractors as rx

    updates = rx.statebag_from_result(handler_result)
    tp = rx.initiating_claims_exchange(handler_result.recorder_record)
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .keys import DANGEROUS_KEYS, RecorderRecordKey, StatebagKey, extract_tp_from_ctp
from .types import (
    BackendApiCall,
    ClaimMapping,
    ClaimsTransformationFlowData,
    ClaimValue,
    DisplayControlFlowData,
    FlowNodeChild,
    HandlerResultContent,
    ParameterValue,
    RecordObject,
    TechnicalProfileFlowData,
    TenantBranding,
    UiSettings,
)

logger = logging.getLogger(__name__)

_SKIPPED_STATEBAG_KEYS = (StatebagKey.COMPLEX_CLAIMS.value, StatebagKey.COMPLEX_ITEMS.value)

_PROT_REQUEST = re.compile(r"Request to (\S+)", re.IGNORECASE)
_PROT_RESPONSE = re.compile(r"Response:\s*\n?({[\s\S]*?})\s*$", re.MULTILINE)


@dataclass
class TechnicalProfileRef:
    """A technical profile named by a record, before it becomes a tree child."""

    technical_profile_id: str
    provider_type: str = "Unknown"
    protocol_type: Optional[str] = None

    def to_child(self, children: Optional[List[FlowNodeChild]] = None) -> FlowNodeChild:
        return FlowNodeChild(
            TechnicalProfileFlowData(
                technical_profile_id=self.technical_profile_id,
                provider_type=self.provider_type,
                protocol_type=self.protocol_type,
            ),
            list(children or []),
        )


# =============================================================================
# Record helpers
# =============================================================================


def _field(value: Any, key: str) -> Any:
    """Field of a record value, whichever object shape it has."""
    if isinstance(value, RecordObject):
        return value.get(key)
    if isinstance(value, Mapping):
        return value.get(key)
    return None


def _values_for(value: Any, key: str) -> List[Any]:
    """All values stored under key inside a record value."""
    if isinstance(value, RecordObject):
        return value.get_all(key)
    if isinstance(value, Mapping) and key in value:
        return [value[key]]
    return []


def _top(record: Optional[RecordObject], key: str) -> List[Any]:
    if record is None:
        return []
    return [v for v in record.get_all(key) if v]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


# =============================================================================
# Statebag and claims
# =============================================================================


def statebag_entry_value(entry: Any) -> Optional[str]:
    """Value of a statebag entry: {"v": ...} objects or flattened strings."""
    if not entry:
        return None
    if isinstance(entry, Mapping):
        if "v" not in entry or entry["v"] is None:
            return None
        return _text(entry["v"])
    if isinstance(entry, str):
        return entry
    return None


def statebag_from_result(handler_result: Optional[HandlerResultContent]) -> Dict[str, str]:
    """Orchestration-state updates carried by a handler result."""
    if handler_result is None:
        return {}
    updates: Dict[str, str] = {}
    for key, entry in handler_result.statebag.items():
        if key in _SKIPPED_STATEBAG_KEYS or key in DANGEROUS_KEYS:
            continue
        value = statebag_entry_value(entry)
        if value is not None:
            updates[key] = value
    return updates


def claims_from_result(handler_result: Optional[HandlerResultContent]) -> Dict[str, str]:
    """Claims updates from the Complex-CLMS statebag entry."""
    if handler_result is None:
        return {}
    raw = handler_result.statebag.get(StatebagKey.COMPLEX_CLAIMS.value)
    if not isinstance(raw, Mapping):
        return {}
    return {
        str(k): _text(v) or ""
        for k, v in raw.items()
        if k not in DANGEROUS_KEYS and v is not None
    }


def statebag_value(handler_result: Optional[HandlerResultContent], key: str) -> Optional[str]:
    """Single statebag value written by this handler result."""
    if handler_result is None:
        return None
    return statebag_entry_value(handler_result.statebag.get(key))


def ctp_technical_profile(handler_result: Optional[HandlerResultContent]) -> Optional[str]:
    """Technical profile named by the CTP entry of this handler result."""
    return extract_tp_from_ctp(statebag_value(handler_result, StatebagKey.CTP.value))


def target_entity(handler_result: Optional[HandlerResultContent]) -> Optional[str]:
    """Claims exchange the user selected (TAGE)."""
    return statebag_value(handler_result, StatebagKey.TAGE.value)


# =============================================================================
# Technical profiles
# =============================================================================


def _tp_ref(value: Any) -> Optional[TechnicalProfileRef]:
    tp_id = _text(_field(value, RecorderRecordKey.TECHNICAL_PROFILE_ID.value))
    if not tp_id:
        return None
    provider = _text(_field(value, RecorderRecordKey.PROTOCOL_PROVIDER_TYPE.value))
    return TechnicalProfileRef(
        technical_profile_id=tp_id,
        provider_type=provider or "Unknown",
        protocol_type=_text(_field(value, RecorderRecordKey.PROTOCOL_TYPE.value)),
    )


def initiating_claims_exchange(record: Optional[RecordObject]) -> Optional[TechnicalProfileRef]:
    """TP from a top-level InitiatingClaimsExchange entry."""
    for value in _top(record, RecorderRecordKey.INITIATING_CLAIMS_EXCHANGE.value):
        ref = _tp_ref(value)
        if ref is not None:
            return ref
    return None


def backend_claims_exchange(record: Optional[RecordObject]) -> Optional[TechnicalProfileRef]:
    """TP from GettingClaims.InitiatingBackendClaimsExchange."""
    for getting_claims in _top(record, RecorderRecordKey.GETTING_CLAIMS.value):
        for value in _values_for(getting_claims, RecorderRecordKey.INITIATING_BACKEND_CLAIMS_EXCHANGE.value):
            ref = _tp_ref(value)
            if ref is not None:
                return ref
    return None


def claims_exchange_technical_profiles(record: Optional[RecordObject]) -> List[TechnicalProfileRef]:
    """Every TP named by InitiatingClaimsExchange or a backend exchange, in record order."""
    refs: List[TechnicalProfileRef] = []
    if record is None:
        return refs
    for entry in record:
        if entry.key == RecorderRecordKey.INITIATING_CLAIMS_EXCHANGE.value:
            ref = _tp_ref(entry.value)
            if ref is not None:
                refs.append(ref)
        elif entry.key == RecorderRecordKey.GETTING_CLAIMS.value:
            for value in _values_for(entry.value, RecorderRecordKey.INITIATING_BACKEND_CLAIMS_EXCHANGE.value):
                ref = _tp_ref(value)
                if ref is not None:
                    refs.append(ref)
    return refs


def _enabled_profiles(record: Optional[RecordObject], container_key: str, honour_enabled_result: bool) -> List[str]:
    profiles: List[str] = []
    for container in _top(record, container_key):
        for value in _values_for(container, RecorderRecordKey.TECHNICAL_PROFILE_ENABLED.value):
            tp = _text(_field(value, RecorderRecordKey.TECHNICAL_PROFILE.value))
            if not tp:
                continue
            if honour_enabled_result and _field(value, RecorderRecordKey.ENABLED_RESULT.value) is False:
                continue
            if tp not in profiles:
                profiles.append(tp)
    return profiles


def enabled_technical_profiles(record: Optional[RecordObject]) -> List[str]:
    """TPs listed under EnabledForUserJourneysTrue, deduplicated."""
    return _enabled_profiles(record, RecorderRecordKey.ENABLED_FOR_USER_JOURNEYS_TRUE.value, False)


def available_hrd_options(record: Optional[RecordObject]) -> List[str]:
    """Home realm discovery options not explicitly disabled."""
    return _enabled_profiles(record, RecorderRecordKey.HOME_REALM_DISCOVERY.value, True)


def validation_technical_profiles(record: Optional[RecordObject]) -> List[str]:
    """Validation TPs run by a self-asserted submission."""
    tps: List[str] = []
    for validation in _top(record, RecorderRecordKey.VALIDATION.value):
        for vtp in _values_for(validation, RecorderRecordKey.VALIDATION_TECHNICAL_PROFILE.value):
            for tp_id in _values_for(vtp, RecorderRecordKey.TECHNICAL_PROFILE_ID.value):
                tp = _text(tp_id)
                if tp and tp not in tps:
                    tps.append(tp)
    return tps


def _claim_mapping(value: Any) -> Optional[ClaimMapping]:
    partner = _text(_field(value, "PartnerClaimType"))
    policy = _text(_field(value, "PolicyClaimType"))
    if partner and policy:
        return ClaimMapping(partner_claim_type=partner, policy_claim_type=policy)
    return None


def validation_claim_mappings(record: Optional[RecordObject]) -> List[ClaimMapping]:
    """MappingFromPartnerClaimType entries inside validation TPs."""
    mappings: List[ClaimMapping] = []
    for validation in _top(record, RecorderRecordKey.VALIDATION.value):
        for vtp in _values_for(validation, RecorderRecordKey.VALIDATION_TECHNICAL_PROFILE.value):
            for value in _values_for(vtp, RecorderRecordKey.MAPPING_FROM_PARTNER_CLAIM_TYPE.value):
                mapping = _claim_mapping(value)
                if mapping is not None:
                    mappings.append(mapping)
    return mappings


def _exception_fields(value: Any) -> Optional[Tuple[str, Optional[str]]]:
    message = _text(_field(value, "Message"))
    if not message:
        return None
    return message, _text(_field(value, "HResult"))


def validation_error(handler_result: Optional[HandlerResultContent]) -> Optional[Tuple[str, Optional[str]]]:
    """(message, h_result) of the first exception reported by a handler.

    Looked up on the HandlerResult itself, then inside Validation records,
    then as a top-level Exception record entry.
    """
    if handler_result is None:
        return None
    if handler_result.exception is not None and handler_result.exception.message:
        return handler_result.exception.message, handler_result.exception.h_result

    record = handler_result.recorder_record
    if record is None:
        return None
    for entry in record:
        if entry.key == RecorderRecordKey.VALIDATION.value:
            for value in _values_for(entry.value, RecorderRecordKey.EXCEPTION.value):
                found = _exception_fields(value)
                if found:
                    return found
        if entry.key == RecorderRecordKey.EXCEPTION.value:
            found = _exception_fields(entry.value)
            if found:
                return found
    return None


# =============================================================================
# Claims transformations
# =============================================================================


def claims_transformation(value: Any) -> Optional[ClaimsTransformationFlowData]:
    """Decode one ClaimsTransformation record (Id, InputClaim, InputParameter, Result)."""
    transformation_id = _text(_field(value, RecorderRecordKey.ID.value))
    if not transformation_id:
        return None

    data = ClaimsTransformationFlowData(transformation_id=transformation_id)
    for claim in _values_for(value, RecorderRecordKey.INPUT_CLAIM.value):
        claim_type = _text(_field(claim, "PolicyClaimType"))
        if claim_type:
            data.input_claims.append(ClaimValue(claim_type, _text(_field(claim, "Value")) or ""))
    for param in _values_for(value, RecorderRecordKey.INPUT_PARAMETER.value):
        param_id = _text(_field(param, "ParameterType")) or _text(_field(param, "Id"))
        if param_id:
            data.input_parameters.append(ParameterValue(param_id, _text(_field(param, "Value")) or ""))
    for result in _values_for(value, RecorderRecordKey.RESULT.value):
        claim_type = _text(_field(result, "PolicyClaimType"))
        if claim_type:
            data.output_claims.append(ClaimValue(claim_type, _text(_field(result, "Value")) or ""))
    return data


def output_claims_transformations(record: Optional[RecordObject]) -> List[ClaimsTransformationFlowData]:
    """Transformations executed by a claims transformation handler."""
    transformations: List[ClaimsTransformationFlowData] = []
    if record is None:
        return transformations
    for entry in record:
        if entry.key == RecorderRecordKey.OUTPUT_CLAIMS_TRANSFORMATION.value:
            for value in _values_for(entry.value, RecorderRecordKey.CLAIMS_TRANSFORMATION.value):
                ct = claims_transformation(value)
                if ct is not None:
                    transformations.append(ct)
        elif entry.key == RecorderRecordKey.GETTING_CLAIMS.value:
            for key in ("InitiatingOutputClaimsTransformation", "InitiatingInputClaimsTransformation"):
                ct_id = _text(_field(_field(entry.value, key), "TransformationId"))
                if ct_id:
                    transformations.append(ClaimsTransformationFlowData(transformation_id=ct_id))
    return transformations


# =============================================================================
# Backend API calls
# =============================================================================


def parse_prot(prot_value: Optional[str]) -> Optional[BackendApiCall]:
    """Decode a PROT trace ("AAD Request to ... Response: {...}")."""
    if not prot_value:
        return None

    call = BackendApiCall()
    request = _PROT_REQUEST.search(prot_value)
    if request:
        call.request_uri = request.group(1)

    if prot_value.startswith("AAD Request"):
        call.request_type = "AAD"
    elif "REST API" in prot_value:
        call.request_type = "REST"

    response = _PROT_RESPONSE.search(prot_value)
    if response:
        call.raw_response = response.group(1).strip()
        try:
            call.response = json.loads(call.raw_response)
        except ValueError:
            logger.debug("PROT response is not JSON, keeping raw body")

    return None if call.is_empty() else call


def backend_api_calls(
    handler_result: Optional[HandlerResultContent],
    statebag_updates: Optional[Dict[str, str]] = None,
) -> List[BackendApiCall]:
    """Backend calls from the PROT entry of a result and its statebag updates."""
    calls: List[BackendApiCall] = []
    first = parse_prot(statebag_value(handler_result, StatebagKey.PROT.value))
    if first is not None:
        calls.append(first)

    second = parse_prot((statebag_updates or {}).get(StatebagKey.PROT.value))
    if second is not None and all(c.request_uri != second.request_uri for c in calls):
        calls.append(second)
    return calls


# =============================================================================
# Display controls
# =============================================================================


def _display_control_profile(item: Any) -> Optional[FlowNodeChild]:
    tp_id = _text(_field(item, RecorderRecordKey.TECHNICAL_PROFILE_ID.value))
    if not tp_id:
        return None

    mappings = [
        m
        for m in (_claim_mapping(v) for v in _values_for(item, RecorderRecordKey.MAPPING_PARTNER_TYPE_FOR_CLAIM.value))
        if m is not None
    ]
    ct_children = [
        FlowNodeChild(ct)
        for ct in (claims_transformation(v) for v in _values_for(item, RecorderRecordKey.CLAIMS_TRANSFORMATION.value))
        if ct is not None
    ]
    data = TechnicalProfileFlowData(
        technical_profile_id=tp_id,
        provider_type="DisplayControlProvider",
        claim_mappings=mappings or None,
    )
    return FlowNodeChild(data, ct_children)


def display_control_action(record: Optional[RecordObject]) -> Optional[FlowNodeChild]:
    """DisplayControl child (with its TP children, in input order) from a response record."""
    if record is None:
        return None

    display_control_id = ""
    action = ""
    result_code: Optional[str] = None
    profiles: List[FlowNodeChild] = []

    for entry in record:
        if entry.key == RecorderRecordKey.ID.value and isinstance(entry.value, str):
            display_control_id, _, action = entry.value.partition("/")
        elif entry.key == RecorderRecordKey.RESULT.value and isinstance(entry.value, str):
            result_code = entry.value
        elif entry.key == RecorderRecordKey.DISPLAY_CONTROL_ACTION.value and isinstance(entry.value, list):
            for item in entry.value:
                child = _display_control_profile(item)
                if child is not None:
                    profiles.append(child)

    if not display_control_id:
        return None

    data = DisplayControlFlowData(
        display_control_id=display_control_id,
        action=action,
        result_code=result_code,
    )
    return FlowNodeChild(data, profiles)


# =============================================================================
# Sub-journeys and UI
# =============================================================================


_SUB_JOURNEY_KEYS = (
    RecorderRecordKey.SUB_JOURNEY.value,
    RecorderRecordKey.SUB_JOURNEY_ID.value,
    RecorderRecordKey.SUB_JOURNEY_INVOKED.value,
)


def sub_journey_id(record: Optional[RecordObject]) -> Optional[str]:
    """Sub-journey id from a string entry or an object with SubJourneyId/Id."""
    if record is None:
        return None
    for entry in record:
        if entry.key not in _SUB_JOURNEY_KEYS:
            continue
        if isinstance(entry.value, str):
            return entry.value or None
        found = _field(entry.value, RecorderRecordKey.SUB_JOURNEY_ID.value) or _field(
            entry.value, RecorderRecordKey.ID.value
        )
        return _text(found)
    return None


def _apply_page_settings(raw: Any, settings: UiSettings) -> None:
    try:
        page = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError as exc:
        logger.warning("Failed to parse page settings JSON: %s", exc)
        return
    if not isinstance(page, Mapping):
        logger.warning("Page settings are not a JSON object: %r", page)
        return

    if page.get("api"):
        settings.page_type = str(page["api"])
    if page.get("remoteResource"):
        settings.remote_resource = str(page["remoteResource"])
    if page.get("pageViewId"):
        settings.page_id = str(page["pageViewId"])
    locale = page.get("locale")
    if isinstance(locale, Mapping) and locale.get("lang"):
        settings.language = str(locale["lang"])
    if isinstance(page.get("config"), Mapping):
        settings.config = dict(page["config"])
    branding = page.get("tenantBranding")
    if isinstance(branding, Mapping):
        settings.tenant_branding = TenantBranding(
            banner_logo_url=branding.get("bannerLogoUrl"),
            background_color=branding.get("backgroundColor"),
        )


def ui_settings(record: Optional[RecordObject], statebag: Mapping[str, str]) -> Optional[UiSettings]:
    """Page configuration from EID and ApiUiManagerInfo.Settings."""
    settings = UiSettings()
    content_definition = statebag.get(StatebagKey.EID.value)
    if content_definition:
        settings.content_definition = content_definition

    for info in _top(record, RecorderRecordKey.API_UI_MANAGER_INFO.value):
        for raw in _values_for(info, "Settings"):
            _apply_page_settings(raw, settings)

    return None if settings.is_empty() else settings
