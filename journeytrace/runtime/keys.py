"""
keys.py - Statebag and recorder-record key names plus small parsing helpers.

Usage:
    from journeytrace.runtime.keys import StatebagKey, RecorderRecordKey
    from journeytrace.runtime.keys import extract_tp_from_ctp, journey_name_from_policy_id

    tp = extract_tp_from_ctp("SelfAsserted-LocalAccountSignin-Email:1")
    # -> "SelfAsserted-LocalAccountSignin-Email"
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class StatebagKey(str, Enum):
    """Statebag entries written by the identity engine."""

    CTP = "CTP"  # current technical profile, "TpId:step"
    SE = "SE"
    ORCH_CS = "ORCH_CS"  # current orchestration step
    ORCH_IDX = "ORCH_IDX"
    MACHSTATE = "MACHSTATE"
    JC = "JC"
    RA = "RA"
    RPP = "RPP"
    RPIPP = "RPIPP"
    OTID = "OTID"
    APPMV = "APPMV"
    CT = "CT"
    CC = "CC"
    CCM = "CCM"
    IC = "IC"
    EID = "EID"  # content definition
    CMESSAGE = "CMESSAGE"
    IMESSAGE = "IMESSAGE"
    CNLM = "CNLM"
    TAGE = "TAGE"  # selected claims exchange
    PROT = "PROT"  # backend protocol trace
    COMPLEX_CLAIMS = "Complex-CLMS"
    COMPLEX_API_RESULT = "Complex-API_RESULT"
    COMPLEX_ITEMS = "ComplexItems"
    VALIDATION_REQUEST = "ValidationRequest"
    VALIDATION_RESPONSE = "ValidationResponse"
    SAA_CLAIMS = "SAA-Claims"


class RecorderRecordKey(str, Enum):
    """Keys found in HandlerResult recorder record trees."""

    INITIATING_CLAIMS_EXCHANGE = "InitiatingClaimsExchange"
    INITIATING_BACKEND_CLAIMS_EXCHANGE = "InitiatingBackendClaimsExchange"
    ENABLED_FOR_USER_JOURNEYS_TRUE = "EnabledForUserJourneysTrue"
    TECHNICAL_PROFILE_ENABLED = "TechnicalProfileEnabled"
    HOME_REALM_DISCOVERY = "HomeRealmDiscovery"
    VALIDATION = "Validation"
    VALIDATION_TECHNICAL_PROFILE = "ValidationTechnicalProfile"
    OUTPUT_CLAIMS_TRANSFORMATION = "OutputClaimsTransformation"
    CLAIMS_TRANSFORMATION = "ClaimsTransformation"
    ID = "Id"
    INPUT_CLAIM = "InputClaim"
    INPUT_PARAMETER = "InputParameter"
    RESULT = "Result"
    SUB_JOURNEY = "SubJourney"
    SUB_JOURNEY_ID = "SubJourneyId"
    JOURNEY_COMPLETED = "JourneyCompleted"
    SUB_JOURNEY_INVOKED = "SubJourneyInvoked"
    TECHNICAL_PROFILE_ID = "TechnicalProfileId"
    PROTOCOL_PROVIDER_TYPE = "ProtocolProviderType"
    SUBMITTED_BY = "SubmittedBy"
    VALIDATION_REQUEST_URL = "ValidationRequestUrl"
    VALIDATION_RESULT = "ValidationResult"
    MAPPING_PARTNER_TYPE_FOR_CLAIM = "MappingPartnerTypeForClaim"
    MAPPING_FROM_PARTNER_CLAIM_TYPE = "MappingFromPartnerClaimType"
    MAPPING_DEFAULT_VALUE_FOR_CLAIM = "MappingDefaultValueForClaim"
    DISPLAY_CONTROL_ACTION = "DisplayControlAction"
    CURRENT_STEP = "CurrentStep"
    GETTING_CLAIMS = "GettingClaims"
    SENDING_REQUEST = "SendingRequest"
    API_UI_MANAGER_INFO = "ApiUiManagerInfo"
    PROTOCOL_TYPE = "ProtocolType"
    TARGET_ENTITY = "TargetEntity"
    ENABLED_RULE = "EnabledRule"
    ENABLED_RESULT = "EnabledResult"
    TECHNICAL_PROFILE = "TechnicalProfile"
    EXCEPTION = "Exception"


# Headers event instances whose logs are reconstructed.
EVENT_AUTH = "Event:AUTH"
EVENT_API = "Event:API"
EVENT_SELFASSERTED = "Event:SELFASSERTED"
EVENT_CLAIMS_EXCHANGE = "Event:ClaimsExchange"

SUPPORTED_EVENT_INSTANCES = (
    EVENT_AUTH,
    EVENT_API,
    EVENT_SELFASSERTED,
    EVENT_CLAIMS_EXCHANGE,
)

# Keys that must never be copied into accumulator maps.
DANGEROUS_KEYS = frozenset({"__proto__", "constructor", "prototype"})

_POLICY_PREFIXES = ("B2C_1A_", "DEV_", "PROD_", "TEST_", "GlobalApp_")
_LOCALE_SUFFIX = re.compile(r"_[A-Z]{2}$")


def extract_tp_from_ctp(ctp_value: Optional[str]) -> Optional[str]:
    """Technical profile id from a CTP value ("TpId:step").

    Returns the text before the last colon, the whole value when it has no
    colon, or None for an empty value.
    """
    if not ctp_value:
        return None
    head, sep, _ = ctp_value.rpartition(":")
    if not sep:
        return ctp_value
    return head or None


def extract_step_from_ctp(ctp_value: Optional[str]) -> Optional[int]:
    """Step number after the last colon of a CTP value, if numeric."""
    if not ctp_value or ":" not in ctp_value:
        return None
    tail = ctp_value.rpartition(":")[2].strip()
    try:
        return int(tail)
    except ValueError:
        return None


def parse_orch_step(value: Optional[str]) -> int:
    """Parse an ORCH_CS value; anything non-numeric counts as 0."""
    if value is None:
        return 0
    match = re.match(r"\s*(-?\d+)", str(value))
    return int(match.group(1)) if match else 0


def journey_name_from_policy_id(policy_id: str) -> str:
    """Friendly journey name from a policy id.

    B2C_1A_DEV_SignUpOrSignIn_DE -> SignUpOrSignIn
    """
    name = policy_id or ""
    stripped = True
    while stripped:
        stripped = False
        for prefix in _POLICY_PREFIXES:
            if name.lower().startswith(prefix.lower()):
                name = name[len(prefix):]
                stripped = True
    name = _LOCALE_SUFFIX.sub("", name)
    return name or policy_id


def event_type_from_instance(event_instance: str) -> str:
    """Short event type for a Headers EventInstance."""
    if event_instance == EVENT_AUTH:
        return "AUTH"
    if event_instance == EVENT_SELFASSERTED:
        return "SELFASSERTED"
    if event_instance == EVENT_CLAIMS_EXCHANGE:
        return "ClaimsExchange"
    return "API"
