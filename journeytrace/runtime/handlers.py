"""
handlers.py - Fully qualified identity-engine handler names.

Handler naming convention:
    Web.TPEngine.StateMachineHandlers.*  core state machine operations
    Web.TPEngine.SSO.*                   single sign-on handlers
    Web.TPEngine.Api.*                   API/UI handlers
    Web.TPEngine.OrchestrationManager    the orchestrator itself

Usage:
    from journeytrace.runtime import handlers

    if handlers.is_claims_transformation_handler(name):
        ...
"""

from __future__ import annotations

_SM = "Web.TPEngine.StateMachineHandlers."

# =============================================================================
# Orchestration
# =============================================================================

ORCHESTRATION_MANAGER = "Web.TPEngine.OrchestrationManager"
SHOULD_STEP_BE_INVOKED = _SM + "ShouldOrchestrationStepBeInvokedHandler"

# =============================================================================
# Claims exchange protocol (predicates)
# =============================================================================

CLAIMS_EXCHANGE_SERVICE_CALL = _SM + "IsClaimsExchangeProtocolAServiceCallHandler"
CLAIMS_EXCHANGE_REDIRECTION = _SM + "IsClaimsExchangeProtocolARedirectionHandler"
CLAIMS_EXCHANGE_API = _SM + "IsClaimsExchangeProtocolAnApiHandler"
CLAIMS_EXCHANGE_COMPLETE = _SM + "IsClaimsExchangeComplete"

# =============================================================================
# Claims exchange actions
# =============================================================================

CLAIMS_EXCHANGE_ACTION = _SM + "ClaimsExchangeActionHandler"
CLAIMS_EXCHANGE_REDIRECT = _SM + "ClaimsExchangeRedirectHandler"
CLAIMS_EXCHANGE_SUBMIT = _SM + "ClaimsExchangeSubmitHandler"
CLAIMS_EXCHANGE_SELECT = _SM + "ClaimsExchangeSelectHandler"

# =============================================================================
# Claims transformations
# =============================================================================

INPUT_CLAIMS_TRANSFORMATION = _SM + "InputClaimsTransformationHandler"
OUTPUT_CLAIMS_TRANSFORMATION = _SM + "OutputClaimsTransformationHandler"
PERSISTED_CLAIMS_TRANSFORMATION = _SM + "PersistedClaimsTransformationHandler"
CLIENT_INPUT_CLAIMS_TRANSFORMATION = _SM + "ClientInputClaimsTransformationHandler"
CLAIMS_TRANSFORMATION_ACTION = _SM + "ClaimsTransformationActionHandler"

# =============================================================================
# Home realm discovery
# =============================================================================

HOME_REALM_DISCOVERY = _SM + "HomeRealmDiscoveryHandler"
HOME_REALM_DISCOVERY_ACTION = _SM + "HomeRealmDiscoveryActionHandler"

# =============================================================================
# Self-asserted pages and UI
# =============================================================================

SELF_ASSERTED_VALIDATION = _SM + "SelfAssertedMessageValidationHandler"
SELF_ASSERTED_ACTION = _SM + "SelfAssertedAttributeProviderActionHandler"
SELF_ASSERTED_REDIRECT = _SM + "SelfAssertedAttributeProviderRedirectHandler"
SIGNIN_SIGNUP_API_LOAD = _SM + "SigninSignUpApiLoadHandler"
CONVERT_TO_ATTRIBUTE_FIELD = _SM + "ConvertToAttributeFieldHandler"
DISPLAY_CONTROL_ACTION_REQUEST = _SM + "IsDisplayControlActionRequestHandler"
DISPLAY_CONTROL_ACTION_RESPONSE = _SM + "SendDisplayControlActionResponseHandler"
CLAIM_VERIFICATION_REQUEST = _SM + "IsClaimVerificationRequestHandler"
API_UI_MANAGER = "Web.TPEngine.Api.ApiUIManager"
VALIDATE_API_RESPONSE = _SM + "ValidateApiResponseHandler"

# =============================================================================
# Journey control
# =============================================================================

ENQUEUE_NEW_JOURNEY = _SM + "EnqueueNewJourneyHandler"
SUBJOURNEY_DISPATCH = _SM + "SubJourneyDispatchActionHandler"
SUBJOURNEY_TRANSFER = _SM + "SubJourneyTransferActionHandler"
SUBJOURNEY_EXIT = _SM + "SubJourneyExitActionHandler"
JOURNEY_RESTART = _SM + "JourneyRestartHandler"
SEND_CLAIMS = _SM + "SendClaimsHandler"
SEND_CLAIMS_ACTION = _SM + "SendClaimsActionHandler"
SEND_RP_RESPONSE = _SM + "SendRelyingPartyResponseHandler"
SEND_RESPONSE = _SM + "SendResponseHandler"
PRESENTATION_TOKEN = _SM + "PresentationTokenGenerationHandler"

# =============================================================================
# Validation and errors
# =============================================================================

INITIATING_MESSAGE_VALIDATION = _SM + "InitiatingMessageValidationHandler"
SEND_ERROR = _SM + "SendErrorHandler"
CSRF_VALIDATION = _SM + "CrossSiteRequestForgeryValidationHandler"

# =============================================================================
# SSO
# =============================================================================

SSO_RESET = "Web.TPEngine.SSO.ResetSSOSessionHandler"
SSO_PARTICIPANT = "Web.TPEngine.SSO.IsSSOSessionParticipantHandler"
SSO_SESSION = "Web.TPEngine.SSO.SSOSessionHandler"
SSO_ACTIVATE = "Web.TPEngine.SSO.ActivateSSOSessionHandler"

# =============================================================================
# Handler families
# =============================================================================

CLAIMS_TRANSFORMATION_HANDLERS = (
    INPUT_CLAIMS_TRANSFORMATION,
    OUTPUT_CLAIMS_TRANSFORMATION,
    PERSISTED_CLAIMS_TRANSFORMATION,
    CLIENT_INPUT_CLAIMS_TRANSFORMATION,
    CLAIMS_TRANSFORMATION_ACTION,
)

CLAIMS_EXCHANGE_PROTOCOL_HANDLERS = (
    CLAIMS_EXCHANGE_SERVICE_CALL,
    CLAIMS_EXCHANGE_REDIRECTION,
    CLAIMS_EXCHANGE_API,
)

CLAIMS_EXCHANGE_HANDLERS = (
    CLAIMS_EXCHANGE_ACTION,
    CLAIMS_EXCHANGE_REDIRECT,
    CLAIMS_EXCHANGE_SUBMIT,
    CLAIMS_EXCHANGE_SELECT,
)

HRD_HANDLERS = (HOME_REALM_DISCOVERY, HOME_REALM_DISCOVERY_ACTION)

DISPLAY_CONTROL_HANDLERS = (DISPLAY_CONTROL_ACTION_REQUEST, DISPLAY_CONTROL_ACTION_RESPONSE)

SUBJOURNEY_HANDLERS = (
    ENQUEUE_NEW_JOURNEY,
    SUBJOURNEY_DISPATCH,
    SUBJOURNEY_TRANSFER,
    SUBJOURNEY_EXIT,
)

SSO_HANDLERS = (SSO_RESET, SSO_PARTICIPANT, SSO_SESSION, SSO_ACTIVATE)

STEP_COMPLETION_HANDLERS = (SEND_CLAIMS, SEND_CLAIMS_ACTION, SEND_RP_RESPONSE, SEND_RESPONSE)

ERROR_HANDLERS = (INITIATING_MESSAGE_VALIDATION, SEND_ERROR)


def short_name(handler_name: str) -> str:
    """Last dotted segment of a handler name."""
    return handler_name.rsplit(".", 1)[-1]


def is_claims_transformation_handler(handler_name: str) -> bool:
    return handler_name in CLAIMS_TRANSFORMATION_HANDLERS


def is_claims_exchange_handler(handler_name: str) -> bool:
    return handler_name in CLAIMS_EXCHANGE_HANDLERS


def is_claims_exchange_protocol_handler(handler_name: str) -> bool:
    return handler_name in CLAIMS_EXCHANGE_PROTOCOL_HANDLERS


def is_step_completion_handler(handler_name: str) -> bool:
    return handler_name in STEP_COMPLETION_HANDLERS
