"""Trace reconstruction configuration registry.

Provides centralized configuration for the timing thresholds and registry
behaviour used while rebuilding a journey trace. Environment variables take
precedence over YAML config.

Usage:
    from journeytrace.config.trace_config import (
        get_dedup_threshold_ms,
        get_retry_threshold_ms,
        is_registry_fallback_enabled,
    )

    window = get_dedup_threshold_ms()  # Returns 1000 unless overridden
    if is_registry_fallback_enabled():
        # Unknown handlers get the pass-through interpreter

Environment overrides:
    JOURNEYTRACE_DEDUP_THRESHOLD_MS   step merge window in milliseconds
    JOURNEYTRACE_RETRY_THRESHOLD_MS   orchestration retry gap in milliseconds
    JOURNEYTRACE_REGISTRY_FALLBACK    "true"/"false"
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "trace.yaml"
_cached_config: Optional[Dict[str, Any]] = None

# =============================================================================
# Timing Defaults
# =============================================================================

# Two occurrences of the same (journey, step) closer than this are one
# physical interaction observed through several log fragments.
DEFAULT_DEDUP_THRESHOLD_MS = 1000

# Consecutive OrchestrationManager results further apart than this with an
# unchanged counter are a retried interaction, not a continuation.
DEFAULT_RETRY_THRESHOLD_MS = 1000

ENV_DEDUP_THRESHOLD = "JOURNEYTRACE_DEDUP_THRESHOLD_MS"
ENV_RETRY_THRESHOLD = "JOURNEYTRACE_RETRY_THRESHOLD_MS"
ENV_REGISTRY_FALLBACK = "JOURNEYTRACE_REGISTRY_FALLBACK"


def _load_config() -> Dict[str, Any]:
    """Load trace.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or _default_config()
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if trace.yaml doesn't exist."""
    return {
        "version": "1.0",
        "thresholds": {
            "dedup_threshold_ms": DEFAULT_DEDUP_THRESHOLD_MS,
            "retry_threshold_ms": DEFAULT_RETRY_THRESHOLD_MS,
        },
        "registry": {
            "fallback_enabled": True,
        },
        "events": {
            "supported_instances": [
                "Event:AUTH",
                "Event:API",
                "Event:SELFASSERTED",
                "Event:ClaimsExchange",
            ],
        },
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _coerce_threshold(raw: Any, name: str, default: int) -> int:
    """Validate a threshold value, falling back to the default with a warning."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning(
            "Threshold '%s' has non-integer value %r. Using default %d ms.",
            name,
            raw,
            default,
        )
        return default

    if value < 0:
        logger.warning(
            "Threshold '%s' value %d is negative. Using default %d ms.",
            name,
            value,
            default,
        )
        return default

    return value


def _get_threshold(key: str, env_var: str, default: int) -> int:
    env_value = os.environ.get(env_var)
    if env_value is not None:
        return _coerce_threshold(env_value, env_var, default)

    config = _load_config()
    raw = config.get("thresholds", {}).get(key, default)
    return _coerce_threshold(raw, key, default)


def get_dedup_threshold_ms() -> int:
    """Get the step merge window in milliseconds.

    Environment variable JOURNEYTRACE_DEDUP_THRESHOLD_MS overrides config.
    """
    return _get_threshold("dedup_threshold_ms", ENV_DEDUP_THRESHOLD, DEFAULT_DEDUP_THRESHOLD_MS)


def get_retry_threshold_ms() -> int:
    """Get the orchestration retry gap in milliseconds.

    Environment variable JOURNEYTRACE_RETRY_THRESHOLD_MS overrides config.
    """
    return _get_threshold("retry_threshold_ms", ENV_RETRY_THRESHOLD, DEFAULT_RETRY_THRESHOLD_MS)


def is_registry_fallback_enabled() -> bool:
    """Check whether unknown handlers fall back to the pass-through interpreter."""
    env_value = os.environ.get(ENV_REGISTRY_FALLBACK)
    if env_value is not None:
        return env_value.strip().lower() in ("1", "true", "yes", "on")

    config = _load_config()
    return bool(config.get("registry", {}).get("fallback_enabled", True))


def get_supported_event_instances() -> List[str]:
    """Get the Headers event instances whose logs are parsed."""
    config = _load_config()
    instances = config.get("events", {}).get("supported_instances")
    if not instances:
        instances = _default_config()["events"]["supported_instances"]
    return list(instances)
