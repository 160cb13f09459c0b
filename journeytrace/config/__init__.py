# journeytrace/config package
# YAML-backed settings with environment variable overrides.

from .trace_config import (
    get_dedup_threshold_ms,
    get_retry_threshold_ms,
    get_supported_event_instances,
    is_registry_fallback_enabled,
    reset_config,
)

__all__ = [
    "get_dedup_threshold_ms",
    "get_retry_threshold_ms",
    "get_supported_event_instances",
    "is_registry_fallback_enabled",
    "reset_config",
]
