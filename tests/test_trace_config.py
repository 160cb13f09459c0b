"""
Tests for trace reconstruction configuration.

Environment variables override trace.yaml; invalid values fall back to the
defaults with a warning.
"""

import logging

import pytest

from journeytrace.config import trace_config
from journeytrace.config.trace_config import (
    DEFAULT_DEDUP_THRESHOLD_MS,
    DEFAULT_RETRY_THRESHOLD_MS,
    ENV_DEDUP_THRESHOLD,
    ENV_REGISTRY_FALLBACK,
    ENV_RETRY_THRESHOLD,
    get_dedup_threshold_ms,
    get_retry_threshold_ms,
    get_supported_event_instances,
    is_registry_fallback_enabled,
    reset_config,
)


class TestDefaults:
    def test_yaml_values(self):
        assert get_dedup_threshold_ms() == DEFAULT_DEDUP_THRESHOLD_MS == 1000
        assert get_retry_threshold_ms() == DEFAULT_RETRY_THRESHOLD_MS == 1000
        assert is_registry_fallback_enabled() is True

    def test_supported_events(self):
        assert get_supported_event_instances() == [
            "Event:AUTH",
            "Event:API",
            "Event:SELFASSERTED",
            "Event:ClaimsExchange",
        ]

    def test_config_is_cached(self):
        get_dedup_threshold_ms()
        cached = trace_config._cached_config
        get_retry_threshold_ms()
        assert trace_config._cached_config is cached

        reset_config()
        assert trace_config._cached_config is None

    def test_missing_yaml_uses_built_in_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setattr(trace_config, "_CONFIG_PATH", tmp_path / "missing.yaml")
        reset_config()

        assert get_dedup_threshold_ms() == DEFAULT_DEDUP_THRESHOLD_MS
        assert len(get_supported_event_instances()) == 4


class TestEnvironmentOverrides:
    def test_thresholds(self, monkeypatch):
        monkeypatch.setenv(ENV_DEDUP_THRESHOLD, "250")
        monkeypatch.setenv(ENV_RETRY_THRESHOLD, "5000")

        assert get_dedup_threshold_ms() == 250
        assert get_retry_threshold_ms() == 5000

    @pytest.mark.parametrize("value,expected", [("false", False), ("0", False), ("TRUE", True), ("on", True)])
    def test_fallback(self, monkeypatch, value, expected):
        monkeypatch.setenv(ENV_REGISTRY_FALLBACK, value)
        assert is_registry_fallback_enabled() is expected

    @pytest.mark.parametrize("value", ["soon", "-5", ""])
    def test_invalid_threshold_falls_back(self, monkeypatch, caplog, value):
        monkeypatch.setenv(ENV_DEDUP_THRESHOLD, value)

        with caplog.at_level(logging.WARNING, logger="journeytrace.config.trace_config"):
            assert get_dedup_threshold_ms() == DEFAULT_DEDUP_THRESHOLD_MS
        assert ENV_DEDUP_THRESHOLD in caplog.text


class TestYamlOverrides:
    def test_custom_file(self, monkeypatch, tmp_path):
        config = tmp_path / "trace.yaml"
        config.write_text(
            "thresholds:\n"
            "  dedup_threshold_ms: 200\n"
            "  retry_threshold_ms: oops\n"
            "registry:\n"
            "  fallback_enabled: false\n"
            "events:\n"
            "  supported_instances: ['Event:AUTH']\n"
        )
        monkeypatch.setattr(trace_config, "_CONFIG_PATH", config)
        reset_config()

        assert get_dedup_threshold_ms() == 200
        assert get_retry_threshold_ms() == DEFAULT_RETRY_THRESHOLD_MS
        assert is_registry_fallback_enabled() is False
        assert get_supported_event_instances() == ["Event:AUTH"]
