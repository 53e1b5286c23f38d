"""Unit tests for settings and logging setup."""
import json
import logging
import sys

import pytest
from pydantic import ValidationError

from pod_visualizer.log import JsonFormatter, configure_logging
from pod_visualizer.settings import VisualizerSettings


@pytest.mark.unit
class TestVisualizerSettings:
    """Test VisualizerSettings defaults and env overrides."""

    def test_defaults(self):
        settings = VisualizerSettings()
        assert settings.kubeconfig is None
        assert settings.port == 8080
        assert settings.fallback_interval == 10.0
        assert settings.watch_retry_delay == 5.0
        assert settings.watch_restart_delay == 1.0
        assert settings.readiness_timeout == 5.0
        assert settings.queue_size == 256
        assert settings.json_logs is False
        assert settings.log_level == "INFO"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PV_PORT", "9090")
        monkeypatch.setenv("PV_FALLBACK_INTERVAL", "2.5")
        monkeypatch.setenv("PV_JSON_LOGS", "true")
        monkeypatch.setenv("PV_LOG_LEVEL", "debug")
        monkeypatch.setenv("PV_KUBECONFIG", "/etc/kube/config")
        settings = VisualizerSettings()
        assert settings.port == 9090
        assert settings.fallback_interval == 2.5
        assert settings.json_logs is True
        assert settings.log_level == "DEBUG"
        assert settings.kubeconfig == "/etc/kube/config"

    def test_blank_kubeconfig_means_default(self, monkeypatch):
        monkeypatch.setenv("PV_KUBECONFIG", "  ")
        assert VisualizerSettings().kubeconfig is None

    @pytest.mark.parametrize("field", [
        "fallback_interval",
        "watch_retry_delay",
        "readiness_timeout",
        "queue_size",
        "subscriber_buffer",
    ])
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValidationError):
            VisualizerSettings(**{field: 0})

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValidationError):
            VisualizerSettings(log_level="LOUD")


@pytest.mark.unit
class TestLogging:
    """Test JsonFormatter and configure_logging."""

    def test_json_formatter(self):
        record = logging.LogRecord("pod_visualizer.hub", logging.WARNING, __file__, 1, "dropped %s", ("ws-1",), None)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "pod_visualizer.hub"
        assert payload["message"] == "dropped ws-1"
        assert "exc" not in payload

    def test_json_formatter_with_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        payload = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in payload["exc"]

    def test_configure_logging_replaces_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging("DEBUG", json_logs=True)
            configure_logging("DEBUG", json_logs=True)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("urllib3").level == logging.WARNING
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
