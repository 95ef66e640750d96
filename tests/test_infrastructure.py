"""Tests for settings and observability helpers."""

import pytest
from pydantic import ValidationError

from tabpilot.infrastructure.config.settings import Settings
from tabpilot.infrastructure.observability.logging import (
    MetricsCollector,
    drop_unset_run_ids,
    preview,
)


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TABPILOT_TOOL_TIMEOUT_SECONDS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.tool_timeout_seconds == 15.0
        assert settings.session_context_timeout_seconds == 10.0
        assert settings.intent_history_limit == 10

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TABPILOT_TOOL_TIMEOUT_SECONDS", "3.5")
        monkeypatch.setenv("TABPILOT_LOG_FORMAT", "console")

        settings = Settings(_env_file=None)

        assert settings.tool_timeout_seconds == 3.5
        assert settings.log_format == "console"

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, tool_timeout_seconds=0)


class TestMetricsCollector:
    """Tests for in-process metrics."""

    def test_summary(self):
        metrics = MetricsCollector()
        metrics.record_latency("tool.echo", 10.0)
        metrics.record_latency("tool.echo", 30.0)
        metrics.increment_counter("tool.timeout", tags={"tool": "echo"})

        summary = metrics.get_metrics_summary()

        assert summary["latency.tool.echo"] == {"count": 2, "avg": 20.0, "min": 10.0, "max": 30.0}
        assert summary["tool.timeout"] == 1


class TestLoggingHelpers:
    """Tests for structlog processors and formatting helpers."""

    def test_drop_unset_run_ids(self):
        event = {"event": "x", "workflow_id": None, "call_id": "tc_1"}
        assert drop_unset_run_ids(None, "info", event) == {"event": "x", "call_id": "tc_1"}

    def test_preview(self):
        assert preview(None) is None
        assert preview("short") == "short"
        assert preview("x" * 250) == "x" * 200 + "..."
