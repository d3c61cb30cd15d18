"""Tests for tracing helpers."""

from __future__ import annotations

from unittest.mock import patch

from exoscale_iam_operator import tracing


class TestTracing:
    """Test cases for tracing setup."""

    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("OTEL_TRACES_ENABLED", raising=False)
        with patch.object(tracing, "_tracer", None):
            tracing.initialize_tracing()
            assert tracing.get_tracer() is None

    def test_span_is_noop_without_tracer(self):
        with patch.object(tracing, "_tracer", None):
            with tracing.trace_span("test", kind="IAMKey") as span:
                assert span is None
                tracing.add_span_attribute("key", "value")
