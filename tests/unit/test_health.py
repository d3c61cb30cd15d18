"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock

from exoscale_iam_operator.health import create_combined_wsgi_app, mark_not_ready, mark_ready


def environ_for(path: str) -> dict:
    return {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "QUERY_STRING": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "wsgi.url_scheme": "http",
    }


def call(path: str):
    start_response = MagicMock()
    body = b"".join(create_combined_wsgi_app()(environ_for(path), start_response))
    return start_response.call_args[0][0], body


class TestCombinedApp:
    """Test cases for the combined metrics and health app."""

    def teardown_method(self):
        mark_not_ready()

    def test_healthz(self):
        status, body = call("/healthz")
        assert status.startswith("200")
        assert b'"status":"ok"' in body

    def test_readyz_before_startup(self):
        mark_not_ready()
        status, body = call("/readyz")
        assert status.startswith("503")
        assert b'"status":"starting"' in body

    def test_readyz_after_startup(self):
        mark_ready()
        status, body = call("/readyz")
        assert status.startswith("200")
        assert b'"status":"ready"' in body

    def test_metrics(self):
        status, body = call("/metrics")
        assert status.startswith("200")
        assert b"exoscale_iam_operator_reconcile" in body
