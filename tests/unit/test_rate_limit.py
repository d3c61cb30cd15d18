"""Tests for rate limiting utilities."""

from __future__ import annotations

from exoscale_iam_operator.utils.rate_limit import (
    is_rate_limit_status,
    rate_limit_exoscale,
    rate_limit_k8s,
)


class TestRateLimitDecorators:
    """Test cases for the rate limiting decorators."""

    def test_rate_limit_k8s_passes_arguments(self):
        @rate_limit_k8s
        def test_func(a, b, c=None):
            return f"{a}-{b}-{c}"

        assert test_func("x", "y", c="z") == "x-y-z"

    def test_rate_limit_exoscale_passes_arguments(self):
        @rate_limit_exoscale
        def test_func(key_id):
            return key_id

        assert test_func("EXO1") == "EXO1"

    def test_preserves_function_name(self):
        @rate_limit_exoscale
        def get_api_key():
            return None

        assert get_api_key.__name__ == "get_api_key"


class TestIsRateLimitStatus:
    """Test cases for is_rate_limit_status function."""

    def test_429(self):
        assert is_rate_limit_status(429)

    def test_503_with_message(self):
        assert is_rate_limit_status(503, "Rate limit exceeded")
        assert not is_rate_limit_status(503, "Service unavailable")

    def test_other_status(self):
        assert not is_rate_limit_status(500)
        assert not is_rate_limit_status(None)
