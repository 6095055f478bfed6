"""Tests for the failed-attempt limiter."""

from __future__ import annotations

from unittest.mock import patch

from langcms.services.rate_limit_service import FailureRateLimiter


def test_limits_after_max_failures() -> None:
    limiter = FailureRateLimiter(max_failures=3, window_seconds=60)
    with patch("langcms.services.rate_limit_service.time.monotonic", return_value=1000.0):
        for _ in range(2):
            limiter.record_failure("ip")
        assert limiter.retry_after("ip") == 0
        limiter.record_failure("ip")
        assert limiter.retry_after("ip") == 61


def test_window_slides() -> None:
    limiter = FailureRateLimiter(max_failures=2, window_seconds=60)
    with patch("langcms.services.rate_limit_service.time.monotonic", return_value=1000.0):
        limiter.record_failure("ip")
        limiter.record_failure("ip")
    with patch("langcms.services.rate_limit_service.time.monotonic", return_value=1061.0):
        assert limiter.retry_after("ip") == 0


def test_keys_are_independent_and_reset() -> None:
    limiter = FailureRateLimiter(max_failures=1, window_seconds=60)
    limiter.record_failure("a")
    assert limiter.retry_after("a") > 0
    assert limiter.retry_after("b") == 0
    limiter.reset("a")
    assert limiter.retry_after("a") == 0
