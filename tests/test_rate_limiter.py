"""Tests for the per-user chat rate limiter."""

import pytest
from fastapi import HTTPException

from app.core.rate_limiter import RateLimiter


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_burst_then_limited():
    limiter = RateLimiter(requests_per_minute=60, burst_size=2, clock=_Clock())

    assert limiter.check_limit("chat:a")
    assert limiter.check_limit("chat:a")
    with pytest.raises(HTTPException) as exc_info:
        limiter.check_limit("chat:a")

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers["Retry-After"] == "2"


def test_keys_are_independent():
    limiter = RateLimiter(requests_per_minute=60, burst_size=1, clock=_Clock())
    limiter.check_limit("chat:a")
    assert limiter.check_limit("chat:b")


def test_refills_over_time():
    clock = _Clock()
    limiter = RateLimiter(requests_per_minute=60, burst_size=1, clock=clock)
    limiter.check_limit("chat:a")

    clock.now += 1.0

    assert limiter.check_limit("chat:a")
    assert limiter.get_stats("chat:a")["total_requests"] == 2


def test_reset():
    limiter = RateLimiter(requests_per_minute=60, burst_size=1, clock=_Clock())
    limiter.check_limit("chat:a")
    limiter.reset("chat:a")
    assert limiter.check_limit("chat:a")
