"""Simple in-memory rate limiter for the chat endpoints."""

import threading
import time
from typing import Any

from fastapi import HTTPException

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket rate limiter keyed per user.

    Buckets are created on first use and never shared between keys, so one
    user's chat traffic cannot throttle another's.
    """

    def __init__(self, requests_per_minute: int = 10, burst_size: int = 15, clock=time.monotonic):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Sustained rate limit
            burst_size: Maximum burst size
            clock: Time source in seconds
        """
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.refill_rate = requests_per_minute / 60.0  # tokens per second
        self._clock = clock
        self._lock = threading.Lock()

        # key -> (tokens, last_refill_time)
        self._buckets: dict[str, tuple[float, float]] = {}
        self._request_counts: dict[str, int] = {}

    def _refill_bucket(self, key: str) -> tuple[float, float]:
        now = self._clock()
        tokens, last_refill = self._buckets.get(key, (float(self.burst_size), now))
        tokens = min(self.burst_size, tokens + (now - last_refill) * self.refill_rate)
        self._buckets[key] = (tokens, now)
        return tokens, now

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Consume tokens for one request.

        Returns:
            True if allowed

        Raises:
            HTTPException: 429 if rate limited
        """
        with self._lock:
            tokens, now = self._refill_bucket(key)
            if tokens >= cost:
                self._buckets[key] = (tokens - cost, now)
                self._request_counts[key] = self._request_counts.get(key, 0) + 1
                return True

        retry_after = int((cost - tokens) / self.refill_rate) + 1
        logger.warning(
            f"Rate limit exceeded for key: {key}, "
            f"tokens: {tokens:.2f}/{self.burst_size}, "
            f"retry after: {retry_after}s"
        )
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )

    def get_stats(self, key: str) -> dict[str, Any]:
        with self._lock:
            tokens, _ = self._refill_bucket(key)
        return {
            "tokens_remaining": int(tokens),
            "burst_size": self.burst_size,
            "requests_per_minute": self.requests_per_minute,
            "total_requests": self._request_counts.get(key, 0),
        }

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)
            self._request_counts.pop(key, None)
        logger.info(f"Rate limit reset for key: {key}")


def _build_chat_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        requests_per_minute=settings.CHAT_RATE_LIMIT_PER_MINUTE,
        burst_size=settings.CHAT_RATE_LIMIT_BURST,
    )


chat_rate_limiter = _build_chat_rate_limiter()


def check_chat_rate_limit(user_id: str) -> None:
    """
    Check rate limit for the chat endpoints.

    Raises:
        HTTPException: 429 if rate limited
    """
    chat_rate_limiter.check_limit(f"chat:{user_id}")
