"""Sliding window rate limiting backed by Redis sorted sets.

Each (limiter, caller identity) pair owns a sorted set of request timestamps
in nanoseconds. A check prunes entries older than the window and counts what
is left in one MULTI/EXEC pipeline, then records the current request only if
it is admitted.

Decision Flow
=============
::
    now, window_start = now - window
         │
         ▼
    ZREMRANGEBYSCORE (-inf, window_start) + ZCARD ──(Redis down)──▶ allow (fail-open)
         │ count
         ▼
    count >= limit ? ── yes ──▶ reject, remaining=0, Retry-After=window
         │ no
         ▼
    ZADD now + PEXPIRE window ──(Redis down)──▶ still allow, logged
         │
         ▼
    allow, remaining = limit - count - 1
"""

import datetime
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from shorturl.cache_repository import RedisCacheRepository
from shorturl.enums import RateLimitOutcome
from shorturl.exceptions import CacheDegradedError
from shorturl.metrics import CACHE_DEGRADED_TOTAL, RATE_LIMIT_DECISIONS_TOTAL

__all__ = ["RateLimitDecision", "SlidingWindowRateLimiter"]

logger = logging.getLogger(__name__)

NANOSECONDS_PER_SECOND = 1_000_000_000


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None
    degraded: bool = False

    def headers(self) -> dict[str, str]:
        """Response headers describing this decision (none when degraded)."""
        if self.degraded:
            return {}
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class SlidingWindowRateLimiter:
    """Admit at most ``limit`` requests per identity in any trailing window."""

    def __init__(
        self,
        cache: RedisCacheRepository,
        limit: int,
        window_seconds: float,
        name: str = "default",
        clock_ns: Callable[[], int] = time.time_ns,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._cache = cache
        self._limit = limit
        self._window = datetime.timedelta(seconds=window_seconds)
        self._window_ns = int(window_seconds * NANOSECONDS_PER_SECOND)
        self._name = name
        self._clock_ns = clock_ns

    @property
    def limit(self) -> int:
        return self._limit

    async def check(self, identity: str) -> RateLimitDecision:
        now_ns = self._clock_ns()
        window_start_ns = now_ns - self._window_ns
        reset_at = (now_ns + self._window_ns) // NANOSECONDS_PER_SECOND
        # Each limiter keeps its own window per caller.
        window_key = f"{self._name}:{identity}"

        try:
            count = await self._cache.prune_and_count_window(window_key, window_start_ns)
        except CacheDegradedError as exc:
            logger.error("rate_limit redis error (precheck): identity=%s err=%s", identity, exc)
            return self._fail_open(reset_at)

        if count >= self._limit:
            RATE_LIMIT_DECISIONS_TOTAL.labels(limiter=self._name, outcome=RateLimitOutcome.REJECTED).inc()
            logger.info("rate limit exceeded: limiter=%s identity=%s count=%d", self._name, identity, count)
            return RateLimitDecision(
                allowed=False,
                limit=self._limit,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=math.ceil(self._window.total_seconds()),
            )

        try:
            await self._cache.record_in_window(window_key, now_ns, self._window)
        except CacheDegradedError as exc:
            CACHE_DEGRADED_TOTAL.labels(operation="ratelimit_record").inc()
            logger.error("rate_limit redis error (record): identity=%s err=%s", identity, exc)

        RATE_LIMIT_DECISIONS_TOTAL.labels(limiter=self._name, outcome=RateLimitOutcome.ALLOWED).inc()
        return RateLimitDecision(
            allowed=True,
            limit=self._limit,
            remaining=max(self._limit - count - 1, 0),
            reset_at=reset_at,
        )

    def _fail_open(self, reset_at: int) -> RateLimitDecision:
        CACHE_DEGRADED_TOTAL.labels(operation="ratelimit_count").inc()
        RATE_LIMIT_DECISIONS_TOTAL.labels(limiter=self._name, outcome=RateLimitOutcome.FAIL_OPEN).inc()
        return RateLimitDecision(
            allowed=True,
            limit=self._limit,
            remaining=self._limit,
            reset_at=reset_at,
            degraded=True,
        )
