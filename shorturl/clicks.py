"""Pending click counters kept in Redis.

Resolves add to a per-code Redis counter instead of writing PostgreSQL; the
click sync scheduler later drains each counter and applies the total in one
UPDATE.

Counter Lifecycle
=================
::
    resolve ──INCR──▶ clicks:<code> ──GETDEL──▶ click sync ──UPDATE──▶ urls.click_count
                          ▲                          │
                          └────────INCRBY n──────────┘  (only if the UPDATE failed)
"""

import asyncio
import logging

from shorturl.cache_repository import RedisCacheRepository
from shorturl.exceptions import CacheDegradedError
from shorturl.metrics import CACHE_DEGRADED_TOTAL, CLICK_INCREMENT_FAILURES_TOTAL, CLICK_INCREMENTS_TOTAL

__all__ = ["ClickAggregator"]

logger = logging.getLogger(__name__)


class ClickAggregator:
    """Accumulates clicks per short code and hands them out atomically."""

    def __init__(self, cache: RedisCacheRepository, increment_timeout: float = 0.2):
        self._cache = cache
        self._increment_timeout = increment_timeout

    async def increment(self, short_code: str) -> bool:
        """Add one click, giving up after ``increment_timeout`` seconds.

        Never raises. Returns False when the click could not be recorded.
        """
        try:
            await asyncio.wait_for(self._cache.increment_clicks(short_code), self._increment_timeout)
        except TimeoutError:
            CLICK_INCREMENT_FAILURES_TOTAL.inc()
            logger.warning("cache incr click timed out: short_code=%s", short_code)
            return False
        except CacheDegradedError as exc:
            CLICK_INCREMENT_FAILURES_TOTAL.inc()
            CACHE_DEGRADED_TOTAL.labels(operation="click_increment").inc()
            logger.warning("cache incr click failed: short_code=%s err=%s", short_code, exc)
            return False

        CLICK_INCREMENTS_TOTAL.inc()
        return True

    async def pending(self, short_code: str) -> int:
        return await self._cache.get_pending_clicks(short_code)

    async def drain_and_reset(self, short_code: str) -> int:
        """Read and clear the counter in one atomic step."""
        return await self._cache.drain_clicks(short_code)

    async def restore(self, short_code: str, count: int) -> None:
        """Give back a drained count whose database write failed."""
        await self._cache.increment_clicks(short_code, count)

    async def tracked_codes(self) -> list[str]:
        return await self._cache.tracked_click_codes()
