"""Redis access for URL snapshots, pending click counters and rate windows.

Key Layout
==========
::
    url:<short_code>          JSON CachedURLPayload, TTL <= URL_CACHE_TTL_SECONDS
    clicks:<short_code>       integer, clicks not yet written to PostgreSQL
    ratelimit:<limiter>:<ip>  sorted set, score = request time in ns

Every Redis failure (connection, timeout, protocol) is re-raised as
``CacheDegradedError``. Callers decide how to degrade.
"""

import datetime
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import redis.asyncio as redis
from pydantic import ValidationError as PayloadError
from redis.exceptions import RedisError, ResponseError, WatchError

from shorturl.config import Settings
from shorturl.exceptions import CacheDegradedError
from shorturl.models import URL, as_aware, utcnow
from shorturl.schemas import CachedURLPayload

__all__ = ["RedisCacheRepository"]

logger = logging.getLogger(__name__)

GET_AND_CLEAR_MAX_RETRIES = 50


@contextmanager
def _degrade_on_error(operation: str) -> Iterator[None]:
    try:
        yield
    except (RedisError, TimeoutError, ConnectionError) as exc:
        raise CacheDegradedError(operation, exc) from exc


def _parse_counter(key: str, value: str | bytes | None) -> int:
    if not value:
        return 0
    try:
        return int(value)
    except ValueError as exc:
        logger.error("Counter %s holds a non-integer value %r", key, value)
        raise CacheDegradedError("parse_counter", exc) from exc


class RedisCacheRepository:
    """Fast store adapter over a shared ``redis.asyncio`` client."""

    def __init__(self, client: redis.Redis, settings: Settings):
        self._client = client
        self._url_prefix = settings.URL_CACHE_KEY_PREFIX
        self._click_prefix = settings.CLICK_COUNTER_KEY_PREFIX
        self._rate_prefix = settings.RATE_LIMIT_KEY_PREFIX
        self._url_ttl_seconds = settings.URL_CACHE_TTL_SECONDS

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def url_key(self, short_code: str) -> str:
        return f"{self._url_prefix}:{short_code}"

    def click_key(self, short_code: str) -> str:
        return f"{self._click_prefix}:{short_code}"

    def rate_key(self, identity: str) -> str:
        return f"{self._rate_prefix}:{identity}"

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        with _degrade_on_error("get"):
            return await self._client.get(key)

    async def set_with_ttl(self, key: str, value: str, ttl: datetime.timedelta) -> None:
        milliseconds = max(int(ttl.total_seconds() * 1000), 1)
        with _degrade_on_error("set"):
            await self._client.set(key, value, px=milliseconds)

    async def delete(self, key: str) -> None:
        with _degrade_on_error("delete"):
            await self._client.delete(key)

    async def incr_by(self, key: str, amount: int = 1) -> int:
        with _degrade_on_error("incrby"):
            return await self._client.incrby(key, amount)

    async def get_and_clear(self, key: str) -> int:
        """Atomically read an integer counter and delete it.

        Uses GETDEL. Servers older than Redis 6.2 reject the command, in which
        case the read and delete run inside an optimistic WATCH/MULTI loop.
        """
        try:
            value = await self._client.getdel(key)
        except ResponseError as exc:
            if "unknown command" not in str(exc).lower():
                raise CacheDegradedError("getdel", exc) from exc
            logger.debug("GETDEL unsupported, using WATCH/MULTI for %s", key)
            value = await self._get_and_clear_optimistic(key)
        except (RedisError, TimeoutError, ConnectionError) as exc:
            raise CacheDegradedError("getdel", exc) from exc
        return _parse_counter(key, value)

    async def scan_keys(self, prefix: str) -> list[str]:
        with _degrade_on_error("scan"):
            return [key async for key in self._client.scan_iter(match=f"{prefix}:*", count=500)]

    async def ping(self) -> bool:
        with _degrade_on_error("ping"):
            return bool(await self._client.ping())

    async def _get_and_clear_optimistic(self, key: str) -> str | None:
        with _degrade_on_error("get_and_clear"):
            async with self._client.pipeline(transaction=True) as pipe:
                for _ in range(GET_AND_CLEAR_MAX_RETRIES):
                    try:
                        await pipe.watch(key)
                        value = await pipe.get(key)
                        pipe.multi()
                        pipe.delete(key)
                        await pipe.execute()
                        return value
                    except WatchError:
                        continue
        raise CacheDegradedError("get_and_clear", WatchError(f"{key} kept changing"))

    # ------------------------------------------------------------------
    # URL snapshots
    # ------------------------------------------------------------------

    async def get_snapshot(self, short_code: str) -> CachedURLPayload | None:
        raw = await self.get(self.url_key(short_code))
        if raw is None:
            return None
        try:
            return CachedURLPayload.model_validate_json(raw)
        except PayloadError:
            logger.error("Cache deserialization error for %s, treating as miss", short_code)
            return None

    async def set_snapshot(self, url: URL, now: datetime.datetime | None = None) -> bool:
        """Cache a URL row with TTL ``min(ceiling, time left before expiry)``.

        Returns:
            bool: False when the row has no lifetime left and was not cached
        """
        ttl = datetime.timedelta(seconds=self._url_ttl_seconds)
        if url.expires_at is not None:
            remaining = as_aware(url.expires_at) - (now or utcnow())
            if remaining <= datetime.timedelta():
                return False
            ttl = min(ttl, remaining)

        payload = CachedURLPayload.model_validate(url)
        await self.set_with_ttl(self.url_key(payload.short_code), payload.model_dump_json(), ttl)
        return True

    async def delete_snapshot(self, short_code: str) -> None:
        await self.delete(self.url_key(short_code))

    # ------------------------------------------------------------------
    # Pending click counters
    # ------------------------------------------------------------------

    async def increment_clicks(self, short_code: str, amount: int = 1) -> int:
        return await self.incr_by(self.click_key(short_code), amount)

    async def get_pending_clicks(self, short_code: str) -> int:
        key = self.click_key(short_code)
        return _parse_counter(key, await self.get(key))

    async def drain_clicks(self, short_code: str) -> int:
        return await self.get_and_clear(self.click_key(short_code))

    async def tracked_click_codes(self) -> list[str]:
        start = len(self._click_prefix) + 1
        return [key[start:] for key in await self.scan_keys(self._click_prefix)]

    # ------------------------------------------------------------------
    # Sliding rate-limit windows
    # ------------------------------------------------------------------

    async def prune_and_count_window(self, identity: str, window_start_ns: int) -> int:
        """Drop entries strictly older than ``window_start_ns`` and count the rest."""
        key = self.rate_key(identity)
        with _degrade_on_error("ratelimit_count"):
            pipe = self._client.pipeline(transaction=True)
            pipe.zremrangebyscore(key, "-inf", f"({window_start_ns}")
            pipe.zcard(key)
            _, count = await pipe.execute()
        return int(count)

    async def record_in_window(self, identity: str, now_ns: int, window: datetime.timedelta) -> None:
        key = self.rate_key(identity)
        # Members must be unique even when two requests share a timestamp.
        member = f"{now_ns}-{uuid.uuid4().hex[:8]}"
        with _degrade_on_error("ratelimit_record"):
            pipe = self._client.pipeline(transaction=True)
            pipe.zadd(key, {member: now_ns})
            pipe.pexpire(key, max(int(window.total_seconds() * 1000), 1))
            await pipe.execute()
