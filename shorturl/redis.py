"""Redis client management for the short URL service.

This module provides a singleton Redis client shared by the URL snapshot
cache, the pending click counters and the rate limiter.

Consumers
=========
::
    URL snapshots ───────┐
    pending clicks ──────┼──▶ RedisCacheRepository ──▶ shared redis.asyncio client
    rate-limit windows ──┘                              (bounded connection pool)

Key Behaviours
===============
- The client is created lazily on first access and reused process-wide.
- The connection pool is bounded by REDIS_POOL_SIZE.
- Socket timeouts are set so a stalled Redis surfaces as an error instead
  of hanging a request.
- Replies are decoded to str, so counters and JSON snapshots come back as text.

Functions:
    get_redis():  Return the shared client.
    close_redis():  Close the pool on shutdown.
"""

import redis.asyncio as redis

from shorturl.config import get_settings

__all__ = ["close_redis", "get_redis"]

settings = get_settings()

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_POOL_SIZE,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
