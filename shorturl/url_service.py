"""URL Shortener Service Layer - cache-aside create, resolve and stats.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                    Service Layer                            │
    │  ┌─────────────────┐  ┌─────────────────┐  ┌──────────────┐ │
    │  │   URL Service   │  │ Click Aggregator │  │  Short Code  │ │
    │  │                 │  │                 │  │              │ │
    │  │ • Create URLs   │  │ • INCR pending  │  │ • SHA-256    │ │
    │  │ • Resolve codes │  │ • GETDEL drain  │  │ • Base62     │ │
    │  │ • Stats         │  │ • Restore       │  │ • Expiry     │ │
    │  └─────────────────┘  └─────────────────┘  └──────────────┘ │
    └─────────────────────────────────────────────────────────────┘
                │                    │
                ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐
    │   PostgreSQL    │  │     Redis       │
    │ (authoritative) │  │ (accelerator)   │
    └─────────────────┘  └─────────────────┘

Resolve Flow
------------
::
    ┌─────────────┐
    │  GET /:code  │
    └──────┬──────┘
           ▼
    ┌─────────────┐   degraded → treated as miss
    │ Redis GET   │
    │ url:<code>  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴──────────────┐
    │ NO                  │ YES
    ▼                     ▼
┌──────────┐        ┌──────────┐
│ SELECT   │        │ valid?   │── no ──▶ ExpiredError (no DB read)
│ by code  │        └────┬─────┘
└────┬─────┘             │ yes
     │ none → NotFound   ▼
     │ invalid → Expired ┌──────────┐
     ▼                   │ INCR     │
┌──────────┐             │ clicks   │
│ cache set│──────────▶  └────┬─────┘
└──────────┘                  ▼
                         original URL

Key Behaviours
==============
- PostgreSQL failures propagate as ``StoreError``; nothing retries inline.
- Redis failures on this path (snapshot read or write, click increment,
  pending-count read) are logged and absorbed. PostgreSQL stays the
  correctness fallback.
- Stats read PostgreSQL directly and add the pending Redis counter so
  unflushed clicks show up immediately.
"""

import datetime
import logging
import time
from collections.abc import Callable

from shorturl.cache_repository import RedisCacheRepository
from shorturl.clicks import ClickAggregator
from shorturl.config import Settings
from shorturl.enums import CacheStatus, RequestStatus
from shorturl.exceptions import (
    CacheDegradedError,
    ExpiredError,
    HashConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from shorturl.metrics import (
    CACHE_DEGRADED_TOTAL,
    CACHE_HITS_TOTAL,
    CACHE_MISSES_TOTAL,
    DATABASE_READS_TOTAL,
    DATABASE_WRITES_TOTAL,
    URL_CREATION_DURATION,
    URL_CREATION_REQUESTS_TOTAL,
    URL_LOOKUP_DURATION,
    URL_LOOKUP_REQUESTS_TOTAL,
)
from shorturl.models import URL, utcnow
from shorturl.schemas import CreateURLResponse, URLCreate, URLStatsResponse
from shorturl.shortcode import compute_content_hash, encode, parse_expires_in, validate_destination_url
from shorturl.url_repository import URLRepository

__all__ = ["URLShorteningService"]


class URLShorteningService:
    """Core service class for URL shortening operations.

    Example:
        >>> service = URLShorteningService.from_context(ctx)
        >>> created = await service.create_short_url(URLCreate(url="https://example.com"))
        >>> await service.resolve(created.short_code)
        'https://example.com'
    """

    def __init__(
        self,
        urls: URLRepository,
        cache: RedisCacheRepository,
        clicks: ClickAggregator,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self._urls = urls
        self._cache = cache
        self._clicks = clicks
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "URLShorteningService":
        """Build a service from the per-request context.

        Args:
            ctx: Request context holding the session and shared resources

        Returns:
            URLShorteningService: Service bound to this request's session
        """
        return cls(
            urls=URLRepository(ctx.database),
            cache=ctx.cache,
            clicks=ctx.clicks,
            settings=ctx.settings,
            logger=ctx.logger,
        )

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_short_url(self, request: URLCreate) -> CreateURLResponse:
        """Create (or reuse) a short code for a destination URL.

        Workflow:
        - Validate the URL and optional ``expires_in`` before touching a store
        - Look up the newest record with the same content hash and return its
          code if that record is still valid
        - Otherwise retire that record, insert a row, encode its id, write the
          code and commit; a concurrent create that committed first wins and
          its code is returned
        - Populate the Redis snapshot (best effort)

        Args:
            request: Destination URL and optional lifetime

        Returns:
            CreateURLResponse: Short code, canonical short URL and expiry

        Raises:
            ValidationError: URL is not absolute http/https or expiry is malformed
            StoreError: The database lookup or insert failed
        """
        start_time = time.perf_counter()
        try:
            validate_destination_url(request.url)
            now = self._clock()
            expires_at = None
            if request.expires_in:
                expires_at = now + parse_expires_in(request.expires_in)

            url_hash = compute_content_hash(request.url)
            existing = await self._urls.find_by_hash(url_hash)
            DATABASE_READS_TOTAL.inc()
            if existing is not None and existing.short_code and existing.is_valid(now):
                self._logger.info(f"Reusing short code {existing.short_code} for {request.url}")
                URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
                return self._to_create_response(existing)

            try:
                if existing is not None and existing.current_hash is not None:
                    await self._urls.supersede(existing)
                url = await self._urls.insert(url_hash, request.url, expires_at)
            except HashConflictError:
                # A concurrent create for the same URL committed first.
                winner = await self._urls.find_by_hash(url_hash)
                DATABASE_READS_TOTAL.inc()
                if winner is None or not winner.short_code or not winner.is_valid(now):
                    raise
                self._logger.info(f"Concurrent create won for {request.url}, reusing {winner.short_code}")
                URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
                return self._to_create_response(winner)

            await self._urls.set_code(url, encode(url.id, self._settings.SHORT_CODE_LENGTH))
            await self._urls.commit()
            DATABASE_WRITES_TOTAL.inc()

            await self._populate_cache(url)

            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            self._logger.info(f"URL created successfully: {url.short_code}")
            return self._to_create_response(url)

        except ValidationError as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"URL creation rejected: {exc}")
            raise

        except StoreError as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"URL creation error: {exc}")
            raise

        finally:
            URL_CREATION_DURATION.observe(time.perf_counter() - start_time)

    async def resolve(self, short_code: str) -> str:
        """Return the destination URL for a short code and count the click.

        An expired snapshot in Redis is trusted: the request fails with
        ``ExpiredError`` without reading PostgreSQL.

        Raises:
            NotFoundError: No record carries this code
            ExpiredError: The record is inactive or past its expiry
            StoreError: The database read failed on a cache miss
        """
        start_time = time.perf_counter()
        cache_hit = CacheStatus.MISS
        try:
            now = self._clock()
            snapshot = await self._read_snapshot(short_code)
            if snapshot is not None:
                cache_hit = CacheStatus.HIT
                CACHE_HITS_TOTAL.inc()
                if not snapshot.is_valid(now):
                    raise ExpiredError(short_code)
                await self._clicks.increment(short_code)
                URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_hit).inc()
                return snapshot.original_url

            CACHE_MISSES_TOTAL.inc()
            url = await self._urls.get_by_code(short_code)
            DATABASE_READS_TOTAL.inc()
            if not url.is_valid(now):
                raise ExpiredError(short_code)

            await self._populate_cache(url)
            await self._clicks.increment(short_code)
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_hit).inc()
            return url.original_url

        except NotFoundError:
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=cache_hit).inc()
            raise

        except ExpiredError:
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.EXPIRED, cache_hit=cache_hit).inc()
            raise

        except StoreError as exc:
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR, cache_hit=cache_hit).inc()
            self._logger.error(f"URL lookup error for {short_code}: {exc}")
            raise

        finally:
            URL_LOOKUP_DURATION.observe(time.perf_counter() - start_time)

    async def get_url_stats(self, short_code: str) -> URLStatsResponse:
        """Authoritative metadata plus clicks still waiting in Redis.

        Raises:
            NotFoundError: No record carries this code
            StoreError: The database read failed
        """
        url = await self._urls.get_by_code(short_code)
        DATABASE_READS_TOTAL.inc()

        pending = 0
        try:
            pending = await self._clicks.pending(short_code)
        except CacheDegradedError as exc:
            CACHE_DEGRADED_TOTAL.labels(operation="pending_clicks").inc()
            self._logger.warning(f"cache get pending clicks failed: short_code={short_code} err={exc}")

        return URLStatsResponse(
            short_code=url.short_code,
            original_url=url.original_url,
            click_count=url.click_count + pending,
            created_at=url.created_at,
            expires_at=url.expires_at,
            is_active=url.is_active,
        )

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    def _to_create_response(self, url: URL) -> CreateURLResponse:
        return CreateURLResponse(
            short_code=url.short_code,
            short_url=f"{self._settings.BASE_URL.rstrip('/')}/{url.short_code}",
            original_url=url.original_url,
            expires_at=url.expires_at,
        )

    async def _read_snapshot(self, short_code: str):
        try:
            return await self._cache.get_snapshot(short_code)
        except CacheDegradedError as exc:
            CACHE_DEGRADED_TOTAL.labels(operation="snapshot_get").inc()
            self._logger.warning(f"cache get url failed: short_code={short_code} err={exc}")
            return None

    async def _populate_cache(self, url: URL) -> None:
        try:
            await self._cache.set_snapshot(url, now=self._clock())
        except CacheDegradedError as exc:
            CACHE_DEGRADED_TOTAL.labels(operation="snapshot_set").inc()
            self._logger.warning(f"cache set url failed: short_code={url.short_code} err={exc}")
