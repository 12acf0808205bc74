"""Dependency injection with a singleton service manager.

Shared resources (settings, logger, Redis client, rate limiters and the click
sync scheduler) live on one process-wide ``ServiceManager``. Only the
database session is created per request.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from shorturl.cache_repository import RedisCacheRepository
from shorturl.click_sync import ClickSyncScheduler
from shorturl.clicks import ClickAggregator
from shorturl.config import Settings, get_settings
from shorturl.database import get_db
from shorturl.rate_limit import SlidingWindowRateLimiter
from shorturl.redis import close_redis, get_redis
from shorturl.url_repository import url_repository_scope
from shorturl.url_service import URLShorteningService

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources."""

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        self.settings: Settings = get_settings()
        self.logger = self._setup_logger()
        self.redis: redis.Redis = await get_redis()
        self.cache = RedisCacheRepository(self.redis, self.settings)
        self.clicks = ClickAggregator(self.cache, self.settings.CLICK_INCREMENT_TIMEOUT_SECONDS)
        self.rate_limiter = SlidingWindowRateLimiter(
            self.cache,
            limit=self.settings.RATE_LIMIT_REQUESTS,
            window_seconds=self.settings.RATE_LIMIT_WINDOW_SECONDS,
            name="default",
        )
        self.strict_rate_limiter = SlidingWindowRateLimiter(
            self.cache,
            limit=self.settings.RATE_LIMIT_STRICT_REQUESTS,
            window_seconds=self.settings.RATE_LIMIT_STRICT_WINDOW_SECONDS,
            name="strict",
        )
        self.click_sync = ClickSyncScheduler(
            self.clicks,
            url_repository_scope,
            interval_seconds=self.settings.CLICK_SYNC_INTERVAL_SECONDS,
            run_timeout_seconds=self.settings.CLICK_SYNC_RUN_TIMEOUT_SECONDS,
        )
        self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Configure the package logger once."""
        logger = logging.getLogger("shorturl")
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Stop the scheduler (final click sync included), then close Redis."""
        if not self._initialized:
            return
        await self.click_sync.stop()
        await close_redis()
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and shared resource access.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        client_ip: Client IP address
    """

    database: AsyncSession
    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None

    @property
    def cache(self) -> RedisCacheRepository:
        return self.service_manager.cache

    @property
    def clicks(self) -> ClickAggregator:
        return self.service_manager.clicks

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying the request id and client address."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {"request_id": self.request_id, "client_ip": self.client_ip},
        )


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def client_identity(request: Request) -> str:
    """Rate-limit identity: the caller's network address."""
    return request.client.host if request.client else "unknown"


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        database=db,
        service_manager=manager,
        client_ip=client_identity(request),
    )


def get_url_service(ctx: RequestContext = Depends(get_request_context)) -> URLShorteningService:
    return URLShorteningService.from_context(ctx)


def get_click_sync(manager: ServiceManager = Depends(get_service_manager)) -> ClickSyncScheduler:
    return manager.click_sync


async def _apply_rate_limit(limiter: SlidingWindowRateLimiter, request: Request, response: Response) -> None:
    decision = await limiter.check(client_identity(request))
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail={"error": "rate limit exceeded", "message": "Too many requests. Please try again later."},
            headers=decision.headers(),
        )
    for name, value in decision.headers().items():
        response.headers[name] = value


async def enforce_rate_limit(
    request: Request,
    response: Response,
    manager: ServiceManager = Depends(get_service_manager),
) -> None:
    """General limiter for resolve and stats."""
    await _apply_rate_limit(manager.rate_limiter, request, response)


async def enforce_strict_rate_limit(
    request: Request,
    response: Response,
    manager: ServiceManager = Depends(get_service_manager),
) -> None:
    """Tighter limiter for short URL creation."""
    await _apply_rate_limit(manager.strict_rate_limiter, request, response)
