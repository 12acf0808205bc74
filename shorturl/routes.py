"""FastAPI route definitions for the short URL REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    GET  /health/detailed
        └─ DetailedHealthResponse (200)

    POST /api/v1/shorten                      strict rate limit
        ├─ URLCreate (request body)
        └─ CreateURLResponse (201) or 400/429/500

    GET  /api/v1/stats/:short_code            general rate limit
        └─ URLStatsResponse (200) or 404/429/500

    POST /api/v1/admin/click-sync
        └─ ClickSyncResponse (200)

    GET  /:short_code                         general rate limit
        └─ 307 Redirect or 404/410/429/500

Key Behaviours
===============
- The handlers only translate core errors to status codes; all semantics
  live in URLShorteningService.
- Internal failures are logged with detail and answered with a fixed
  ``internal_error`` body.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse

from shorturl.click_sync import ClickSyncScheduler
from shorturl.dependencies import (
    RequestContext,
    enforce_rate_limit,
    enforce_strict_rate_limit,
    get_click_sync,
    get_request_context,
    get_url_service,
)
from shorturl.enums import HealthStatus
from shorturl.exceptions import CacheDegradedError, ExpiredError, NotFoundError, StoreError, ValidationError
from shorturl.schemas import (
    ClickSyncResponse,
    CreateURLResponse,
    DetailedHealthResponse,
    HealthResponse,
    URLCreate,
    URLStatsResponse,
)
from shorturl.url_repository import URLRepository
from shorturl.url_service import URLShorteningService

__all__ = ["router"]

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"error": "not_found", "message": "Short URL not found"})


def _internal_error(message: str) -> HTTPException:
    return HTTPException(status_code=500, detail={"error": "internal_error", "message": message})


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check() -> HealthResponse:
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get("/health/detailed", response_model=DetailedHealthResponse, tags=["health"])
async def health_detailed(ctx: RequestContext = Depends(get_request_context)) -> DetailedHealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await URLRepository(ctx.database).ping()
    except StoreError as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await ctx.cache.ping()
    except CacheDegradedError as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return DetailedHealthResponse(status=status, database=db_status, cache=cache_status)


@router.post(
    "/api/v1/shorten",
    response_model=CreateURLResponse,
    status_code=201,
    tags=["urls"],
    dependencies=[Depends(enforce_strict_rate_limit)],
)
async def shorten_url(
    payload: URLCreate,
    service: URLShorteningService = Depends(get_url_service),
) -> CreateURLResponse:
    try:
        return await service.create_short_url(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail={"error": "invalid_request", "message": str(exc)}) from exc
    except StoreError as exc:
        raise _internal_error("Failed to create short URL") from exc


@router.get(
    "/api/v1/stats/{short_code}",
    response_model=URLStatsResponse,
    tags=["urls"],
    dependencies=[Depends(enforce_rate_limit)],
)
async def get_stats(
    short_code: str,
    service: URLShorteningService = Depends(get_url_service),
) -> URLStatsResponse:
    try:
        return await service.get_url_stats(short_code)
    except NotFoundError as exc:
        raise _not_found() from exc
    except StoreError as exc:
        raise _internal_error("Failed to retrieve stats") from exc


@router.post("/api/v1/admin/click-sync", response_model=ClickSyncResponse, tags=["admin"])
async def trigger_click_sync(scheduler: ClickSyncScheduler = Depends(get_click_sync)) -> ClickSyncResponse:
    report = await scheduler.run_now()
    return ClickSyncResponse(**report.to_dict())


@router.get("/{short_code}", tags=["redirect"], dependencies=[Depends(enforce_rate_limit)])
async def redirect_to_url(
    short_code: str,
    response: Response,
    service: URLShorteningService = Depends(get_url_service),
) -> RedirectResponse:
    try:
        original_url = await service.resolve(short_code)
    except NotFoundError as exc:
        raise _not_found() from exc
    except ExpiredError as exc:
        raise HTTPException(
            status_code=410, detail={"error": "expired", "message": "This short URL has expired"}
        ) from exc
    except StoreError as exc:
        raise _internal_error("Failed to retrieve URL") from exc

    # Carry the rate-limit headers set on the shared response.
    return RedirectResponse(url=original_url, status_code=307, headers=dict(response.headers))
