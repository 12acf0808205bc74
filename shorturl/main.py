"""FastAPI application entry point for the short URL service.

Application Lifecycle Diagram
===========================
::
    ┌──────────────────┐
    │ lifespan startup │
    │ init_db()        │
    │ manager.init()   │
    │ click_sync.start │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ Serve HTTP       │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ lifespan shutdown│
    │ click_sync.stop  │  (final click flush)
    │ close_redis()    │
    │ close_db()       │
    └──────────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn shorturl.main:app --host 0.0.0.0 --port 8080

**Make API calls**::
    curl -X POST http://localhost:8080/api/v1/shorten \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com", "expires_in": "7d"}'
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from shorturl import __version__
from shorturl.config import get_settings
from shorturl.database import close_db, init_db
from shorturl.dependencies import _service_manager
from shorturl.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    _service_manager.click_sync.start()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=__version__,
    description="Short URL service with cache-aside lookups and batched click counting",
    lifespan=lifespan,
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
