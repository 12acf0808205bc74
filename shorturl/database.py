"""Database configuration and session management for the short URL service.

PostgreSQL holds the authoritative URL records. Request handlers get a session
per request; the click sync scheduler opens its own session per run.

Flow Diagram: Database Operations
=================================
::
    ┌─────────────┐      ┌──────────────────┐
    │  Request    │      │ Click sync run   │
    └──────┬──────┘      └────────┬─────────┘
           ▼                      ▼
    ┌─────────────┐      ┌──────────────────┐
    │ get_db()     │      │ async_session()  │
    │ dependency  │      │ (per run)        │
    └──────┬──────┘      └────────┬─────────┘
           ▼                      ▼
    ┌──────────────────────────────────────┐
    │ Pooled asyncpg connections            │
    └──────────────────────────────────────┘

How to Use
===========
**Step 1: Initialize on startup**::
    await init_db()  # Creates tables

**Step 2: Use in FastAPI endpoints**::
    @router.get("/health/detailed")
    async def health_detailed(db: AsyncSession = Depends(get_db)):
        await URLRepository(db).ping()

**Step 3: Cleanup on shutdown**::
    await close_db()

Key Behaviours
===============
- Async sessions are automatically closed after each request.
- The pool is bounded by DATABASE_POOL_SIZE + DATABASE_MAX_OVERFLOW.
- asyncpg statements time out after DATABASE_COMMAND_TIMEOUT_SECONDS.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    engine_connect_args():  Driver arguments, including the asyncpg statement timeout.
    get_db():  FastAPI dependency for database sessions.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shorturl.config import get_settings

__all__ = ["Base", "async_session", "engine", "engine_connect_args", "get_db", "init_db", "close_db"]

settings = get_settings()


def engine_connect_args(database_url: str, command_timeout: float) -> dict:
    """Driver arguments for the engine; asyncpg gets a per-statement timeout."""
    if make_url(database_url).get_driver_name() == "asyncpg":
        return {"command_timeout": command_timeout}
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    connect_args=engine_connect_args(settings.DATABASE_URL, settings.DATABASE_COMMAND_TIMEOUT_SECONDS),
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
