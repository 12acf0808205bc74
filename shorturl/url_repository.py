"""PostgreSQL access for URL records (the authoritative store).

Every method either returns a result or raises a typed error: a missing row
becomes ``NotFoundError``, any SQLAlchemy failure or statement timeout becomes
``StoreError`` after the session is rolled back so it stays usable for the
next call. A second live row for the same URL hash is refused by the
database and surfaces as ``HashConflictError``.

How to Use
===========
**Request path**::
    urls = URLRepository(session)
    url = await urls.insert(url_hash, original_url, expires_at)
    await urls.set_code(url, encode(url.id, 6))
    await urls.commit()

**Background path**::
    async with url_repository_scope() as urls:
        await urls.add_clicks("000021", 17)
"""

import datetime
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shorturl.database import async_session
from shorturl.exceptions import HashConflictError, NotFoundError, StoreError
from shorturl.models import URL

__all__ = ["URLRepository", "url_repository_scope"]

logger = logging.getLogger(__name__)

# asyncpg reports an expired command_timeout as a bare TimeoutError.
DATABASE_ERRORS = (SQLAlchemyError, TimeoutError)


class URLRepository:
    """Thin async repository over the ``urls`` table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def insert(self, url_hash: str, original_url: str, expires_at: datetime.datetime | None = None) -> URL:
        """Insert a row and flush it so the database assigns its id.

        The row becomes the current record for its hash and is not committed;
        callers write the short code and then call :meth:`commit`.

        Raises:
            HashConflictError: Another row is already current for this hash
            StoreError: The insert failed for any other reason
        """
        url = URL(url_hash=url_hash, current_hash=url_hash, original_url=original_url, expires_at=expires_at)
        try:
            self._session.add(url)
            await self._session.flush()
            await self._session.refresh(url)
        except IntegrityError as exc:
            await self._rollback_quietly()
            raise HashConflictError(url_hash, exc) from exc
        except DATABASE_ERRORS as exc:
            await self._rollback_quietly()
            raise StoreError("failed to create url", exc) from exc
        return url

    async def set_code(self, url: URL, short_code: str) -> None:
        try:
            url.short_code = short_code
            await self._session.flush()
            # updated_at is server-generated and expired by the flush.
            await self._session.refresh(url)
        except DATABASE_ERRORS as exc:
            await self._rollback_quietly()
            raise StoreError(f"failed to update short code for id {url.id}", exc) from exc

    async def supersede(self, url: URL) -> None:
        """Retire a row as the current record for its hash (not committed)."""
        try:
            url.current_hash = None
            await self._session.flush()
            await self._session.refresh(url)
        except DATABASE_ERRORS as exc:
            await self._rollback_quietly()
            raise StoreError(f"failed to supersede url id {url.id}", exc) from exc

    async def find_by_hash(self, url_hash: str) -> URL | None:
        """Return the newest record for a content hash, or None."""
        try:
            result = await self._session.execute(
                select(URL).where(URL.url_hash == url_hash).order_by(URL.id.desc()).limit(1)
            )
        except DATABASE_ERRORS as exc:
            await self._rollback_quietly()
            raise StoreError("failed to get url by hash", exc) from exc
        return result.scalar_one_or_none()

    async def get_by_code(self, short_code: str) -> URL:
        try:
            result = await self._session.execute(select(URL).where(URL.short_code == short_code))
        except DATABASE_ERRORS as exc:
            await self._rollback_quietly()
            raise StoreError(f"failed to get url {short_code}", exc) from exc

        url = result.scalar_one_or_none()
        if url is None:
            raise NotFoundError(short_code)
        return url

    async def add_clicks(self, short_code: str, count: int) -> int:
        """Atomically add ``count`` to a row's click total and commit.

        Returns:
            int: Number of affected rows (always 1 on success)

        Raises:
            NotFoundError: If no row carries this short code
            StoreError: If the update or commit fails
        """
        statement = (
            update(URL)
            .where(URL.short_code == short_code)
            .values(click_count=URL.click_count + count)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(statement)
            await self._session.commit()
        except DATABASE_ERRORS as exc:
            await self._rollback_quietly()
            raise StoreError(f"failed to increment click count by {count}", exc) from exc

        if result.rowcount == 0:
            raise NotFoundError(short_code)
        return result.rowcount

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except DATABASE_ERRORS as exc:
            await self._rollback_quietly()
            raise StoreError("failed to commit", exc) from exc

    async def ping(self) -> None:
        try:
            await self._session.execute(text("SELECT 1"))
        except DATABASE_ERRORS as exc:
            raise StoreError("ping failed", exc) from exc

    async def _rollback_quietly(self) -> None:
        try:
            await self._session.rollback()
        except DATABASE_ERRORS:
            logger.warning("rollback after failed statement also failed", exc_info=True)


@asynccontextmanager
async def url_repository_scope() -> AsyncIterator[URLRepository]:
    """Open a session for work that runs outside a request."""
    async with async_session() as session:
        yield URLRepository(session)
