"""Shared pytest fixtures: in-memory stand-ins for PostgreSQL and Redis."""

import asyncio
import datetime
import itertools
from contextlib import asynccontextmanager

import pytest

from shorturl.clicks import ClickAggregator
from shorturl.config import Settings
from shorturl.exceptions import CacheDegradedError, HashConflictError, NotFoundError, StoreError
from shorturl.models import URL, as_aware
from shorturl.schemas import CachedURLPayload
from shorturl.url_service import URLShorteningService

START = datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


class FrozenClock:
    """Manually advanced clock usable as both a datetime and a ns source."""

    def __init__(self, now: datetime.datetime = START):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def ns(self) -> int:
        return int(self.now.timestamp()) * 1_000_000_000 + self.now.microsecond * 1000

    def advance(self, **kwargs) -> None:
        self.now += datetime.timedelta(**kwargs)


class FakeURLRepository:
    """Dict-backed replacement for URLRepository."""

    def __init__(self, clock: FrozenClock, first_id: int = 125):
        self.clock = clock
        self.rows: dict[int, URL] = {}
        self._ids = itertools.count(first_id)
        self.failing: set[str] = set()
        self.commits = 0
        self.get_by_code_calls = 0
        self.add_clicks_delay = 0.0

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise StoreError(f"{operation} failed", ConnectionError("postgres down"))

    async def insert(self, url_hash, original_url, expires_at=None) -> URL:
        self._check("insert")
        if any(row.current_hash == url_hash for row in self.rows.values()):
            raise HashConflictError(url_hash)
        now = self.clock()
        url = URL(
            id=next(self._ids),
            short_code=None,
            url_hash=url_hash,
            current_hash=url_hash,
            original_url=original_url,
            click_count=0,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
            is_active=True,
        )
        self.rows[url.id] = url
        return url

    async def set_code(self, url: URL, short_code: str) -> None:
        self._check("set_code")
        url.short_code = short_code

    async def supersede(self, url: URL) -> None:
        self._check("supersede")
        url.current_hash = None

    async def commit(self) -> None:
        self._check("commit")
        self.commits += 1

    async def find_by_hash(self, url_hash: str) -> URL | None:
        self._check("find_by_hash")
        matches = [row for row in self.rows.values() if row.url_hash == url_hash]
        # Yield like a real round trip so concurrent creates interleave.
        await asyncio.sleep(0)
        return max(matches, key=lambda row: row.id) if matches else None

    async def get_by_code(self, short_code: str) -> URL:
        self.get_by_code_calls += 1
        self._check("get_by_code")
        for row in self.rows.values():
            if row.short_code == short_code:
                return row
        raise NotFoundError(short_code)

    async def add_clicks(self, short_code: str, count: int) -> int:
        self._check("add_clicks")
        if self.add_clicks_delay:
            await asyncio.sleep(self.add_clicks_delay)
        row = await self.get_by_code(short_code)
        row.click_count += count
        return 1

    async def ping(self) -> None:
        self._check("ping")

    def by_code(self, short_code: str) -> URL:
        return next(row for row in self.rows.values() if row.short_code == short_code)


class FakeCacheRepository:
    """Dict-backed replacement for RedisCacheRepository."""

    def __init__(self, clock: FrozenClock):
        self.clock = clock
        self.snapshots: dict[str, CachedURLPayload] = {}
        self.counters: dict[str, int] = {}
        self.windows: dict[str, list[int]] = {}
        self.failing: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise CacheDegradedError(operation, ConnectionError("redis down"))

    async def get_snapshot(self, short_code: str) -> CachedURLPayload | None:
        self._check("get_snapshot")
        return self.snapshots.get(short_code)

    async def set_snapshot(self, url: URL, now: datetime.datetime | None = None) -> bool:
        self._check("set_snapshot")
        if url.expires_at is not None and as_aware(url.expires_at) <= (now or self.clock()):
            return False
        self.snapshots[url.short_code] = CachedURLPayload.model_validate(url)
        return True

    async def delete_snapshot(self, short_code: str) -> None:
        self.snapshots.pop(short_code, None)

    async def increment_clicks(self, short_code: str, amount: int = 1) -> int:
        self._check("increment_clicks")
        self.counters[short_code] = self.counters.get(short_code, 0) + amount
        return self.counters[short_code]

    async def get_pending_clicks(self, short_code: str) -> int:
        self._check("get_pending_clicks")
        return self.counters.get(short_code, 0)

    async def drain_clicks(self, short_code: str) -> int:
        self._check("drain_clicks")
        return self.counters.pop(short_code, 0)

    async def tracked_click_codes(self) -> list[str]:
        self._check("tracked_click_codes")
        return list(self.counters)

    async def prune_and_count_window(self, identity: str, window_start_ns: int) -> int:
        self._check("prune_and_count_window")
        kept = [stamp for stamp in self.windows.get(identity, []) if stamp >= window_start_ns]
        self.windows[identity] = kept
        return len(kept)

    async def record_in_window(self, identity: str, now_ns: int, window: datetime.timedelta) -> None:
        self._check("record_in_window")
        self.windows.setdefault(identity, []).append(now_ns)

    async def ping(self) -> bool:
        self._check("ping")
        return True


def repository_scope_for(repository):
    @asynccontextmanager
    async def scope():
        yield repository

    return scope


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(BASE_URL="http://sho.rt", SHORT_CODE_LENGTH=6, URL_CACHE_TTL_SECONDS=3600)


@pytest.fixture
def url_repository(clock) -> FakeURLRepository:
    return FakeURLRepository(clock)


@pytest.fixture
def cache_repository(clock) -> FakeCacheRepository:
    return FakeCacheRepository(clock)


@pytest.fixture
def clicks(cache_repository) -> ClickAggregator:
    return ClickAggregator(cache_repository, increment_timeout=0.2)


@pytest.fixture
def url_service(url_repository, cache_repository, clicks, settings, clock) -> URLShorteningService:
    return URLShorteningService(
        urls=url_repository,
        cache=cache_repository,
        clicks=clicks,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def repository_scope(url_repository):
    return repository_scope_for(url_repository)
