"""ClickAggregator tests."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from shorturl.clicks import ClickAggregator
from shorturl.exceptions import CacheDegradedError


@pytest.mark.asyncio
async def test_increment_accumulates(clicks: ClickAggregator) -> None:
    for _ in range(3):
        assert await clicks.increment("abc") is True

    assert await clicks.pending("abc") == 3


@pytest.mark.asyncio
async def test_drain_returns_total_and_resets(clicks: ClickAggregator) -> None:
    await clicks.increment("abc")
    await clicks.increment("abc")

    assert await clicks.drain_and_reset("abc") == 2
    assert await clicks.pending("abc") == 0
    assert await clicks.drain_and_reset("abc") == 0


@pytest.mark.asyncio
async def test_restore_adds_back_to_new_clicks(clicks: ClickAggregator) -> None:
    await clicks.increment("abc")
    drained = await clicks.drain_and_reset("abc")
    await clicks.increment("abc")

    await clicks.restore("abc", drained)

    assert await clicks.pending("abc") == 2


@pytest.mark.asyncio
async def test_tracked_codes(clicks: ClickAggregator) -> None:
    await clicks.increment("one")
    await clicks.increment("two")

    assert sorted(await clicks.tracked_codes()) == ["one", "two"]


@pytest.mark.asyncio
async def test_increment_swallows_cache_failure(clicks: ClickAggregator, cache_repository) -> None:
    cache_repository.failing.add("increment_clicks")

    assert await clicks.increment("abc") is False


@pytest.mark.asyncio
async def test_increment_gives_up_after_timeout() -> None:
    async def slow_increment(short_code: str) -> int:
        await asyncio.sleep(1)
        return 1

    cache = AsyncMock()
    cache.increment_clicks = AsyncMock(side_effect=slow_increment)
    aggregator = ClickAggregator(cache, increment_timeout=0.01)

    assert await aggregator.increment("abc") is False


@pytest.mark.asyncio
async def test_drain_propagates_cache_failure(clicks: ClickAggregator, cache_repository) -> None:
    cache_repository.failing.add("drain_clicks")

    with pytest.raises(CacheDegradedError):
        await clicks.drain_and_reset("abc")
