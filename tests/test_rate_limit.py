"""Sliding window rate limiter tests."""

import pytest

from shorturl.rate_limit import RateLimitDecision, SlidingWindowRateLimiter


@pytest.fixture
def limiter(cache_repository, clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(cache_repository, limit=3, window_seconds=60, name="test", clock_ns=clock.ns)


@pytest.mark.asyncio
async def test_admits_up_to_limit_then_rejects(limiter: SlidingWindowRateLimiter) -> None:
    decisions = [await limiter.check("10.0.0.1") for _ in range(3)]

    assert all(decision.allowed for decision in decisions)
    assert [decision.remaining for decision in decisions] == [2, 1, 0]

    rejected = await limiter.check("10.0.0.1")
    assert rejected.allowed is False
    assert rejected.remaining == 0
    assert rejected.retry_after_seconds == 60


@pytest.mark.asyncio
async def test_rejected_decision_headers(limiter: SlidingWindowRateLimiter, clock) -> None:
    for _ in range(3):
        await limiter.check("10.0.0.1")

    headers = (await limiter.check("10.0.0.1")).headers()

    assert headers == {
        "X-RateLimit-Limit": "3",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(int(clock.now.timestamp()) + 60),
        "Retry-After": "60",
    }


@pytest.mark.asyncio
async def test_allowed_decision_has_no_retry_after(limiter: SlidingWindowRateLimiter) -> None:
    headers = (await limiter.check("10.0.0.1")).headers()

    assert headers["X-RateLimit-Remaining"] == "2"
    assert "Retry-After" not in headers


@pytest.mark.asyncio
async def test_window_slides(limiter: SlidingWindowRateLimiter, clock) -> None:
    for _ in range(3):
        await limiter.check("10.0.0.1")

    clock.advance(seconds=61)

    decision = await limiter.check("10.0.0.1")
    assert decision.allowed is True
    assert decision.remaining == 2


@pytest.mark.asyncio
async def test_entries_at_window_start_still_count(limiter: SlidingWindowRateLimiter, clock) -> None:
    for _ in range(3):
        await limiter.check("10.0.0.1")

    clock.advance(seconds=60)
    assert (await limiter.check("10.0.0.1")).allowed is False

    clock.advance(microseconds=1)
    assert (await limiter.check("10.0.0.1")).allowed is True


@pytest.mark.asyncio
async def test_rejected_requests_are_not_recorded(limiter: SlidingWindowRateLimiter, cache_repository) -> None:
    for _ in range(5):
        await limiter.check("10.0.0.1")

    assert len(cache_repository.windows["test:10.0.0.1"]) == 3


@pytest.mark.asyncio
async def test_identities_are_independent(limiter: SlidingWindowRateLimiter) -> None:
    for _ in range(3):
        await limiter.check("10.0.0.1")

    assert (await limiter.check("10.0.0.2")).allowed is True


@pytest.mark.asyncio
async def test_fails_open_when_cache_is_down(limiter: SlidingWindowRateLimiter, cache_repository) -> None:
    cache_repository.failing.add("prune_and_count_window")

    for _ in range(10):
        decision = await limiter.check("10.0.0.1")
        assert decision.allowed is True
        assert decision.degraded is True
        assert decision.headers() == {}


@pytest.mark.asyncio
async def test_record_failure_still_admits(limiter: SlidingWindowRateLimiter, cache_repository) -> None:
    cache_repository.failing.add("record_in_window")

    decision = await limiter.check("10.0.0.1")

    assert decision.allowed is True
    assert decision.remaining == 2
    assert cache_repository.windows == {"test:10.0.0.1": []}


@pytest.mark.parametrize("limit,window", [(0, 60), (-1, 60), (10, 0)])
def test_rejects_non_positive_configuration(cache_repository, limit: int, window: float) -> None:
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(cache_repository, limit=limit, window_seconds=window)


def test_decision_headers_without_retry_after() -> None:
    decision = RateLimitDecision(allowed=True, limit=100, remaining=99, reset_at=1_700_000_060)

    assert decision.headers() == {
        "X-RateLimit-Limit": "100",
        "X-RateLimit-Remaining": "99",
        "X-RateLimit-Reset": "1700000060",
    }
