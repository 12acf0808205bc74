"""Periodic reconciliation of pending Redis click counters into PostgreSQL.

State Machine
=============
::
    ┌──────┐  run_now()/tick   ┌─────────┐
    │ IDLE │ ────────────────▶ │ RUNNING │
    └──────┘ ◀──────────────── └─────────┘
        │        run done
        │ stop(): final run, then
        ▼
    ┌─────────┐
    │ STOPPED │
    └─────────┘

Per Run
=======
::
    SCAN clicks:*  ──(fails)──▶ abort run, log
         │
         ▼ for each code
    GETDEL clicks:<code> ── 0 ──▶ skip
         │ n
         ▼
    UPDATE urls SET click_count = click_count + n
         │ ok          │ row missing           │ other failure
         ▼             ▼                       ▼
      synced      lost (logged)        INCRBY clicks:<code> n
                                        (lost if that fails too)

Key Behaviours
==============
- Runs never overlap; an on-demand run waits for a periodic one.
- No retries inside a run. A restored counter is picked up by the next run.
- A write still pending at the run deadline is cancelled and its count
  restored, then the run stops.
- ``stop()`` sets the stop signal and awaits the loop, which performs one
  final run before returning, so a clean shutdown strands no counts.
- Nothing here raises to a caller except lifecycle misuse.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import asdict, dataclass

from shorturl.clicks import ClickAggregator
from shorturl.enums import SchedulerState
from shorturl.exceptions import CacheDegradedError, NotFoundError, StoreError
from shorturl.metrics import CLICK_SYNC_FLUSHED_TOTAL, CLICK_SYNC_LOST_TOTAL, CLICK_SYNC_RUNS_TOTAL
from shorturl.url_repository import URLRepository

__all__ = ["ClickSyncScheduler", "SyncReport"]

logger = logging.getLogger(__name__)

RepositoryScope = Callable[[], AbstractAsyncContextManager[URLRepository]]


@dataclass
class SyncReport:
    """Outcome of one reconciliation run."""

    scanned: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    restored: int = 0
    lost_clicks: int = 0
    aborted: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class ClickSyncScheduler:
    """Background task that flushes pending click counters on an interval."""

    def __init__(
        self,
        clicks: ClickAggregator,
        repository_scope: RepositoryScope,
        interval_seconds: float = 3600,
        run_timeout_seconds: float = 300,
    ):
        self._clicks = clicks
        self._repository_scope = repository_scope
        self._interval = interval_seconds
        self._run_timeout = run_timeout_seconds
        self._state = SchedulerState.IDLE
        self._stop_event = asyncio.Event()
        self._run_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    def start(self) -> None:
        if self._state is SchedulerState.STOPPED:
            raise RuntimeError("click sync scheduler already stopped")
        if self._task is not None:
            raise RuntimeError("click sync scheduler already started")
        self._task = asyncio.create_task(self._run_loop(), name="click-sync")
        logger.info("Click sync scheduler started (interval: %ss)", self._interval)

    async def stop(self) -> None:
        """Signal the loop to exit and wait for its final run to finish."""
        if self._state is SchedulerState.STOPPED:
            return
        self._stop_event.set()
        if self._task is not None:
            await self._task
        else:
            await self._run_guarded()
        self._state = SchedulerState.STOPPED
        logger.info("Click sync scheduler stopped")

    async def run_now(self) -> SyncReport:
        """Run one reconciliation pass immediately (operational trigger)."""
        if self._state is SchedulerState.STOPPED:
            raise RuntimeError("click sync scheduler already stopped")
        return await self._run_exclusive()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                await self._run_guarded()

        logger.info("Performing final click count sync before shutdown...")
        await self._run_guarded()

    async def _run_guarded(self) -> SyncReport | None:
        try:
            return await self._run_exclusive()
        except Exception:
            CLICK_SYNC_RUNS_TOTAL.labels(outcome="crashed").inc()
            logger.exception("Click count sync crashed")
            return None

    async def _run_exclusive(self) -> SyncReport:
        async with self._run_lock:
            self._state = SchedulerState.RUNNING
            try:
                return await self._sync_click_counts()
            finally:
                self._state = SchedulerState.IDLE

    async def _sync_click_counts(self) -> SyncReport:
        report = SyncReport()
        started = time.perf_counter()
        deadline = started + self._run_timeout

        try:
            codes = await self._clicks.tracked_codes()
        except CacheDegradedError as exc:
            logger.error("Failed to get click count keys: %s", exc)
            report.aborted = True
            report.duration_seconds = time.perf_counter() - started
            CLICK_SYNC_RUNS_TOTAL.labels(outcome="aborted").inc()
            return report

        report.scanned = len(codes)
        if not codes:
            CLICK_SYNC_RUNS_TOTAL.labels(outcome="empty").inc()
            report.duration_seconds = time.perf_counter() - started
            return report

        logger.info("Syncing click counts for %d URLs...", len(codes))

        async with self._repository_scope() as urls:
            for short_code in codes:
                if time.perf_counter() > deadline:
                    # Undrained counters stay in Redis for the next run.
                    logger.warning(
                        "Click count sync hit its %ss deadline, deferring %d codes",
                        self._run_timeout,
                        report.scanned - report.synced - report.skipped - report.failed,
                    )
                    report.aborted = True
                    break
                await self._sync_one(urls, short_code, report, deadline)

        report.duration_seconds = time.perf_counter() - started
        CLICK_SYNC_RUNS_TOTAL.labels(outcome="aborted" if report.aborted else "completed").inc()
        logger.info(
            "Click count sync completed: %d success, %d failed, %d skipped, %d clicks lost",
            report.synced,
            report.failed,
            report.skipped,
            report.lost_clicks,
        )
        return report

    async def _sync_one(self, urls: URLRepository, short_code: str, report: SyncReport, deadline: float) -> None:
        try:
            count = await self._clicks.drain_and_reset(short_code)
        except CacheDegradedError as exc:
            logger.error("Failed to get click count for %s: %s", short_code, exc)
            report.failed += 1
            return

        if count <= 0:
            report.skipped += 1
            return

        try:
            # The write is bounded by what is left of the run deadline.
            await asyncio.wait_for(urls.add_clicks(short_code, count), timeout=max(deadline - time.perf_counter(), 0))
        except NotFoundError:
            logger.error("Short code %s no longer exists (data loss: %d clicks)", short_code, count)
            report.failed += 1
            report.lost_clicks += count
            CLICK_SYNC_LOST_TOTAL.inc(count)
            return
        except (StoreError, TimeoutError) as exc:
            logger.error("Failed to sync click count for %s: %r", short_code, exc)
            report.failed += 1
            await self._restore(short_code, count, report)
            return

        report.synced += 1
        CLICK_SYNC_FLUSHED_TOTAL.inc(count)

    async def _restore(self, short_code: str, count: int, report: SyncReport) -> None:
        try:
            await self._clicks.restore(short_code, count)
        except CacheDegradedError as exc:
            logger.error(
                "Failed to restore click count for %s: %s (data loss: %d clicks)", short_code, exc, count
            )
            report.lost_clicks += count
            CLICK_SYNC_LOST_TOTAL.inc(count)
            return
        report.restored += 1
