"""
Refresh Scheduler
Periodic batched refresh of every tracked instrument.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import List, Mapping, Optional, Sequence, TypeVar

from marketsync.cache import QuoteCache
from marketsync.config import SyncSettings
from marketsync.core.ports import Clock, InstrumentStore, QuoteSource
from marketsync.core.types import FailureKind, PassReport, QuoteFailure, SchedulerState
from marketsync.models import InstrumentRecord, InstrumentType

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RefreshScheduler:
    """
    Drives full passes over the instrument universe.

    Each pass loads every record, splits them into fixed-size batches,
    fetches a batch concurrently, writes successes to the store and the
    cache, then pauses before the next batch. The pause is a cooperative
    throttle on top of the provider quota gate. Passes are serialized:
    a pass requested while another runs waits for it to finish.

    State per pass: IDLE -> RUNNING_BATCH -> PAUSED -> RUNNING_BATCH ... -> IDLE
    """

    def __init__(
        self,
        store: InstrumentStore,
        providers: Mapping[InstrumentType, QuoteSource],
        cache: QuoteCache,
        clock: Clock,
        *,
        batch_size: int = 5,
        batch_delay_seconds: float = 300.0,
        pass_interval_seconds: float = 900.0,
        cache_ttl_seconds: float = 900.0,
        run_on_startup: bool = True,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self._store = store
        self._providers = providers
        self._cache = cache
        self._clock = clock
        self._batch_size = batch_size
        self._batch_delay = batch_delay_seconds
        self._pass_interval = pass_interval_seconds
        self._cache_ttl = cache_ttl_seconds
        self._run_on_startup = run_on_startup

        self._state = SchedulerState.IDLE
        self._current_batch: Optional[int] = None
        self._last_report: Optional[PassReport] = None
        self._pass_lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.Task] = None
        self._running = False

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        store: InstrumentStore,
        providers: Mapping[InstrumentType, QuoteSource],
        cache: QuoteCache,
        clock: Clock,
    ) -> "RefreshScheduler":
        return cls(
            store,
            providers,
            cache,
            clock,
            batch_size=settings.scheduler.batch_size,
            batch_delay_seconds=settings.scheduler.batch_delay_seconds,
            pass_interval_seconds=settings.scheduler.pass_interval_seconds,
            cache_ttl_seconds=settings.cache.scheduled_ttl_seconds,
            run_on_startup=settings.scheduler.run_on_startup,
        )

    @property
    def state(self) -> SchedulerState:
        """Get current state."""
        return self._state

    @property
    def current_batch(self) -> Optional[int]:
        """Zero-based index of the batch being run or waited on, None when idle."""
        return self._current_batch

    @property
    def last_report(self) -> Optional[PassReport]:
        return self._last_report

    @property
    def is_running(self) -> bool:
        """Check if the periodic loop is active."""
        return self._running

    @staticmethod
    def partition(items: Sequence[T], size: int) -> List[List[T]]:
        """Split items into consecutive chunks of at most size elements."""
        return [list(items[i:i + size]) for i in range(0, len(items), size)]

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Passes
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def run_pass(self) -> PassReport:
        """
        Run one full pass, waiting for any pass already in progress.

        Returns:
            Report of updated and failed instruments
        """
        async with self._pass_lock:
            report = PassReport(started_at=self._clock.now())
            records = list(await self._store.list_all())
            batches = self.partition(records, self._batch_size)
            report.instruments = len(records)
            report.batches = len(batches)
            logger.info(f"Refresh pass started: {len(records)} instruments in {len(batches)} batches")

            try:
                for index, batch in enumerate(batches):
                    self._state = SchedulerState.RUNNING_BATCH
                    self._current_batch = index
                    await self._run_batch(batch, report)

                    if index < len(batches) - 1 and self._batch_delay > 0:
                        self._state = SchedulerState.PAUSED
                        await self._clock.sleep(self._batch_delay)
            finally:
                self._state = SchedulerState.IDLE
                self._current_batch = None

            report.finished_at = self._clock.now()
            self._last_report = report
            by_kind = {kind.value: count for kind, count in report.failures_by_kind().items()}
            logger.info(
                f"Refresh pass finished: updated={len(report.updated)} "
                f"failed={report.failed} by_kind={by_kind}"
            )
            return report

    async def _run_batch(self, batch: Sequence[InstrumentRecord], report: PassReport) -> None:
        """Fetch a batch concurrently; returns only after every fetch has finished."""
        outcomes = await asyncio.gather(*(self._refresh_one(record) for record in batch))

        for record, failure in zip(batch, outcomes):
            if failure is None:
                report.updated.append(record.id)
            else:
                report.failures[record.id] = failure

        logger.info(
            f"Batch {self._current_batch} done: "
            f"{len(batch) - sum(1 for f in outcomes if f is not None)}/{len(batch)} updated"
        )

    async def _refresh_one(self, record: InstrumentRecord) -> Optional[FailureKind]:
        """Refresh one instrument; never raises for per-instrument problems."""
        provider = self._providers.get(record.type)
        if provider is None:
            logger.warning(f"No provider for {record.symbol} ({record.type.value}), skipping")
            return FailureKind.UNEXPECTED

        try:
            result = await provider.fetch_quote(record.symbol)
            if isinstance(result, QuoteFailure):
                logger.warning(f"Skipping {record.symbol}: {result.kind.value} ({result.message})")
                return result.kind

            await self._store.update(record.id, result.to_record_fields())
            self._cache.put(record.id, result, self._cache_ttl)
            return None
        except Exception:
            logger.exception(f"Unexpected error refreshing {record.symbol}, skipping")
            return FailureKind.UNEXPECTED

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Lifecycle
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def trigger(self) -> asyncio.Task:
        """
        Request an out-of-cadence pass.

        Repeated triggers while one is still queued or running share the
        same task. Must be called from a running event loop.
        """
        if self._pending is None or self._pending.done():
            self._pending = asyncio.create_task(self.run_pass())
            self._pending.add_done_callback(self._log_trigger_failure)
        return self._pending

    @staticmethod
    def _log_trigger_failure(task: asyncio.Task) -> None:
        """Report a failed triggered pass even when no caller awaits it."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Triggered refresh pass failed: {error!r}", exc_info=error)

    async def start(self) -> None:
        """Start the periodic loop."""
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._loop())
        logger.info(f"Refresh scheduler started (interval={self._pass_interval}s)")

    async def stop(self) -> None:
        """Stop the loop and abandon any in-flight pass."""
        self._running = False
        for task in (self._loop_task, self._pending):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._pending = None
        logger.info("Refresh scheduler stopped")

    async def _loop(self) -> None:
        # Passes start one interval apart; an overrunning pass delays the next start only
        interval = timedelta(seconds=self._pass_interval)
        next_start = self._clock.now()
        if not self._run_on_startup:
            next_start += interval

        while self._running:
            delay = (next_start - self._clock.now()).total_seconds()
            if delay > 0:
                await self._clock.sleep(delay)
            next_start = self._clock.now() + interval
            await self._safe_pass()

    async def _safe_pass(self) -> None:
        try:
            await self.run_pass()
        except Exception:
            logger.exception("Refresh pass aborted, retrying next interval")
