from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import List

import pytest

from marketsync.cache import QuoteCache
from marketsync.config import AlphaVantageSettings
from marketsync.core.types import FailureKind, SchedulerState
from marketsync.models import InstrumentType
from marketsync.providers import StockQuoteProvider
from marketsync.quota import QuotaTracker
from marketsync.scheduler import RefreshScheduler
from marketsync.store import InMemoryInstrumentStore
from marketsync.tests.fakes import T0, FakeClock, FakeProvider, FakeResponse, FakeSession, make_record


class _RecordingStore(InMemoryInstrumentStore):
    def __init__(self, records, events: List[str]) -> None:
        super().__init__(records)
        self.events = events

    async def list_all(self):
        self.events.append("list")
        return await super().list_all()


def _scheduler(store, providers, clock, **kwargs) -> RefreshScheduler:
    kwargs.setdefault("batch_size", 5)
    kwargs.setdefault("batch_delay_seconds", 300)
    return RefreshScheduler(store, providers, QuoteCache(clock), clock, **kwargs)


def test_partition_splits_into_fixed_size_batches() -> None:
    batches = RefreshScheduler.partition(list(range(12)), 5)
    assert batches == [[0, 1, 2, 3, 4], [5, 6, 7, 8, 9], [10, 11]]
    assert RefreshScheduler.partition([], 5) == []


@pytest.mark.asyncio
async def test_failed_instruments_are_skipped_without_aborting_batch() -> None:
    clock = FakeClock()
    records = [make_record(f"S{i}") for i in range(1, 6)]
    store = InMemoryInstrumentStore(records)
    provider = FakeProvider(failures={"S2": FailureKind.UPSTREAM_ERROR, "S4": FailureKind.INVALID_RESPONSE})
    scheduler = _scheduler(store, {InstrumentType.STOCK: provider}, clock)

    report = await scheduler.run_pass()

    assert report.updated == ["id-S1", "id-S3", "id-S5"]
    assert report.failures == {"id-S2": FailureKind.UPSTREAM_ERROR, "id-S4": FailureKind.INVALID_RESPONSE}
    for symbol in ("S1", "S3", "S5"):
        record = await store.get(f"id-{symbol}")
        assert record.current_price == Decimal("100")
        assert record.daily_change == Decimal("1.5")
        assert scheduler._cache.get(f"id-{symbol}") is not None
    for symbol in ("S2", "S4"):
        assert (await store.get(f"id-{symbol}")).current_price is None
        assert scheduler._cache.get(f"id-{symbol}") is None
    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_unexpected_provider_exception_does_not_escape() -> None:
    clock = FakeClock()
    store = InMemoryInstrumentStore([make_record("A"), make_record("B")])
    provider = FakeProvider(raise_for={"A"})
    scheduler = _scheduler(store, {InstrumentType.STOCK: provider}, clock)

    report = await scheduler.run_pass()

    assert report.updated == ["id-B"]
    assert report.failures == {"id-A": FailureKind.UNEXPECTED}


@pytest.mark.asyncio
async def test_instrument_without_provider_is_skipped() -> None:
    clock = FakeClock()
    store = InMemoryInstrumentStore([make_record("A"), make_record("bitcoin", InstrumentType.CRYPTO)])
    scheduler = _scheduler(store, {InstrumentType.STOCK: FakeProvider()}, clock)

    report = await scheduler.run_pass()

    assert report.updated == ["id-A"]
    assert report.failures == {"id-bitcoin": FailureKind.UNEXPECTED}


@pytest.mark.asyncio
async def test_pauses_between_batches_but_not_after_last() -> None:
    clock = FakeClock()
    store = InMemoryInstrumentStore([make_record(f"S{i}") for i in range(12)])
    scheduler = _scheduler(store, {InstrumentType.STOCK: FakeProvider()}, clock)

    report = await scheduler.run_pass()

    assert report.batches == 3
    assert len(report.updated) == 12
    assert clock.sleeps == [300, 300]


@pytest.mark.asyncio
async def test_state_transitions_through_batches_and_pauses() -> None:
    clock = FakeClock()
    store = InMemoryInstrumentStore([make_record(f"S{i}") for i in range(4)])
    observed: list[tuple[SchedulerState, int | None]] = []
    provider = FakeProvider(on_fetch=lambda _s: observed.append((scheduler.state, scheduler.current_batch)))
    clock.on_sleep = lambda _s: observed.append((scheduler.state, scheduler.current_batch))
    scheduler = _scheduler(store, {InstrumentType.STOCK: provider}, clock, batch_size=2)

    await scheduler.run_pass()

    assert observed == [
        (SchedulerState.RUNNING_BATCH, 0),
        (SchedulerState.RUNNING_BATCH, 0),
        (SchedulerState.PAUSED, 0),
        (SchedulerState.RUNNING_BATCH, 1),
        (SchedulerState.RUNNING_BATCH, 1),
    ]
    assert scheduler.state is SchedulerState.IDLE
    assert scheduler.current_batch is None


@pytest.mark.asyncio
async def test_concurrent_passes_are_serialized() -> None:
    clock = FakeClock()
    events: List[str] = []
    store = _RecordingStore([make_record(f"S{i}") for i in range(4)], events)
    provider = FakeProvider(on_fetch=lambda symbol: events.append(symbol))
    scheduler = _scheduler(store, {InstrumentType.STOCK: provider}, clock, batch_size=2)

    await asyncio.gather(scheduler.run_pass(), scheduler.run_pass())

    one_pass = ["list", "S0", "S1", "S2", "S3"]
    assert events == one_pass + one_pass


@pytest.mark.asyncio
async def test_shared_quota_limits_updates_within_a_pass() -> None:
    clock = FakeClock()
    quota = QuotaTracker(clock, {"stock": (5, 60)})
    session = FakeSession(FakeResponse({"Global Quote": {"05. price": "10", "10. change percent": "1%"}}))
    provider = StockQuoteProvider(AlphaVantageSettings(api_key="demo"), session, quota, clock)
    store = InMemoryInstrumentStore([make_record(f"S{i}") for i in range(7)])
    scheduler = _scheduler(store, {InstrumentType.STOCK: provider}, clock, batch_size=10)

    report = await scheduler.run_pass()

    assert len(report.updated) == 5
    assert report.failures_by_kind() == {FailureKind.RATE_LIMITED: 2}
    assert len(session.calls) == 5


@pytest.mark.asyncio
async def test_trigger_coalesces_requests_into_one_task() -> None:
    clock = FakeClock()
    store = InMemoryInstrumentStore([make_record("A")])
    provider = FakeProvider()
    scheduler = _scheduler(store, {InstrumentType.STOCK: provider}, clock)

    first = scheduler.trigger()
    second = scheduler.trigger()
    report = await first

    assert first is second
    assert report.updated == ["id-A"]
    assert provider.calls == ["A"]
    assert scheduler.last_report is report


@pytest.mark.asyncio
async def test_loop_runs_startup_pass_then_one_per_interval() -> None:
    clock = FakeClock()
    store = InMemoryInstrumentStore([make_record("A")])
    provider = FakeProvider()
    scheduler = _scheduler(store, {InstrumentType.STOCK: provider}, clock, pass_interval_seconds=900)

    await scheduler.start()
    assert scheduler.is_running
    for _ in range(50):
        if len(provider.calls) >= 3:
            break
        await asyncio.sleep(0)
    await scheduler.stop()

    assert len(provider.calls) >= 3
    assert not scheduler.is_running
    assert set(clock.sleeps) == {900}
    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_loop_survives_store_failure() -> None:
    clock = FakeClock()

    class _BrokenStore(InMemoryInstrumentStore):
        calls = 0

        async def list_all(self):
            _BrokenStore.calls += 1
            raise ConnectionError("database down")

    scheduler = _scheduler(_BrokenStore(), {InstrumentType.STOCK: FakeProvider()}, clock)

    await scheduler.start()
    for _ in range(20):
        if _BrokenStore.calls >= 2:
            break
        await asyncio.sleep(0)
    await scheduler.stop()

    assert _BrokenStore.calls >= 2


def test_rejects_non_positive_batch_size() -> None:
    clock = FakeClock()
    with pytest.raises(ValueError):
        RefreshScheduler(InMemoryInstrumentStore(), {}, QuoteCache(clock), clock, batch_size=0)


class _PassStartStore(InMemoryInstrumentStore):
    """Records the clock time at which each pass loads the universe."""

    def __init__(self, records, clock: FakeClock) -> None:
        super().__init__(records)
        self.clock = clock
        self.starts: List[float] = []

    async def list_all(self):
        self.starts.append((self.clock.now() - T0).total_seconds())
        return await super().list_all()


async def _run_loop_until(scheduler: RefreshScheduler, store: _PassStartStore, passes: int) -> None:
    await scheduler.start()
    for _ in range(500):
        if len(store.starts) >= passes:
            break
        await asyncio.sleep(0)
    await scheduler.stop()


@pytest.mark.asyncio
async def test_passes_start_one_interval_apart() -> None:
    clock = FakeClock()
    store = _PassStartStore([make_record(f"S{i}") for i in range(10)], clock)
    scheduler = _scheduler(store, {InstrumentType.STOCK: FakeProvider()}, clock, pass_interval_seconds=900)

    await _run_loop_until(scheduler, store, 3)

    assert store.starts[:3] == [0.0, 900.0, 1800.0]
    assert clock.sleeps[:4] == [300, 600.0, 300, 600.0]


@pytest.mark.asyncio
async def test_overrunning_pass_starts_next_pass_immediately() -> None:
    clock = FakeClock()
    store = _PassStartStore([make_record(f"S{i}") for i in range(10)], clock)
    scheduler = _scheduler(store, {InstrumentType.STOCK: FakeProvider()}, clock, pass_interval_seconds=200)

    await _run_loop_until(scheduler, store, 3)

    assert store.starts[:3] == [0.0, 300.0, 600.0]


@pytest.mark.asyncio
async def test_first_pass_waits_one_interval_without_startup_pass() -> None:
    clock = FakeClock()
    store = _PassStartStore([make_record("A")], clock)
    scheduler = _scheduler(
        store, {InstrumentType.STOCK: FakeProvider()}, clock, pass_interval_seconds=900, run_on_startup=False
    )

    await _run_loop_until(scheduler, store, 2)

    assert store.starts[:2] == [900.0, 1800.0]


@pytest.mark.asyncio
async def test_failed_triggered_pass_is_logged_without_an_awaiter(caplog) -> None:
    clock = FakeClock()

    class _BrokenStore(InMemoryInstrumentStore):
        async def list_all(self):
            raise ConnectionError("database down")

    scheduler = _scheduler(_BrokenStore(), {InstrumentType.STOCK: FakeProvider()}, clock)

    task = scheduler.trigger()
    for _ in range(5):
        await asyncio.sleep(0)

    assert task.done()
    assert isinstance(task.exception(), ConnectionError)
    assert "Triggered refresh pass failed" in caplog.text
