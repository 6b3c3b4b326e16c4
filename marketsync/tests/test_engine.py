from __future__ import annotations

from decimal import Decimal

import pytest

from marketsync.config import AlphaVantageSettings, StoreSettings, SyncSettings
from marketsync.core.errors import ConfigurationError, InstrumentNotFound
from marketsync.core.types import FailureKind
from marketsync.engine import MarketDataEngine, build_store
from marketsync.models import InstrumentType, QuoteOrigin
from marketsync.store import InMemoryInstrumentStore
from marketsync.tests.fakes import FakeClock, FakeResponse, FakeSession, make_record

GLOBAL_QUOTE = {"Global Quote": {"05. price": "200.00", "10. change percent": "1.2500%"}}


def _settings(max_calls: int = 2) -> SyncSettings:
    return SyncSettings(
        alpha_vantage=AlphaVantageSettings(api_key="demo", max_calls=max_calls),
        store=StoreSettings(url=""),
    )


def _engine(clock: FakeClock, session: FakeSession, symbols=("AAPL", "MSFT", "NVDA")) -> MarketDataEngine:
    store = InMemoryInstrumentStore([make_record(symbol) for symbol in symbols])
    return MarketDataEngine(store, _settings(), clock=clock, session=session)


@pytest.mark.asyncio
async def test_lookups_and_refresh_share_one_quota() -> None:
    clock = FakeClock()
    session = FakeSession(FakeResponse(GLOBAL_QUOTE))

    async with _engine(clock, session) as engine:
        first = await engine.get_details("id-AAPL")
        second = await engine.get_details("id-MSFT")
        assert first.origin is QuoteOrigin.LIVE
        assert second.origin is QuoteOrigin.LIVE
        assert len(session.calls) == 2

        report = await engine.trigger_refresh_now()
        assert report.updated == []
        assert report.failures_by_kind() == {FailureKind.RATE_LIMITED: 3}
        assert len(session.calls) == 2

        clock.advance(61)
        report = await engine.run_pass()
        assert len(report.updated) == 2
        assert report.failures_by_kind() == {FailureKind.RATE_LIMITED: 1}
        assert len(session.calls) == 4


@pytest.mark.asyncio
async def test_refreshed_record_is_served_from_cache() -> None:
    clock = FakeClock()
    session = FakeSession(FakeResponse(GLOBAL_QUOTE))

    async with _engine(clock, session, symbols=("AAPL",)) as engine:
        await engine.run_pass()
        details = await engine.get_details("id-AAPL")

    assert details.origin is QuoteOrigin.CACHE
    assert details.instrument.current_price == Decimal("200.00")
    assert details.instrument.daily_change == Decimal("1.2500")
    assert len(session.calls) == 1


@pytest.mark.asyncio
async def test_trigger_refresh_now_coalesces() -> None:
    clock = FakeClock()
    session = FakeSession(FakeResponse(GLOBAL_QUOTE))

    async with _engine(clock, session, symbols=("AAPL",)) as engine:
        first = engine.trigger_refresh_now()
        second = engine.trigger_refresh_now()
        assert first is second
        await first

    assert len(session.calls) == 1


@pytest.mark.asyncio
async def test_status_reports_quota_cache_and_last_pass() -> None:
    clock = FakeClock()
    session = FakeSession(FakeResponse(GLOBAL_QUOTE))
    engine = _engine(clock, session, symbols=("AAPL",))

    before = engine.status()
    assert before["scheduler"]["state"] is None
    assert before["scheduler"]["last_pass"] is None

    async with engine:
        await engine.run_pass()
        status = engine.status()

    assert status["quota"]["stock"]["calls_made"] == 1
    assert status["quota"]["stock"]["max_calls"] == 2
    assert status["cache"]["puts"] == 1
    assert status["scheduler"]["state"] == "idle"
    assert status["scheduler"]["last_pass"]["updated"] == 1
    assert status["scheduler"]["last_pass"]["failed"] == 0


@pytest.mark.asyncio
async def test_engine_must_be_open() -> None:
    engine = _engine(FakeClock(), FakeSession())

    with pytest.raises(ConfigurationError):
        await engine.get_details("id-AAPL")


@pytest.mark.asyncio
async def test_owned_session_is_closed_on_stop() -> None:
    store = InMemoryInstrumentStore([make_record("AAPL")])
    engine = MarketDataEngine(store, _settings(), clock=FakeClock())

    await engine.open()
    session = engine._session
    assert session is not None and not session.closed
    await engine.stop()

    assert session.closed
    assert engine._session is None


@pytest.mark.asyncio
async def test_external_session_is_left_open() -> None:
    session = FakeSession()
    engine = _engine(FakeClock(), session)

    async with engine:
        pass

    assert not session.closed


def test_build_store_defaults_to_seeded_memory_store() -> None:
    store = build_store(_settings())

    assert isinstance(store, InMemoryInstrumentStore)
    records = store._records.values()
    assert len(records) == 20
    assert {r.type for r in records} == {InstrumentType.STOCK, InstrumentType.CRYPTO}


@pytest.mark.asyncio
async def test_build_store_uses_sql_when_url_is_set(tmp_path) -> None:
    from marketsync.store.sql import SqlInstrumentStore

    settings = SyncSettings(store=StoreSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'sync.db'}"))
    store = build_store(settings)

    assert isinstance(store, SqlInstrumentStore)
    await store.close()


@pytest.mark.asyncio
async def test_resolve_instrument_id_accepts_symbol_or_id() -> None:
    engine = _engine(FakeClock(), FakeSession())

    assert await engine.resolve_instrument_id("nvda") == "id-NVDA"
    assert await engine.resolve_instrument_id("id-MSFT") == "id-MSFT"
    with pytest.raises(InstrumentNotFound):
        await engine.resolve_instrument_id("TSLA")


@pytest.mark.asyncio
async def test_seeded_memory_store_is_reachable_by_symbol() -> None:
    session = FakeSession(FakeResponse(GLOBAL_QUOTE))
    engine = MarketDataEngine(build_store(_settings()), _settings(), clock=FakeClock(), session=session)

    async with engine:
        details = await engine.get_details(await engine.resolve_instrument_id("AAPL"))

    assert details.instrument.symbol == "AAPL"
    assert details.origin is QuoteOrigin.LIVE
