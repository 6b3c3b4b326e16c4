"""Command line entry point for the market data synchronization engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from marketsync.config import get_settings
from marketsync.core.errors import ConfigurationError, InstrumentNotFound
from marketsync.engine import MarketDataEngine, build_store
from marketsync.logging_config import configure_logging
from marketsync.store import default_instruments


async def _close_store(store: object) -> None:
    close = getattr(store, "close", None)
    if close is not None:
        await close()


async def run_forever() -> int:
    """Run the periodic refresh loop until SIGINT/SIGTERM."""
    settings = get_settings()
    store = build_store(settings)
    engine = MarketDataEngine(store, settings)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    await engine.start()
    try:
        await stop_event.wait()
    finally:
        await engine.stop()
        await _close_store(store)
    return 0


async def refresh_once() -> int:
    """Run one pass immediately, without the inter-pass timer."""
    settings = get_settings()
    store = build_store(settings)
    try:
        async with MarketDataEngine(store, settings) as engine:
            report = await engine.trigger_refresh_now()
    finally:
        await _close_store(store)

    print(
        f"[refresh] instruments={report.instruments} batches={report.batches} "
        f"updated={len(report.updated)} failed={report.failed}"
    )
    return 0 if report.failed == 0 else 2


async def show_details(key: str) -> int:
    """Print details for an instrument given by symbol or id."""
    settings = get_settings()
    store = build_store(settings)
    try:
        async with MarketDataEngine(store, settings) as engine:
            details = await engine.get_details(await engine.resolve_instrument_id(key))
    except InstrumentNotFound as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        await _close_store(store)

    print(json.dumps(details.model_dump(mode="json"), indent=2))
    return 0


async def init_db() -> int:
    """Create the instrument table and seed the default universe."""
    settings = get_settings()
    if settings.store.is_memory:
        raise ConfigurationError("STORE_URL must be set to initialize a database")

    from marketsync.store.sql import SqlInstrumentStore

    store = SqlInstrumentStore(settings.store.url)
    try:
        await store.create_schema()
        inserted = await store.add_missing(default_instruments())
    finally:
        await store.close()
    print(f"[init-db] seeded={inserted}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Market data synchronization engine")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run the periodic refresh loop")
    sub.add_parser("refresh", help="Run one refresh pass and exit")
    details = sub.add_parser("details", help="Print details for one instrument")
    details.add_argument("instrument", help="Symbol (e.g. AAPL, bitcoin) or instrument id")
    sub.add_parser("init-db", help="Create tables and seed the default universe")
    args = parser.parse_args()

    configure_logging(get_settings().logging)

    if args.command == "run":
        return asyncio.run(run_forever())
    if args.command == "refresh":
        return asyncio.run(refresh_once())
    if args.command == "details":
        return asyncio.run(show_details(args.instrument))
    return asyncio.run(init_db())


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
