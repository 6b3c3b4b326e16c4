"""
Market Data Engine
Composition root wiring quota, cache, providers, scheduler and lookup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from marketsync.cache import QuoteCache
from marketsync.clock import SystemClock
from marketsync.config import SyncSettings, get_settings
from marketsync.core.errors import ConfigurationError, InstrumentNotFound
from marketsync.core.ports import Clock, InstrumentStore, QuoteSource
from marketsync.core.types import PassReport
from marketsync.lookup import LookupService
from marketsync.models import InstrumentDetails, InstrumentType
from marketsync.providers import build_providers
from marketsync.quota import QuotaTracker
from marketsync.scheduler import RefreshScheduler
from marketsync.store import InMemoryInstrumentStore, default_instruments

logger = logging.getLogger(__name__)


def build_store(settings: SyncSettings) -> InstrumentStore:
    """In-memory store seeded with the default universe, or a SQL store when a URL is set."""
    if settings.store.is_memory:
        return InMemoryInstrumentStore(default_instruments())

    from marketsync.store.sql import SqlInstrumentStore

    return SqlInstrumentStore(settings.store.url)


class MarketDataEngine:
    """
    Owns one quota tracker, one quote cache and the shared HTTP session.

    The scheduler and the lookup service draw from the same quota
    tracker, so interactive lookups and scheduled refreshes share each
    provider's budget.
    """

    def __init__(
        self,
        store: InstrumentStore,
        settings: Optional[SyncSettings] = None,
        *,
        clock: Optional[Clock] = None,
        providers: Optional[Mapping[InstrumentType, QuoteSource]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize engine.

        Args:
            store: Instrument persistence collaborator
            settings: Engine settings (default: environment)
            clock: Time source (default: system clock)
            providers: Prebuilt adapters; built from settings on open() when omitted
            session: HTTP session to reuse; created and owned by the engine when omitted
        """
        self.settings = settings or get_settings()
        self.store = store
        self.clock: Clock = clock or SystemClock()
        self.quota = QuotaTracker.from_settings(self.settings, self.clock)
        self.cache = QuoteCache(self.clock)

        self._providers = providers
        self._session = session
        self._owns_session = False
        self._scheduler: Optional[RefreshScheduler] = None
        self._lookup: Optional[LookupService] = None

    @property
    def scheduler(self) -> RefreshScheduler:
        if self._scheduler is None:
            raise ConfigurationError("Engine is not open")
        return self._scheduler

    @property
    def lookup(self) -> LookupService:
        if self._lookup is None:
            raise ConfigurationError("Engine is not open")
        return self._lookup

    async def open(self) -> None:
        """Build providers, scheduler and lookup service. Idempotent."""
        if self._scheduler is not None:
            return

        if self._providers is None:
            if self._session is None:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.settings.http.timeout_seconds),
                )
                self._owns_session = True
            self._providers = build_providers(self.settings, self._session, self.quota, self.clock)

        self._scheduler = RefreshScheduler.from_settings(
            self.settings, self.store, self._providers, self.cache, self.clock
        )
        self._lookup = LookupService(
            self.store,
            self._providers,
            self.cache,
            ttl_seconds=self.settings.cache.lookup_ttl_seconds,
        )

    async def start(self) -> None:
        """Open the engine and start the periodic refresh loop."""
        await self.open()
        await self.scheduler.start()

    async def stop(self) -> None:
        """Stop the refresh loop and release the HTTP session."""
        if self._scheduler is not None:
            await self._scheduler.stop()
        self._scheduler = None
        self._lookup = None

        if self._owns_session:
            if self._session is not None and not self._session.closed:
                await self._session.close()
            # Providers were bound to the closed session
            self._session = None
            self._providers = None
            self._owns_session = False

    async def __aenter__(self) -> "MarketDataEngine":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Entry points for the routing layer
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def get_details(self, instrument_id: str) -> InstrumentDetails:
        """Instrument details with the freshest available quote."""
        return await self.lookup.get_details(instrument_id)

    async def resolve_instrument_id(self, key: str) -> str:
        """
        Map a symbol (case-insensitive) or an id to the stored instrument id.

        Raises:
            InstrumentNotFound: If no instrument matches
        """
        for record in await self.store.list_all():
            if record.id == key or record.symbol.lower() == key.lower():
                return record.id
        raise InstrumentNotFound(key)

    def trigger_refresh_now(self) -> "asyncio.Task[PassReport]":
        """Queue an out-of-cadence pass; await the returned task for its report."""
        return self.scheduler.trigger()

    async def run_pass(self) -> PassReport:
        return await self.scheduler.run_pass()

    def status(self) -> Dict[str, Any]:
        """Diagnostics: quota usage, cache counters and scheduler state."""
        report = self._scheduler.last_report if self._scheduler else None
        return {
            "quota": self.quota.status(),
            "cache": self.cache.stats(),
            "scheduler": {
                "state": self._scheduler.state.value if self._scheduler else None,
                "running": self._scheduler.is_running if self._scheduler else False,
                "last_pass": {
                    "started_at": report.started_at,
                    "finished_at": report.finished_at,
                    "updated": len(report.updated),
                    "failed": report.failed,
                } if report else None,
            },
        }
