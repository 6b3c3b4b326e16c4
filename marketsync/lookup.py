"""
Lookup Service
Request-time instrument details with cached, live or stale quotes.
"""

from __future__ import annotations

import logging
from typing import Mapping

from marketsync.cache import QuoteCache
from marketsync.core.errors import InstrumentNotFound
from marketsync.core.ports import InstrumentStore, QuoteSource
from marketsync.core.types import QuoteFailure
from marketsync.models import InstrumentDetails, InstrumentType, QuoteOrigin

logger = logging.getLogger(__name__)


class LookupService:
    """
    Read-through lookup over the quote cache.

    Freshness is best effort: any fetch failure, including an exhausted
    quota, falls back to the last persisted fields. The only error a
    caller sees is InstrumentNotFound.
    """

    def __init__(
        self,
        store: InstrumentStore,
        providers: Mapping[InstrumentType, QuoteSource],
        cache: QuoteCache,
        ttl_seconds: float = 300.0,
    ) -> None:
        self._store = store
        self._providers = providers
        self._cache = cache
        self._ttl = ttl_seconds

    async def get_details(self, instrument_id: str) -> InstrumentDetails:
        """
        Get an instrument merged with its freshest available quote.

        Raises:
            InstrumentNotFound: If no instrument has this id
        """
        record = await self._store.get(instrument_id)
        if record is None:
            raise InstrumentNotFound(instrument_id)

        entry = self._cache.get(instrument_id)
        if entry is not None:
            return InstrumentDetails(
                instrument=record.with_quote_fields(entry.quote.to_record_fields()),
                quote=entry.quote,
                origin=QuoteOrigin.CACHE,
            )

        provider = self._providers.get(record.type)
        if provider is None:
            logger.warning(f"No provider for {record.symbol} ({record.type.value}), serving stored data")
            return InstrumentDetails(instrument=record, origin=QuoteOrigin.STALE)

        try:
            result = await provider.fetch_quote(record.symbol)
        except Exception:
            logger.exception(f"Unexpected error fetching {record.symbol}, serving stored data")
            return InstrumentDetails(instrument=record, origin=QuoteOrigin.STALE)

        if isinstance(result, QuoteFailure):
            logger.info(f"Serving stored data for {record.symbol}: {result.kind.value}")
            return InstrumentDetails(instrument=record, origin=QuoteOrigin.STALE)

        fields = result.to_record_fields()
        self._cache.put(instrument_id, result, self._ttl)
        try:
            updated = await self._store.update(instrument_id, fields)
        except Exception:
            logger.exception(f"Failed to persist live quote for {record.symbol}")
            updated = record.with_quote_fields(fields)

        return InstrumentDetails(instrument=updated, quote=result, origin=QuoteOrigin.LIVE)
