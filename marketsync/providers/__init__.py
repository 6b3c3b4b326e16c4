"""Quote provider adapters keyed by instrument type."""

from typing import Dict

import aiohttp

from marketsync.config import SyncSettings
from marketsync.core.ports import Clock
from marketsync.models import InstrumentType
from marketsync.quota import QuotaTracker
from marketsync.providers.base import QuoteProvider
from marketsync.providers.crypto import CryptoQuoteProvider
from marketsync.providers.stock import StockQuoteProvider


def build_providers(
    settings: SyncSettings,
    session: aiohttp.ClientSession,
    quota: QuotaTracker,
    clock: Clock,
) -> Dict[InstrumentType, QuoteProvider]:
    """Create one adapter per instrument type sharing a session and quota tracker."""
    return {
        InstrumentType.STOCK: StockQuoteProvider(settings.alpha_vantage, session, quota, clock),
        InstrumentType.CRYPTO: CryptoQuoteProvider(settings.coingecko, session, quota, clock),
    }


__all__ = ["QuoteProvider", "StockQuoteProvider", "CryptoQuoteProvider", "build_providers"]
