"""Typed errors for quote fetching and instrument lookup."""

from __future__ import annotations


class MarketSyncError(Exception):
    """Base class for marketsync errors."""


class ConfigurationError(MarketSyncError):
    """Raised when settings cannot produce a working engine."""


class QuoteError(MarketSyncError):
    """Base class for expected failures while fetching one symbol's quote."""

    retryable = True

    def __init__(self, message: str, provider: str, symbol: str) -> None:
        self.provider = provider
        self.symbol = symbol
        super().__init__(f"[{provider}:{symbol}] {message}")


class RateLimited(QuoteError):
    """Raised when the provider quota window has no capacity left."""


class UpstreamError(QuoteError):
    """Raised on transport failures, non-200 responses and provider error payloads."""


class InvalidResponse(QuoteError):
    """Raised when the upstream payload is missing or has malformed fields."""


class InstrumentNotFound(MarketSyncError):
    """Raised when an instrument id does not exist in the store."""

    def __init__(self, instrument_id: str) -> None:
        self.instrument_id = instrument_id
        super().__init__(f"Instrument not found: {instrument_id}")
