"""Core contracts for the synchronization engine."""

from marketsync.core.errors import (
    ConfigurationError,
    InstrumentNotFound,
    InvalidResponse,
    MarketSyncError,
    QuoteError,
    RateLimited,
    UpstreamError,
)
from marketsync.core.types import (
    CacheEntry,
    FailureKind,
    PassReport,
    Provider,
    QuotaWindow,
    QuoteFailure,
    SchedulerState,
)

__all__ = [
    "MarketSyncError",
    "ConfigurationError",
    "QuoteError",
    "RateLimited",
    "UpstreamError",
    "InvalidResponse",
    "InstrumentNotFound",
    "CacheEntry",
    "FailureKind",
    "PassReport",
    "Provider",
    "QuotaWindow",
    "QuoteFailure",
    "SchedulerState",
]
