"""Core value types shared by the quota tracker, cache and providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from .errors import InvalidResponse, QuoteError, RateLimited, UpstreamError

if TYPE_CHECKING:
    from marketsync.models import NormalizedQuote


class Provider(str, Enum):
    """Upstream market data providers."""
    STOCK = "stock"
    CRYPTO = "crypto"


class FailureKind(str, Enum):
    """Kinds of per-instrument fetch failure."""
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"
    INVALID_RESPONSE = "invalid_response"
    UNEXPECTED = "unexpected"


_KIND_BY_ERROR: dict[type[QuoteError], FailureKind] = {
    RateLimited: FailureKind.RATE_LIMITED,
    UpstreamError: FailureKind.UPSTREAM_ERROR,
    InvalidResponse: FailureKind.INVALID_RESPONSE,
}


@dataclass(frozen=True)
class QuoteFailure:
    """Typed failure returned by a provider instead of raising."""
    kind: FailureKind
    provider: str
    symbol: str
    message: str

    @property
    def retryable(self) -> bool:
        return self.kind is not FailureKind.UNEXPECTED

    @classmethod
    def from_error(cls, error: QuoteError) -> "QuoteFailure":
        kind = FailureKind.UNEXPECTED
        for error_type, mapped in _KIND_BY_ERROR.items():
            if isinstance(error, error_type):
                kind = mapped
                break
        return cls(kind=kind, provider=error.provider, symbol=error.symbol, message=str(error))


@dataclass(frozen=True)
class CacheEntry:
    quote: "NormalizedQuote"
    cached_at: datetime
    ttl_seconds: float

    @property
    def expires_at(self) -> datetime:
        return self.cached_at + timedelta(seconds=self.ttl_seconds)

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass
class QuotaWindow:
    """Mutable per-provider call counter; only the quota tracker touches it."""
    max_calls: int
    window_seconds: float
    window_started_at: datetime
    calls_made: int = 0

    def has_elapsed(self, now: datetime) -> bool:
        return now - self.window_started_at >= timedelta(seconds=self.window_seconds)

    def reset(self, now: datetime) -> None:
        self.window_started_at = now
        self.calls_made = 0

    @property
    def remaining(self) -> int:
        return max(self.max_calls - self.calls_made, 0)


class SchedulerState(str, Enum):
    """Refresh scheduler states within one pass."""
    IDLE = "idle"
    RUNNING_BATCH = "running_batch"
    PAUSED = "paused"


@dataclass
class PassReport:
    """Outcome of one full sweep of the instrument universe."""
    started_at: datetime
    finished_at: datetime | None = None
    instruments: int = 0
    batches: int = 0
    updated: list[str] = field(default_factory=list)
    failures: dict[str, FailureKind] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def failures_by_kind(self) -> dict[FailureKind, int]:
        counts: dict[FailureKind, int] = {}
        for kind in self.failures.values():
            counts[kind] = counts.get(kind, 0) + 1
        return counts
