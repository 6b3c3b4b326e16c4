"""Port definitions consumed by the engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence, Union

from marketsync.models import InstrumentRecord, NormalizedQuote

from .types import QuoteFailure

FetchResult = Union[NormalizedQuote, QuoteFailure]


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current UTC time."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for the given number of seconds."""


class QuoteSource(Protocol):
    @property
    def provider(self) -> str:
        """Provider identifier used for quota accounting."""

    async def fetch_quote(self, symbol: str) -> FetchResult:
        """Fetch and normalize one symbol, returning a failure instead of raising."""


class InstrumentStore(Protocol):
    async def list_all(self) -> Sequence[InstrumentRecord]:
        """Return every tracked instrument."""

    async def get(self, instrument_id: str) -> InstrumentRecord | None:
        """Return one instrument or None."""

    async def update(self, instrument_id: str, fields: Mapping[str, Any]) -> InstrumentRecord:
        """Atomically write normalized quote fields back to a record."""
