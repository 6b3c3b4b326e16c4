"""
Shared Models for the Synchronization Engine
Pydantic schemas for instruments and normalized quotes.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Enums
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class InstrumentType(str, Enum):
    """Instrument type - selects the provider that refreshes the record."""
    STOCK = "stock"
    CRYPTO = "crypto"


class QuoteOrigin(str, Enum):
    """Where the quote in a detail response came from."""
    CACHE = "cache"
    LIVE = "live"
    STALE = "stale"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Quote Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class NormalizedQuote(BaseModel):
    """
    Provider-agnostic price snapshot.

    high/low/volume are optional: a provider that cannot supply them
    either leaves them unset or, for crypto, fills them from the price.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    price: Decimal
    change_percent: Decimal
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    weekly_change_percent: Optional[Decimal] = None
    observed_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def to_record_fields(self) -> dict[str, Any]:
        """Map the quote onto InstrumentRecord field names."""
        fields: dict[str, Any] = {
            "current_price": self.price,
            "daily_change": self.change_percent,
            "daily_high": self.high,
            "daily_low": self.low,
            "volume": self.volume,
            "last_updated": self.observed_at,
        }
        if self.weekly_change_percent is not None:
            fields["weekly_change"] = self.weekly_change_percent
        return fields


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Instrument Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

# Fields the engine is allowed to write back to a record.
QUOTE_FIELDS: frozenset[str] = frozenset({
    "current_price",
    "daily_change",
    "weekly_change",
    "daily_high",
    "daily_low",
    "volume",
    "last_updated",
})


class InstrumentRecord(BaseModel):
    """Persisted instrument - identity plus last known normalized fields."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid4()))
    symbol: str
    type: InstrumentType
    name: str
    current_price: Optional[Decimal] = None
    daily_change: Optional[Decimal] = None
    weekly_change: Optional[Decimal] = None
    daily_high: Optional[Decimal] = None
    daily_low: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    last_updated: Optional[datetime] = None

    def with_quote_fields(self, fields: dict[str, Any]) -> "InstrumentRecord":
        """Return a copy with quote fields replaced; identity fields are never touched."""
        unknown = set(fields) - QUOTE_FIELDS
        if unknown:
            raise ValueError(f"Not writable quote fields: {sorted(unknown)}")
        return self.model_copy(update=fields)


class InstrumentDetails(BaseModel):
    """Detail lookup response: the record merged with its freshest quote."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    instrument: InstrumentRecord
    quote: Optional[NormalizedQuote] = None
    origin: QuoteOrigin
