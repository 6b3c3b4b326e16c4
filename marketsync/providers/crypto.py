"""
Crypto Quote Provider
CoinGecko simple-price adapter.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

import aiohttp

from marketsync.config import CoinGeckoSettings
from marketsync.core.errors import InvalidResponse, UpstreamError
from marketsync.core.ports import Clock
from marketsync.core.types import Provider
from marketsync.models import NormalizedQuote
from marketsync.quota import QuotaTracker

from .base import QuoteProvider

logger = logging.getLogger(__name__)


class CryptoQuoteProvider(QuoteProvider):
    """
    CoinGecko quote adapter.

    The simple-price endpoint has no intraday range, so high and low
    are filled with the current price. Volume falls back to 0 when the
    provider omits it; a zero volume from this adapter means "unknown".
    """

    def __init__(
        self,
        settings: CoinGeckoSettings,
        session: aiohttp.ClientSession,
        quota: QuotaTracker,
        clock: Clock,
    ) -> None:
        super().__init__(Provider.CRYPTO.value, session, quota, clock)
        self._settings = settings

    @property
    def url(self) -> str:
        return f"{self._settings.base_url.rstrip('/')}/simple/price"

    async def _request(self, symbol: str) -> Any:
        params = {
            "ids": self.normalize_symbol(symbol),
            "vs_currencies": self._settings.vs_currency,
            "include_24hr_change": "true",
            "include_24hr_vol": "true",
            "include_last_updated_at": "true",
        }
        headers = {}
        if self._settings.api_key:
            headers["x-cg-demo-api-key"] = self._settings.api_key
        return await self._get_json(self.url, symbol, params, headers=headers)

    def _normalize(self, symbol: str, payload: Any) -> NormalizedQuote:
        if not isinstance(payload, dict):
            raise InvalidResponse("Payload is not an object", self.provider, symbol)

        self._raise_for_error_payload(symbol, payload)

        data = payload.get(self.normalize_symbol(symbol))
        if not isinstance(data, dict):
            raise InvalidResponse(f"No entry for {symbol!r}", self.provider, symbol)

        currency = self._settings.vs_currency.lower()
        price = self._decimal(data, currency, symbol)
        volume = self._decimal(data, f"{currency}_24h_vol", symbol, required=False)

        return NormalizedQuote(
            price=price,
            change_percent=self._decimal(data, f"{currency}_24h_change", symbol),
            high=price,
            low=price,
            volume=volume if volume is not None else Decimal("0"),
            weekly_change_percent=self._decimal(data, f"{currency}_7d_change", symbol, required=False),
            observed_at=self._observed_at(symbol, data),
        )

    def _raise_for_error_payload(self, symbol: str, payload: Dict[str, Any]) -> None:
        status = payload.get("status")
        if isinstance(status, dict) and status.get("error_code"):
            raise UpstreamError(
                f"error {status.get('error_code')}: {status.get('error_message', '')}",
                self.provider,
                symbol,
            )
        if "error" in payload:
            raise UpstreamError(f"error: {payload['error']}", self.provider, symbol)

    def _observed_at(self, symbol: str, data: Dict[str, Any]) -> datetime:
        updated = data.get("last_updated_at")
        if isinstance(updated, (int, float)) and updated > 0:
            try:
                return datetime.fromtimestamp(updated, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                raise InvalidResponse(f"Timestamp out of range: {updated!r}", self.provider, symbol)
        return self._clock.now()

    @staticmethod
    def normalize_symbol(symbol: str) -> str:
        """CoinGecko ids are lowercase slugs (e.g. "bitcoin", "avalanche-2")."""
        return symbol.lower().strip()
