"""
Stock Quote Provider
Alpha Vantage REST adapter for equities.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp

from marketsync.config import AlphaVantageSettings, StockEndpoint
from marketsync.core.errors import InvalidResponse, UpstreamError
from marketsync.core.ports import Clock
from marketsync.core.types import Provider
from marketsync.models import NormalizedQuote
from marketsync.quota import QuotaTracker

from .base import QuoteProvider

logger = logging.getLogger(__name__)

# Keys Alpha Vantage uses for error, throttle and premium notices
ERROR_KEYS = ("Error Message", "Note", "Information")

# Trading days between the latest close and the weekly reference close
WEEKLY_LOOKBACK = 5


class StockQuoteProvider(QuoteProvider):
    """
    Alpha Vantage quote adapter.

    Supports two endpoints:
    - GLOBAL_QUOTE: latest quote with provider-computed change percent
    - TIME_SERIES_DAILY: daily bars; change derived from close vs open,
      weekly change from the close five trading days back
    """

    def __init__(
        self,
        settings: AlphaVantageSettings,
        session: aiohttp.ClientSession,
        quota: QuotaTracker,
        clock: Clock,
    ) -> None:
        super().__init__(Provider.STOCK.value, session, quota, clock)
        self._settings = settings

        if not settings.api_key:
            logger.warning("Alpha Vantage API key not configured - stock requests will be rejected upstream")

    @property
    def endpoint(self) -> StockEndpoint:
        return self._settings.endpoint

    async def _request(self, symbol: str) -> Any:
        function = "GLOBAL_QUOTE" if self.endpoint is StockEndpoint.GLOBAL_QUOTE else "TIME_SERIES_DAILY"
        params = {
            "function": function,
            "symbol": self.normalize_symbol(symbol),
            "apikey": self._settings.api_key,
        }
        return await self._get_json(self._settings.base_url, symbol, params)

    def _normalize(self, symbol: str, payload: Any) -> NormalizedQuote:
        if not isinstance(payload, dict):
            raise InvalidResponse("Payload is not an object", self.provider, symbol)

        for key in ERROR_KEYS:
            if key in payload:
                raise UpstreamError(f"{key}: {payload[key]}", self.provider, symbol)

        if self.endpoint is StockEndpoint.GLOBAL_QUOTE:
            return self._from_global_quote(symbol, payload)
        return self._from_daily_series(symbol, payload)

    def _from_global_quote(self, symbol: str, payload: Dict[str, Any]) -> NormalizedQuote:
        quote = payload.get("Global Quote")
        if not quote or not isinstance(quote, dict):
            raise InvalidResponse("Missing 'Global Quote'", self.provider, symbol)

        price = self._decimal(quote, "05. price", symbol)
        change_percent = self._decimal(quote, "10. change percent", symbol, required=False)
        if change_percent is None:
            change_percent = self._derived_change(symbol, price, self._decimal(quote, "02. open", symbol))

        return NormalizedQuote(
            price=price,
            change_percent=change_percent,
            high=self._decimal(quote, "03. high", symbol, required=False),
            low=self._decimal(quote, "04. low", symbol, required=False),
            volume=self._decimal(quote, "06. volume", symbol, required=False),
            observed_at=self._clock.now(),
        )

    def _from_daily_series(self, symbol: str, payload: Dict[str, Any]) -> NormalizedQuote:
        series = payload.get("Time Series (Daily)")
        if not series or not isinstance(series, dict):
            raise InvalidResponse("Missing 'Time Series (Daily)'", self.provider, symbol)

        # ISO dates sort chronologically
        dates = sorted(series.keys(), reverse=True)
        latest = series[dates[0]]
        if not isinstance(latest, dict):
            raise InvalidResponse(f"Malformed bar for {dates[0]}", self.provider, symbol)
        close = self._decimal(latest, "4. close", symbol)
        open_ = self._decimal(latest, "1. open", symbol)

        weekly: Optional[Decimal] = None
        if len(dates) > WEEKLY_LOOKBACK:
            reference = self._decimal(series[dates[WEEKLY_LOOKBACK]], "4. close", symbol, required=False)
            if reference is not None:
                weekly = self.percent_change(close, reference)

        return NormalizedQuote(
            price=close,
            change_percent=self._derived_change(symbol, close, open_),
            high=self._decimal(latest, "2. high", symbol, required=False),
            low=self._decimal(latest, "3. low", symbol, required=False),
            volume=self._decimal(latest, "5. volume", symbol, required=False),
            weekly_change_percent=weekly,
            observed_at=self._clock.now(),
        )

    def _derived_change(self, symbol: str, close: Decimal, open_: Decimal) -> Decimal:
        change = self.percent_change(close, open_)
        if change is None:
            raise InvalidResponse("Cannot derive change from open price", self.provider, symbol)
        return change

    @staticmethod
    def normalize_symbol(symbol: str) -> str:
        """
        Normalize US stock symbol.

        Exchange suffixes are dropped (e.g. "AAPL.US" -> "AAPL").
        """
        symbol = symbol.upper().strip()

        for suffix in [".US", ".NYSE", ".NASDAQ"]:
            if symbol.endswith(suffix):
                symbol = symbol[:-len(suffix)]

        return symbol
