"""
Abstract Quote Provider Interface
Base class for per-provider quote adapters.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

import aiohttp

from marketsync.core.errors import InvalidResponse, QuoteError, RateLimited, UpstreamError
from marketsync.core.ports import Clock, FetchResult
from marketsync.core.types import QuoteFailure
from marketsync.models import NormalizedQuote
from marketsync.quota import QuotaTracker

logger = logging.getLogger(__name__)

PERCENT_PLACES = Decimal("0.0001")


class QuoteProvider(ABC):
    """
    Abstract base class for upstream quote adapters.

    Each provider (stock, crypto) implements _request and _normalize;
    the base class owns the quota gate and converts expected failures
    into QuoteFailure values.
    """

    def __init__(
        self,
        provider: str,
        session: aiohttp.ClientSession,
        quota: QuotaTracker,
        clock: Clock,
    ) -> None:
        """
        Initialize quote provider.

        Args:
            provider: Provider identifier used for quota accounting
            session: Shared HTTP session (owned by the caller)
            quota: Quota tracker shared with every other caller
            clock: Time source for observation timestamps
        """
        self._provider = provider
        self._session = session
        self._quota = quota
        self._clock = clock

    @property
    def provider(self) -> str:
        """Get provider identifier."""
        return self._provider

    async def fetch_quote(self, symbol: str) -> FetchResult:
        """
        Fetch and normalize one symbol's quote.

        The quota gate is checked before any network call. Expected
        failures come back as QuoteFailure, never as exceptions.

        Args:
            symbol: Provider symbol (ticker or coin id)

        Returns:
            NormalizedQuote on success, QuoteFailure otherwise
        """
        try:
            if not self._quota.try_acquire(self._provider):
                raise RateLimited("quota window exhausted", self._provider, symbol)
            payload = await self._request(symbol)
            try:
                return self._normalize(symbol, payload)
            except (ArithmeticError, ValueError, TypeError, OSError) as e:
                raise InvalidResponse(f"Unusable payload: {e!r}", self._provider, symbol)
        except QuoteError as e:
            logger.warning(f"Quote fetch failed: {e}")
            return QuoteFailure.from_error(e)

    @abstractmethod
    async def _request(self, symbol: str) -> Any:
        """
        Issue the upstream call for one symbol.

        Raises:
            UpstreamError: On transport failure or provider error payload
            InvalidResponse: If the body is not JSON
        """
        pass

    @abstractmethod
    def _normalize(self, symbol: str, payload: Any) -> NormalizedQuote:
        """
        Convert a provider payload into a NormalizedQuote.

        Raises:
            UpstreamError: If the payload is a provider-side error
            InvalidResponse: If required fields are missing or malformed
        """
        pass

    async def _get_json(
        self,
        url: str,
        symbol: str,
        params: Mapping[str, str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """GET a JSON document, mapping transport and decode failures to QuoteError."""
        try:
            async with self._session.get(url, params=params, headers=headers) as response:
                if response.status != 200:
                    raise UpstreamError(f"HTTP {response.status}", self._provider, symbol)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise InvalidResponse(f"Body is not JSON: {e}", self._provider, symbol)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"Transport failure: {e!r}", self._provider, symbol)

    def _decimal(
        self,
        data: Mapping[str, Any],
        key: str,
        symbol: str,
        required: bool = True,
    ) -> Optional[Decimal]:
        """
        Read a numeric field as Decimal.

        Strings with a trailing percent sign are accepted.
        """
        if not isinstance(data, Mapping):
            raise InvalidResponse(f"Expected an object holding {key!r}", self._provider, symbol)

        value = data.get(key)
        if value is None or value == "":
            if required:
                raise InvalidResponse(f"Missing field {key!r}", self._provider, symbol)
            return None

        try:
            text = str(value).strip().rstrip("%")
            result = Decimal(text)
        except (InvalidOperation, ValueError):
            raise InvalidResponse(f"Malformed field {key!r}: {value!r}", self._provider, symbol)

        if not result.is_finite():
            raise InvalidResponse(f"Non-finite field {key!r}: {value!r}", self._provider, symbol)
        return result

    @staticmethod
    def percent_change(current: Decimal, reference: Decimal) -> Optional[Decimal]:
        """Percent change from reference to current, None if reference is zero or the result overflows."""
        if reference == 0:
            return None
        try:
            return ((current - reference) / reference * 100).quantize(PERCENT_PLACES)
        except InvalidOperation:
            return None
