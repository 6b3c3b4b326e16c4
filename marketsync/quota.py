"""
Quota Tracker
Fixed-window call counting per upstream provider.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict

from marketsync.config import SyncSettings
from marketsync.core.ports import Clock
from marketsync.core.types import Provider, QuotaWindow

logger = logging.getLogger(__name__)


class QuotaTracker:
    """
    Non-blocking gate over per-provider call windows.

    A window starts on the first check and resets the moment a check
    observes that it has elapsed. Check-and-increment runs under a lock
    so two callers can never both take the last slot of a window.
    """

    def __init__(self, clock: Clock, limits: Dict[str, tuple[int, float]]) -> None:
        """
        Initialize quota tracker.

        Args:
            clock: Time source
            limits: provider -> (max_calls, window_seconds)
        """
        self._clock = clock
        self._lock = threading.Lock()
        now = clock.now()
        self._windows: Dict[str, QuotaWindow] = {}
        for provider, (max_calls, window_seconds) in limits.items():
            if max_calls <= 0 or window_seconds <= 0:
                raise ValueError(f"Invalid quota for {provider}: {max_calls}/{window_seconds}s")
            self._windows[provider] = QuotaWindow(
                max_calls=max_calls,
                window_seconds=window_seconds,
                window_started_at=now,
            )

    @classmethod
    def from_settings(cls, settings: SyncSettings, clock: Clock) -> "QuotaTracker":
        """Build a tracker with the configured stock and crypto limits."""
        return cls(
            clock,
            {
                Provider.STOCK.value: (
                    settings.alpha_vantage.max_calls,
                    settings.alpha_vantage.window_seconds,
                ),
                Provider.CRYPTO.value: (
                    settings.coingecko.max_calls,
                    settings.coingecko.window_seconds,
                ),
            },
        )

    def try_acquire(self, provider: str) -> bool:
        """
        Take one call permit for a provider.

        Returns:
            True if the caller may issue the upstream call, False if the
            current window is exhausted.

        Raises:
            KeyError: If the provider has no configured quota
        """
        with self._lock:
            window = self._windows[provider]
            now = self._clock.now()
            if window.has_elapsed(now):
                window.reset(now)

            if window.calls_made >= window.max_calls:
                logger.debug(f"Quota exhausted for {provider} ({window.calls_made}/{window.max_calls})")
                return False

            window.calls_made += 1
            return True

    def status(self) -> Dict[str, Dict[str, Any]]:
        """Get usage of every provider window."""
        with self._lock:
            now = self._clock.now()
            return {
                provider: {
                    "calls_made": 0 if window.has_elapsed(now) else window.calls_made,
                    "max_calls": window.max_calls,
                    "window_seconds": window.window_seconds,
                    "window_started_at": window.window_started_at,
                }
                for provider, window in self._windows.items()
            }
