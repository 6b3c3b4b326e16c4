"""Clock adapters for the scheduler, quota tracker and cache."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone


class SystemClock:
    """
    UTC clock with real asyncio sleeps.

    The wall time is read once at construction and advanced with
    time.monotonic, so quota windows and cache TTLs never see time run
    backwards when the system clock is stepped.
    """

    def __init__(self) -> None:
        self._anchor = datetime.now(tz=timezone.utc)
        self._anchor_monotonic = time.monotonic()

    def now(self) -> datetime:
        return self._anchor + timedelta(seconds=time.monotonic() - self._anchor_monotonic)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
