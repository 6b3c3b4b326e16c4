"""
Quote Cache
Thread-safe expiring store of normalized quotes keyed by instrument id.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from marketsync.core.ports import Clock
from marketsync.core.types import CacheEntry
from marketsync.models import NormalizedQuote

logger = logging.getLogger(__name__)


class QuoteCache:
    """
    Pure expiring key/value store.

    Callers implement read-through. Entries are replaced wholesale on
    put and dropped lazily when a get observes them expired; there is
    no sweeper.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "expired": 0, "puts": 0}

    def get(self, instrument_id: str) -> Optional[CacheEntry]:
        """Return the entry for an instrument, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(instrument_id)
            if entry is None:
                self._stats["misses"] += 1
                return None

            if not entry.is_fresh(self._clock.now()):
                del self._entries[instrument_id]
                self._stats["expired"] += 1
                self._stats["misses"] += 1
                return None

            self._stats["hits"] += 1
            return entry

    def put(self, instrument_id: str, quote: NormalizedQuote, ttl_seconds: float) -> CacheEntry:
        """Store a quote for ttl_seconds, replacing any previous entry."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        entry = CacheEntry(quote=quote, cached_at=self._clock.now(), ttl_seconds=ttl_seconds)
        with self._lock:
            self._entries[instrument_id] = entry
            self._stats["puts"] += 1
        return entry

    def invalidate(self, instrument_id: str) -> None:
        with self._lock:
            self._entries.pop(instrument_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Get hit/miss counters and current size (expired entries included until read)."""
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / total * 100) if total else 0.0
            return {
                **self._stats,
                "size": len(self._entries),
                "hit_rate": round(hit_rate, 2),
            }
