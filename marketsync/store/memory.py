"""In-process instrument store."""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from marketsync.core.errors import InstrumentNotFound
from marketsync.models import InstrumentRecord


class InMemoryInstrumentStore:
    """Lock-guarded dict of records; updates replace the whole record at once."""

    def __init__(self, records: Iterable[InstrumentRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, InstrumentRecord] = {}
        self._symbols: set[str] = set()
        for record in records:
            self.add(record)

    def add(self, record: InstrumentRecord) -> None:
        """Register a record; symbols must be unique."""
        with self._lock:
            if record.symbol in self._symbols:
                raise ValueError(f"Duplicate symbol: {record.symbol}")
            self._records[record.id] = record
            self._symbols.add(record.symbol)

    async def list_all(self) -> List[InstrumentRecord]:
        with self._lock:
            return list(self._records.values())

    async def get(self, instrument_id: str) -> Optional[InstrumentRecord]:
        with self._lock:
            return self._records.get(instrument_id)

    async def update(self, instrument_id: str, fields: Mapping[str, Any]) -> InstrumentRecord:
        with self._lock:
            current = self._records.get(instrument_id)
            if current is None:
                raise InstrumentNotFound(instrument_id)
            updated = current.with_quote_fields(dict(fields))
            self._records[instrument_id] = updated
            return updated
