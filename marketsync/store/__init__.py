"""Instrument store implementations."""

from marketsync.store.memory import InMemoryInstrumentStore
from marketsync.store.seed import DEFAULT_UNIVERSE, default_instruments

__all__ = ["InMemoryInstrumentStore", "DEFAULT_UNIVERSE", "default_instruments"]
