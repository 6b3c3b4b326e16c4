"""Market data synchronization engine for stock and crypto instruments."""

__version__ = "0.1.0"
