"""Default instrument universe used to seed an empty store."""

from typing import Dict, List

from marketsync.models import InstrumentRecord, InstrumentType

DEFAULT_UNIVERSE: Dict[InstrumentType, Dict[str, str]] = {
    InstrumentType.STOCK: {
        "AAPL": "Apple Inc.",
        "MSFT": "Microsoft Corporation",
        "GOOGL": "Alphabet Inc.",
        "AMZN": "Amazon.com Inc.",
        "META": "Meta Platforms Inc.",
        "TSLA": "Tesla Inc.",
        "NVDA": "NVIDIA Corporation",
        "JPM": "JPMorgan Chase & Co.",
        "V": "Visa Inc.",
        "WMT": "Walmart Inc.",
    },
    InstrumentType.CRYPTO: {
        "bitcoin": "Bitcoin",
        "ethereum": "Ethereum",
        "binancecoin": "BNB",
        "ripple": "XRP",
        "cardano": "Cardano",
        "solana": "Solana",
        "polkadot": "Polkadot",
        "dogecoin": "Dogecoin",
        "avalanche-2": "Avalanche",
        "polygon": "Polygon",
    },
}


def default_instruments() -> List[InstrumentRecord]:
    """Build records for the default universe with no quote data yet."""
    return [
        InstrumentRecord(symbol=symbol, name=name, type=instrument_type)
        for instrument_type, symbols in DEFAULT_UNIVERSE.items()
        for symbol, name in symbols.items()
    ]
