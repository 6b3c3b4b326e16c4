"""
Centralized Configuration for the Synchronization Engine
Uses Pydantic Settings with .env loading.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StockEndpoint(str, Enum):
    """Alpha Vantage function used for stock quotes."""
    GLOBAL_QUOTE = "global_quote"
    DAILY_SERIES = "daily_series"


class AlphaVantageSettings(BaseSettings):
    """Alpha Vantage (stock provider) settings."""
    model_config = SettingsConfigDict(env_prefix="ALPHA_VANTAGE_", env_file=".env", extra="ignore")

    api_key: str = ""
    base_url: str = "https://www.alphavantage.co/query"
    endpoint: StockEndpoint = StockEndpoint.GLOBAL_QUOTE
    max_calls: int = 5
    window_seconds: float = 60.0

    @field_validator("max_calls", "window_seconds")
    @classmethod
    def validate_quota(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("quota limits must be positive")
        return v


class CoinGeckoSettings(BaseSettings):
    """CoinGecko (crypto provider) settings."""
    model_config = SettingsConfigDict(env_prefix="COINGECKO_", env_file=".env", extra="ignore")

    api_key: str = ""  # Optional demo key, sent as a header when set
    base_url: str = "https://api.coingecko.com/api/v3"
    vs_currency: str = "usd"
    max_calls: int = 10
    window_seconds: float = 60.0

    @field_validator("max_calls", "window_seconds")
    @classmethod
    def validate_quota(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("quota limits must be positive")
        return v


class SchedulerSettings(BaseSettings):
    """Refresh scheduler cadence settings."""
    model_config = SettingsConfigDict(env_prefix="REFRESH_", env_file=".env", extra="ignore")

    batch_size: int = 5
    batch_delay_seconds: float = 300.0
    pass_interval_seconds: float = 900.0
    run_on_startup: bool = True

    @field_validator("batch_size", "pass_interval_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("batch_delay_seconds")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("batch delay cannot be negative")
        return v


class CacheSettings(BaseSettings):
    """Quote cache TTL settings."""
    model_config = SettingsConfigDict(env_prefix="CACHE_", env_file=".env", extra="ignore")

    scheduled_ttl_seconds: float = 900.0
    lookup_ttl_seconds: float = 300.0

    @field_validator("scheduled_ttl_seconds", "lookup_ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("cache TTLs must be positive")
        return v


class StoreSettings(BaseSettings):
    """Instrument store settings."""
    model_config = SettingsConfigDict(env_prefix="STORE_", env_file=".env", extra="ignore")

    url: str = ""  # Empty: in-memory store seeded with the default universe

    @property
    def is_memory(self) -> bool:
        return not self.url


class HttpSettings(BaseSettings):
    """Outbound HTTP settings."""
    model_config = SettingsConfigDict(env_prefix="HTTP_", env_file=".env", extra="ignore")

    timeout_seconds: float = 10.0


class LoggingSettings(BaseSettings):
    """Logging settings."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


class SyncSettings(BaseSettings):
    """Main engine settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings (loaded from same .env)
    alpha_vantage: AlphaVantageSettings = Field(default_factory=AlphaVantageSettings)
    coingecko: CoinGeckoSettings = Field(default_factory=CoinGeckoSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache()
def get_settings() -> SyncSettings:
    """Get cached settings instance."""
    return SyncSettings()


def reload_settings() -> SyncSettings:
    """Force reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
