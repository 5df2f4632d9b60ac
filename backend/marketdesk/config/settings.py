from __future__ import annotations

from typing import List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MARKETDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )
    twelvedata_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "TWELVEDATA_API_KEY", "MARKETDESK_TWELVEDATA_API_KEY"
        ),
    )
    fmp_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("FMP_API_KEY", "MARKETDESK_FMP_API_KEY"),
    )
    finnhub_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("FINNHUB_API_KEY", "MARKETDESK_FINNHUB_API_KEY"),
    )
    alpha_vantage_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "ALPHA_VANTAGE_API_KEY", "MARKETDESK_ALPHA_VANTAGE_API_KEY"
        ),
    )

    def credential_for(self, setting_name: str | None) -> str | None:
        """Look up a provider credential by its setting name.

        Blank values count as missing so an empty env var never reaches an
        upstream request.
        """
        if setting_name is None:
            return None
        value = getattr(self, setting_name, None)
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()


class BatchSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MARKETDESK_BATCH_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
    queue_name: str = "batch-fetch"
    data_dir: str = "data"
    symbols_file: str = "stocks.txt"
    size: int = 50
    request_interval_seconds: float = 1.2
    endpoints: List[str] = Field(
        default_factory=lambda: [
            "quote",
            "time_series",
            "dividends",
            "earnings",
            "cash_flow",
            "income_statement",
        ]
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MARKETDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "MARKETDESK_REDIS_URL"),
    )
    log_level: str = "INFO"
    request_timeout_seconds: float = 10.0

    cache_backend: str = "memory"
    cache_ttl_seconds: int = 1800
    quote_cache_ttl_seconds: int = 300
    cache_max_entries: int = 1024

    locale_suffixes: List[str] = Field(default_factory=lambda: [".NS", ".BO"])
    default_provider_order: List[str] = Field(
        default_factory=lambda: ["TwelveData", "FMP", "Finnhub", "AlphaVantage"]
    )
    locale_provider: str = "Yahoo Finance"

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)


settings = Settings()
