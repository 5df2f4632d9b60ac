from __future__ import annotations

from typing import Sequence

from marketdesk.config.settings import Settings, settings
from marketdesk.errors import ConfigError
from marketdesk.providers.alphavantage import AlphaVantageAdapter
from marketdesk.providers.base import ProviderAdapter
from marketdesk.providers.finnhub import FinnhubAdapter
from marketdesk.providers.fmp import FMPAdapter
from marketdesk.providers.twelvedata import TwelveDataAdapter
from marketdesk.providers.yahoo import YahooFinanceAdapter


ADAPTER_CLASSES: dict[str, type[ProviderAdapter]] = {
    cls.spec.name: cls
    for cls in (
        TwelveDataAdapter,
        FMPAdapter,
        FinnhubAdapter,
        AlphaVantageAdapter,
        YahooFinanceAdapter,
    )
}


class LocaleRouter:
    """Pick the ordered adapter list for a ticker symbol.

    Symbols listed on a local exchange (matched by suffix, case-insensitive)
    go to the locale provider alone. Everything else gets the default
    cascade in its configured order.
    """

    def __init__(
        self,
        default_adapters: Sequence[ProviderAdapter],
        locale_adapter: ProviderAdapter,
        locale_suffixes: Sequence[str],
    ) -> None:
        self._default = tuple(default_adapters)
        self._locale = locale_adapter
        self._suffixes = tuple(suffix.strip().upper() for suffix in locale_suffixes)

    @property
    def adapters(self) -> tuple[ProviderAdapter, ...]:
        return (*self._default, self._locale)

    def is_locale_symbol(self, symbol: str) -> bool:
        normalized = symbol.strip().upper()
        return any(normalized.endswith(suffix) for suffix in self._suffixes if suffix)

    def route(self, symbol: str) -> list[ProviderAdapter]:
        if self.is_locale_symbol(symbol):
            return [self._locale]
        return list(self._default)


def build_router(config: Settings | None = None) -> LocaleRouter:
    config = config or settings
    timeout = config.request_timeout_seconds
    unknown = [
        name
        for name in (*config.default_provider_order, config.locale_provider)
        if name not in ADAPTER_CLASSES
    ]
    if unknown:
        raise ConfigError(
            f"Unknown provider(s) in configuration: {', '.join(unknown)}",
            context={"providers": unknown},
        )
    default_adapters = [
        ADAPTER_CLASSES[name](timeout=timeout) for name in config.default_provider_order
    ]
    locale_adapter = ADAPTER_CLASSES[config.locale_provider](timeout=timeout)
    return LocaleRouter(default_adapters, locale_adapter, config.locale_suffixes)
