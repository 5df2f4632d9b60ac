"""Yahoo Finance chart adapter, the locale provider for Indian exchanges.

Uses the unauthenticated ``/v8/finance/chart/`` endpoint directly. The
endpoint is undocumented and public, so its availability is not guaranteed.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from marketdesk.errors import MalformedResponseError, NoDataError
from marketdesk.providers.base import (
    ProviderAdapter,
    build_dividends,
    build_quote,
    build_time_series,
    to_float,
)
from marketdesk.schemas.canonical import (
    CanonicalDividendList,
    CanonicalQuote,
    CanonicalTimeSeries,
    Endpoint,
)
from marketdesk.schemas.provider import ProviderSpec


_CHART_PATH = "/v8/finance/chart/{symbol}"
_PARAMS = {
    Endpoint.QUOTE: {"interval": "1d", "range": "1d"},
    Endpoint.TIME_SERIES: {"interval": "1d", "range": "5y"},
    Endpoint.DIVIDENDS: {"interval": "1d", "range": "10y", "events": "div"},
}


def _first(values: Any) -> Any:
    if isinstance(values, list) and values:
        return values[0]
    return None


class YahooFinanceAdapter(ProviderAdapter):
    spec = ProviderSpec(
        name="Yahoo Finance",
        endpoints=tuple(_PARAMS),
        credential_setting=None,
    )
    base_url = "https://query1.finance.yahoo.com"

    def build_request(
        self, symbol: str, endpoint: Endpoint, credential: str | None
    ) -> tuple[str, dict[str, str], dict[str, str]]:
        path = _CHART_PATH.format(symbol=quote(symbol, safe=""))
        return path, dict(_PARAMS[endpoint]), {}

    def check_payload(self, payload: Any, endpoint: Endpoint) -> None:
        chart = payload.get("chart") if isinstance(payload, dict) else None
        if not isinstance(chart, dict):
            raise MalformedResponseError(self.name, "missing chart object")
        error = chart.get("error")
        if error and not isinstance(error, dict):
            raise MalformedResponseError(self.name, str(error))
        if error:
            description = str(error.get("description") or error.get("code") or error)
            if str(error.get("code", "")).lower() == "not found":
                raise NoDataError(self.name, description)
            raise MalformedResponseError(self.name, description)
        if not chart.get("result"):
            raise NoDataError(self.name, "empty chart result")

    @staticmethod
    def _result(raw: dict) -> dict:
        return raw["chart"]["result"][0]

    def _normalize_quote(self, raw: dict, symbol: str) -> CanonicalQuote:
        result = self._result(raw)
        meta = result.get("meta") or {}
        bars = (result.get("indicators") or {}).get("quote") or [{}]
        bar = bars[0]
        price = to_float(meta.get("regularMarketPrice"))
        previous = to_float(meta.get("previousClose") or meta.get("chartPreviousClose"))
        if price is None or not previous:
            raise NoDataError(self.name, "quote has no price or previous close")
        change = price - previous
        open_ = _first(bar.get("open"))
        high = _first(bar.get("high"))
        low = _first(bar.get("low"))
        volume = _first(bar.get("volume"))
        return build_quote(
            self.name,
            symbol,
            open=open_ if open_ is not None else meta.get("regularMarketOpen"),
            high=high if high is not None else meta.get("regularMarketDayHigh"),
            low=low if low is not None else meta.get("regularMarketDayLow"),
            close=price,
            volume=volume if volume is not None else meta.get("regularMarketVolume"),
            change=change,
            percent_change=change / previous * 100,
            timestamp=meta.get("regularMarketTime"),
        )

    def _normalize_time_series(self, raw: dict, symbol: str) -> CanonicalTimeSeries:
        result = self._result(raw)
        timestamps = result.get("timestamp") or []
        bars = (result.get("indicators") or {}).get("quote") or [{}]
        bar = bars[0]

        def column(key: str, index: int) -> Any:
            values = bar.get(key) or []
            return values[index] if index < len(values) else None

        rows = (
            {
                "datetime": ts,
                "open": column("open", index),
                "high": column("high", index),
                "low": column("low", index),
                "close": column("close", index),
                "volume": column("volume", index),
            }
            for index, ts in enumerate(timestamps)
        )
        return build_time_series(self.name, symbol, rows)

    def _normalize_dividends(self, raw: dict, symbol: str) -> CanonicalDividendList:
        result = self._result(raw)
        dividends = (result.get("events") or {}).get("dividends") or {}
        return build_dividends(
            self.name,
            symbol,
            ((item.get("date"), item.get("amount")) for item in dividends.values()),
        )
