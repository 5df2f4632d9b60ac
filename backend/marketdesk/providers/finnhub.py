from __future__ import annotations

import datetime as dt
import time
from typing import Any

from marketdesk.errors import NoDataError, RateLimitedError, UnsupportedError
from marketdesk.providers.base import (
    ProviderAdapter,
    build_dividends,
    build_earnings,
    build_quote,
    build_time_series,
    looks_rate_limited,
    to_float,
)
from marketdesk.schemas.canonical import (
    CanonicalDividendList,
    CanonicalEarnings,
    CanonicalQuote,
    CanonicalTimeSeries,
    Endpoint,
)
from marketdesk.schemas.provider import ProviderSpec


_QUOTE_PATH = "/api/v1/quote"
_CANDLE_PATH = "/api/v1/stock/candle"
_DIVIDEND_PATH = "/api/v1/stock/dividend"
_EARNINGS_PATH = "/api/v1/stock/earnings"
_HISTORY_DAYS = 5 * 365


class FinnhubAdapter(ProviderAdapter):
    spec = ProviderSpec(
        name="Finnhub",
        endpoints=(
            Endpoint.QUOTE,
            Endpoint.TIME_SERIES,
            Endpoint.DIVIDENDS,
            Endpoint.EARNINGS,
        ),
        credential_setting="finnhub_api_key",
    )
    base_url = "https://finnhub.io"

    def build_request(
        self, symbol: str, endpoint: Endpoint, credential: str | None
    ) -> tuple[str, dict[str, str], dict[str, str]]:
        params = {"symbol": symbol, "token": credential or ""}
        if endpoint is Endpoint.QUOTE:
            return _QUOTE_PATH, params, {}
        if endpoint is Endpoint.TIME_SERIES:
            end_ts = int(time.time())
            start_ts = end_ts - _HISTORY_DAYS * 24 * 60 * 60
            params.update({"resolution": "D", "from": str(start_ts), "to": str(end_ts)})
            return _CANDLE_PATH, params, {}
        if endpoint is Endpoint.DIVIDENDS:
            today = dt.date.today()
            start = today - dt.timedelta(days=_HISTORY_DAYS)
            params.update({"from": start.isoformat(), "to": today.isoformat()})
            return _DIVIDEND_PATH, params, {}
        return _EARNINGS_PATH, params, {}

    def check_payload(self, payload: Any, endpoint: Endpoint) -> None:
        if isinstance(payload, dict) and payload.get("error"):
            message = str(payload["error"])
            if looks_rate_limited(message):
                raise RateLimitedError(self.name, message)
            if "access" in message.lower():
                raise UnsupportedError(self.name, message)
            raise NoDataError(self.name, message)
        if isinstance(payload, dict) and payload.get("s") == "no_data":
            raise NoDataError(self.name, "no_data")

    def _normalize_quote(self, raw: dict, symbol: str) -> CanonicalQuote:
        # Unknown symbols come back as an all-zero quote.
        if not to_float(raw.get("c")):
            raise NoDataError(self.name, "quote has no current price")
        return build_quote(
            self.name,
            symbol,
            open=raw.get("o"),
            high=raw.get("h"),
            low=raw.get("l"),
            close=raw.get("c"),
            volume=raw.get("v"),
            change=raw.get("d"),
            percent_change=raw.get("dp"),
            timestamp=raw.get("t"),
        )

    def _normalize_time_series(self, raw: dict, symbol: str) -> CanonicalTimeSeries:
        if raw.get("s") != "ok":
            raise NoDataError(self.name, f"candle status {raw.get('s')!r}")
        times = raw["t"]
        columns = {key: raw.get(key) or [] for key in ("o", "h", "l", "c", "v")}

        def column(key: str, index: int) -> Any:
            values = columns[key]
            return values[index] if index < len(values) else None

        rows = (
            {
                "datetime": ts,
                "open": column("o", index),
                "high": column("h", index),
                "low": column("l", index),
                "close": column("c", index),
                "volume": column("v", index),
            }
            for index, ts in enumerate(times)
        )
        return build_time_series(self.name, symbol, rows)

    def _normalize_dividends(self, raw: list, symbol: str) -> CanonicalDividendList:
        return build_dividends(
            self.name, symbol, ((item.get("date"), item.get("amount")) for item in raw)
        )

    def _normalize_earnings(self, raw: list, symbol: str) -> CanonicalEarnings:
        rows = (
            {
                "period": item.get("period"),
                "actual": item.get("actual"),
                "estimate": item.get("estimate"),
                "surprise": item.get("surprise"),
                "surprise_percent": item.get("surprisePercent"),
            }
            for item in raw
        )
        return build_earnings(self.name, symbol, rows)
