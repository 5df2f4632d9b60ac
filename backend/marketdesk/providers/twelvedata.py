from __future__ import annotations

from typing import Any

from marketdesk.errors import NoDataError, RateLimitedError, UnsupportedError
from marketdesk.providers.base import (
    ProviderAdapter,
    build_dividends,
    build_earnings,
    build_quote,
    build_time_series,
    looks_rate_limited,
)
from marketdesk.schemas.canonical import (
    CanonicalDividendList,
    CanonicalEarnings,
    CanonicalQuote,
    CanonicalTimeSeries,
    Endpoint,
)
from marketdesk.schemas.provider import ProviderSpec


_OUTPUT_SIZE = "1000"


class TwelveDataAdapter(ProviderAdapter):
    spec = ProviderSpec(
        name="TwelveData",
        endpoints=(
            Endpoint.QUOTE,
            Endpoint.TIME_SERIES,
            Endpoint.DIVIDENDS,
            Endpoint.EARNINGS,
        ),
        credential_setting="twelvedata_api_key",
    )
    base_url = "https://api.twelvedata.com"

    def build_request(
        self, symbol: str, endpoint: Endpoint, credential: str | None
    ) -> tuple[str, dict[str, str], dict[str, str]]:
        params = {"symbol": symbol, "apikey": credential or ""}
        if endpoint is Endpoint.TIME_SERIES:
            params.update({"interval": "1day", "outputsize": _OUTPUT_SIZE})
        return f"/{endpoint.value}", params, {}

    def check_payload(self, payload: Any, endpoint: Endpoint) -> None:
        if not isinstance(payload, dict) or payload.get("status") != "error":
            return
        code = payload.get("code")
        message = str(payload.get("message") or "")
        if code == 429 or looks_rate_limited(message):
            raise RateLimitedError(self.name, message)
        if code in (401, 403):
            raise UnsupportedError(self.name, message)
        raise NoDataError(self.name, message or f"error code {code}")

    def _normalize_quote(self, raw: dict, symbol: str) -> CanonicalQuote:
        return build_quote(
            self.name,
            symbol,
            open=raw.get("open"),
            high=raw.get("high"),
            low=raw.get("low"),
            close=raw.get("close"),
            volume=raw.get("volume"),
            change=raw.get("change"),
            percent_change=raw.get("percent_change"),
            timestamp=raw.get("timestamp"),
        )

    def _normalize_time_series(self, raw: dict, symbol: str) -> CanonicalTimeSeries:
        return build_time_series(self.name, symbol, raw["values"])

    def _normalize_dividends(self, raw: dict, symbol: str) -> CanonicalDividendList:
        return build_dividends(
            self.name,
            symbol,
            ((item.get("ex_date"), item.get("amount")) for item in raw.get("dividends") or []),
        )

    def _normalize_earnings(self, raw: dict, symbol: str) -> CanonicalEarnings:
        rows = (
            {
                "period": item.get("date"),
                "actual": item.get("eps_actual"),
                "estimate": item.get("eps_estimate"),
                "surprise": item.get("difference"),
                "surprise_percent": item.get("surprise_prc"),
            }
            for item in raw.get("earnings") or []
        )
        return build_earnings(self.name, symbol, rows)
