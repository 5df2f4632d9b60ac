from __future__ import annotations

from typing import Any
from urllib.parse import quote

from marketdesk.errors import NoDataError, RateLimitedError, UnsupportedError
from marketdesk.providers.base import (
    ProviderAdapter,
    build_cash_flow,
    build_dividends,
    build_earnings,
    build_income_statement,
    build_quote,
    build_time_series,
    looks_rate_limited,
)
from marketdesk.schemas.canonical import (
    CanonicalCashFlow,
    CanonicalDividendList,
    CanonicalEarnings,
    CanonicalIncomeStatement,
    CanonicalQuote,
    CanonicalTimeSeries,
    Endpoint,
)
from marketdesk.schemas.provider import ProviderSpec


_PATHS = {
    Endpoint.QUOTE: "/api/v3/quote/{symbol}",
    Endpoint.TIME_SERIES: "/api/v3/historical-price-full/{symbol}",
    Endpoint.DIVIDENDS: "/api/v3/historical-price-full/stock_dividend/{symbol}",
    Endpoint.EARNINGS: "/api/v3/earnings-surprises/{symbol}",
    Endpoint.CASH_FLOW: "/api/v3/cash-flow-statement/{symbol}",
    Endpoint.INCOME_STATEMENT: "/api/v3/income-statement/{symbol}",
}
_STATEMENT_LIMIT = "40"


class FMPAdapter(ProviderAdapter):
    """Financial Modeling Prep. The only provider covering every endpoint."""

    spec = ProviderSpec(
        name="FMP",
        endpoints=tuple(_PATHS),
        credential_setting="fmp_api_key",
    )
    base_url = "https://financialmodelingprep.com"

    def build_request(
        self, symbol: str, endpoint: Endpoint, credential: str | None
    ) -> tuple[str, dict[str, str], dict[str, str]]:
        path = _PATHS[endpoint].format(symbol=quote(symbol, safe=""))
        params = {"apikey": credential or ""}
        if endpoint in (Endpoint.CASH_FLOW, Endpoint.INCOME_STATEMENT):
            params["limit"] = _STATEMENT_LIMIT
        return path, params, {}

    def check_payload(self, payload: Any, endpoint: Endpoint) -> None:
        if not isinstance(payload, dict):
            return
        message = payload.get("Error Message") or payload.get("error")
        if message:
            message = str(message)
            if looks_rate_limited(message):
                raise RateLimitedError(self.name, message)
            if "exclusive" in message.lower() or "subscription" in message.lower():
                raise UnsupportedError(self.name, message)
            raise NoDataError(self.name, message)
        if endpoint in (Endpoint.TIME_SERIES, Endpoint.DIVIDENDS) and not payload.get(
            "historical"
        ):
            raise NoDataError(self.name, "no historical entries")

    def _normalize_quote(self, raw: Any, symbol: str) -> CanonicalQuote:
        item = raw[0] if isinstance(raw, list) else raw
        return build_quote(
            self.name,
            symbol,
            open=item.get("open"),
            high=item.get("dayHigh"),
            low=item.get("dayLow"),
            close=item.get("price"),
            volume=item.get("volume"),
            change=item.get("change"),
            percent_change=item.get("changesPercentage"),
            timestamp=item.get("timestamp"),
        )

    def _normalize_time_series(self, raw: dict, symbol: str) -> CanonicalTimeSeries:
        rows = (
            {
                "datetime": item.get("date"),
                "open": item.get("open"),
                "high": item.get("high"),
                "low": item.get("low"),
                "close": item.get("close"),
                "volume": item.get("volume"),
            }
            for item in raw["historical"]
        )
        return build_time_series(self.name, symbol, rows)

    def _normalize_dividends(self, raw: dict, symbol: str) -> CanonicalDividendList:
        rows = (
            (
                item.get("date"),
                item.get("dividend")
                if item.get("dividend") is not None
                else item.get("adjDividend"),
            )
            for item in raw["historical"]
        )
        return build_dividends(self.name, symbol, rows)

    def _normalize_earnings(self, raw: list, symbol: str) -> CanonicalEarnings:
        rows = (
            {
                "period": item.get("date"),
                "actual": item.get("actualEarningResult"),
                "estimate": item.get("estimatedEarning"),
            }
            for item in raw
        )
        return build_earnings(self.name, symbol, rows)

    def _normalize_cash_flow(self, raw: list, symbol: str) -> CanonicalCashFlow:
        rows = (
            {
                "fiscal_date": item.get("date"),
                "period": item.get("period"),
                "currency": item.get("reportedCurrency"),
                "operating_cash_flow": item.get("operatingCashFlow"),
                "capital_expenditure": item.get("capitalExpenditure"),
                "free_cash_flow": item.get("freeCashFlow"),
                "dividends_paid": item.get("dividendsPaid"),
            }
            for item in raw
        )
        return build_cash_flow(self.name, symbol, rows)

    def _normalize_income_statement(
        self, raw: list, symbol: str
    ) -> CanonicalIncomeStatement:
        rows = (
            {
                "fiscal_date": item.get("date"),
                "period": item.get("period"),
                "currency": item.get("reportedCurrency"),
                "revenue": item.get("revenue"),
                "gross_profit": item.get("grossProfit"),
                "operating_income": item.get("operatingIncome"),
                "net_income": item.get("netIncome"),
                "eps": item.get("eps"),
            }
            for item in raw
        )
        return build_income_statement(self.name, symbol, rows)
