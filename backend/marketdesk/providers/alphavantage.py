from __future__ import annotations

from typing import Any

from marketdesk.errors import NoDataError, RateLimitedError, UnsupportedError
from marketdesk.providers.base import (
    ProviderAdapter,
    build_cash_flow,
    build_earnings,
    build_income_statement,
    build_quote,
    build_time_series,
    to_float,
)
from marketdesk.schemas.canonical import (
    CanonicalCashFlow,
    CanonicalEarnings,
    CanonicalIncomeStatement,
    CanonicalQuote,
    CanonicalTimeSeries,
    Endpoint,
)
from marketdesk.schemas.provider import ProviderSpec


_FUNCTIONS = {
    Endpoint.QUOTE: "GLOBAL_QUOTE",
    Endpoint.TIME_SERIES: "TIME_SERIES_DAILY",
    Endpoint.EARNINGS: "EARNINGS",
    Endpoint.CASH_FLOW: "CASH_FLOW",
    Endpoint.INCOME_STATEMENT: "INCOME_STATEMENT",
}
_DAILY_KEY = "Time Series (Daily)"


def _outflow(value: Any) -> float | None:
    number = to_float(value)
    return -abs(number) if number is not None else None


class AlphaVantageAdapter(ProviderAdapter):
    """Alpha Vantage. Every value arrives as a string; "None" means missing."""

    spec = ProviderSpec(
        name="AlphaVantage",
        endpoints=tuple(_FUNCTIONS),
        credential_setting="alpha_vantage_api_key",
    )
    base_url = "https://www.alphavantage.co"

    def build_request(
        self, symbol: str, endpoint: Endpoint, credential: str | None
    ) -> tuple[str, dict[str, str], dict[str, str]]:
        params = {
            "function": _FUNCTIONS[endpoint],
            "symbol": symbol,
            "apikey": credential or "",
        }
        if endpoint is Endpoint.TIME_SERIES:
            params["outputsize"] = "compact"
        return "/query", params, {}

    def check_payload(self, payload: Any, endpoint: Endpoint) -> None:
        if not isinstance(payload, dict):
            return
        # Alpha Vantage answers 200 for throttling and plan restrictions alike.
        notice = payload.get("Note") or payload.get("Information")
        if notice:
            if "premium" in str(notice).lower():
                raise UnsupportedError(self.name, str(notice))
            raise RateLimitedError(self.name, str(notice))
        if payload.get("Error Message"):
            raise NoDataError(self.name, str(payload["Error Message"]))

    def _normalize_quote(self, raw: dict, symbol: str) -> CanonicalQuote:
        item = raw.get("Global Quote") or {}
        if not item:
            raise NoDataError(self.name, "empty Global Quote")
        return build_quote(
            self.name,
            symbol,
            open=item.get("02. open"),
            high=item.get("03. high"),
            low=item.get("04. low"),
            close=item.get("05. price"),
            volume=item.get("06. volume"),
            change=item.get("09. change"),
            percent_change=item.get("10. change percent"),
            timestamp=item.get("07. latest trading day"),
        )

    def _normalize_time_series(self, raw: dict, symbol: str) -> CanonicalTimeSeries:
        series = raw.get(_DAILY_KEY)
        if not series:
            raise NoDataError(self.name, f"missing {_DAILY_KEY!r}")
        rows = (
            {
                "datetime": day,
                "open": bar.get("1. open"),
                "high": bar.get("2. high"),
                "low": bar.get("3. low"),
                "close": bar.get("4. close"),
                "volume": bar.get("5. volume"),
            }
            for day, bar in series.items()
        )
        return build_time_series(self.name, symbol, rows)

    def _normalize_earnings(self, raw: dict, symbol: str) -> CanonicalEarnings:
        rows = (
            {
                "period": item.get("fiscalDateEnding"),
                "actual": item.get("reportedEPS"),
                "estimate": item.get("estimatedEPS"),
                "surprise": item.get("surprise"),
                "surprise_percent": item.get("surprisePercentage"),
            }
            for item in raw.get("quarterlyEarnings") or []
        )
        return build_earnings(self.name, symbol, rows)

    def _normalize_cash_flow(self, raw: dict, symbol: str) -> CanonicalCashFlow:
        rows = []
        for item in raw.get("annualReports") or []:
            operating = to_float(item.get("operatingCashflow"))
            capex = _outflow(item.get("capitalExpenditures"))
            free_cash_flow = (
                operating + capex if operating is not None and capex is not None else None
            )
            rows.append(
                {
                    "fiscal_date": item.get("fiscalDateEnding"),
                    "period": "FY",
                    "currency": item.get("reportedCurrency"),
                    "operating_cash_flow": operating,
                    "capital_expenditure": capex,
                    "free_cash_flow": free_cash_flow,
                    "dividends_paid": _outflow(item.get("dividendPayout")),
                }
            )
        return build_cash_flow(self.name, symbol, rows)

    def _normalize_income_statement(
        self, raw: dict, symbol: str
    ) -> CanonicalIncomeStatement:
        rows = (
            {
                "fiscal_date": item.get("fiscalDateEnding"),
                "period": "FY",
                "currency": item.get("reportedCurrency"),
                "revenue": item.get("totalRevenue"),
                "gross_profit": item.get("grossProfit"),
                "operating_income": item.get("operatingIncome"),
                "net_income": item.get("netIncome"),
            }
            for item in raw.get("annualReports") or []
        )
        return build_income_statement(self.name, symbol, rows)
