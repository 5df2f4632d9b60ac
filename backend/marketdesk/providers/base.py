"""Provider adapter base class.

Every upstream provider is one `ProviderAdapter` subclass. The base owns the
HTTP round-trip and maps transport failures onto the shared provider error
taxonomy; subclasses supply the request template, the provider-specific
error signals, and one `_normalize_<endpoint>` parser per supported
endpoint.

    fetch(symbol, endpoint, credential) -> raw payload
    normalize(raw, endpoint, symbol)    -> canonical model

`normalize` is pure: it never touches the network or the clock, so the same
payload always produces the same canonical object.
"""

from __future__ import annotations

import datetime as dt
import http.client
import json
import logging
import math
import re
from abc import ABC, abstractmethod
from typing import Any, Iterable
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from marketdesk.config.settings import settings
from marketdesk.errors import (
    MalformedResponseError,
    NetworkFailureError,
    NoDataError,
    ProviderError,
    RateLimitedError,
    UnsupportedError,
)
from marketdesk.schemas.canonical import (
    CanonicalCashFlow,
    CanonicalData,
    CanonicalDividendList,
    CanonicalEarnings,
    CanonicalIncomeStatement,
    CanonicalQuote,
    CanonicalTimeSeries,
    CashFlowReport,
    DividendEntry,
    EarningsEntry,
    Endpoint,
    IncomeStatementReport,
    TimeSeriesBar,
)
from marketdesk.schemas.provider import ProviderSpec

logger = logging.getLogger(__name__)

_USER_AGENT = "Mozilla/5.0 (compatible; marketdesk/0.1)"
_RATE_LIMIT_RE = re.compile(r"limit|exceeded|too many|credits|frequency", re.IGNORECASE)
_NULL_STRINGS = {"", "none", "null", "-", "n/a", "nan"}


def looks_rate_limited(message: Any) -> bool:
    return isinstance(message, str) and bool(_RATE_LIMIT_RE.search(message))


def to_float(value: Any) -> float | None:
    """Coerce an upstream numeric value, tolerating strings like "1.5%"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().rstrip("%").replace(",", "")
        if cleaned.lower() in _NULL_STRINGS:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_volume(value: Any) -> float:
    number = to_float(value)
    if number is None:
        return 0.0
    return float(int(number))


def to_date(value: Any) -> dt.date | None:
    """Parse "YYYY-MM-DD" (optionally with a time part) or a Unix timestamp."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return dt.datetime.fromtimestamp(int(value), tz=dt.UTC).date()
    if isinstance(value, str):
        text = value.strip()
        if len(text) < 10:
            return None
        try:
            return dt.date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


def to_timestamp(value: Any) -> dt.datetime | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        return dt.datetime.fromtimestamp(int(value), tz=dt.UTC)
    if isinstance(value, str) and value.strip():
        try:
            parsed = dt.datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.UTC)
        return parsed
    return None


def build_time_series(
    provider: str, symbol: str, rows: Iterable[dict[str, Any]]
) -> CanonicalTimeSeries:
    """Build an ascending time series from loosely-typed rows.

    Rows without a parseable date or any of open/high/low/close are dropped.
    Duplicate dates keep the last row seen.
    """
    by_date: dict[dt.date, TimeSeriesBar] = {}
    for row in rows:
        day = to_date(row.get("datetime"))
        prices = [to_float(row.get(key)) for key in ("open", "high", "low", "close")]
        if day is None or any(price is None for price in prices):
            continue
        open_, high, low, close = prices
        by_date[day] = TimeSeriesBar(
            datetime=day,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=to_volume(row.get("volume")),
        )
    if not by_date:
        raise NoDataError(provider, "time series has no usable bars")
    values = [by_date[day] for day in sorted(by_date)]
    return CanonicalTimeSeries(symbol=symbol, values=values)


def build_quote(
    provider: str,
    symbol: str,
    *,
    open: Any,
    high: Any,
    low: Any,
    close: Any,
    volume: Any,
    change: Any,
    percent_change: Any,
    timestamp: Any = None,
) -> CanonicalQuote:
    """Build a quote, treating any absent price field as no data."""
    prices = {
        "open": to_float(open),
        "high": to_float(high),
        "low": to_float(low),
        "close": to_float(close),
        "change": to_float(change),
        "percent_change": to_float(percent_change),
    }
    missing = [key for key, value in prices.items() if value is None]
    if missing:
        raise NoDataError(provider, f"quote missing {', '.join(missing)}")
    return CanonicalQuote(
        symbol=symbol,
        volume=to_volume(volume),
        datetime=to_timestamp(timestamp),
        **prices,
    )


def require_entries(provider: str, entries: list, what: str) -> list:
    if not entries:
        raise NoDataError(provider, f"no {what}")
    return entries


def build_dividends(
    provider: str, symbol: str, rows: Iterable[tuple[Any, Any]]
) -> CanonicalDividendList:
    """Build a dividend list from (ex_date, amount) pairs, newest first."""
    entries: list[DividendEntry] = []
    for ex_date, amount in rows:
        day = to_date(ex_date)
        value = to_float(amount)
        if day is None or value is None:
            continue
        entries.append(DividendEntry(ex_date=day, amount=value))
    require_entries(provider, entries, "dividends")
    entries.sort(key=lambda entry: entry.ex_date, reverse=True)
    return CanonicalDividendList(symbol=symbol, dividends=entries)


def build_earnings(
    provider: str, symbol: str, rows: Iterable[dict[str, Any]]
) -> CanonicalEarnings:
    """Build earnings from rows keyed period/actual/estimate/surprise/surprise_percent.

    Periods without a reported actual (upcoming quarters) are dropped.
    """
    entries: list[EarningsEntry] = []
    for row in rows:
        period = to_date(row.get("period"))
        actual = to_float(row.get("actual"))
        if period is None or actual is None:
            continue
        estimate = to_float(row.get("estimate"))
        surprise = to_float(row.get("surprise"))
        if surprise is None and estimate is not None:
            surprise = round(actual - estimate, 6)
        surprise_percent = to_float(row.get("surprise_percent"))
        if surprise_percent is None and surprise is not None and estimate:
            surprise_percent = round(surprise / abs(estimate) * 100, 6)
        entries.append(
            EarningsEntry(
                period=period,
                actual=actual,
                estimate=estimate,
                surprise=surprise,
                surprise_percent=surprise_percent,
            )
        )
    require_entries(provider, entries, "earnings")
    entries.sort(key=lambda entry: entry.period, reverse=True)
    return CanonicalEarnings(symbol=symbol, earnings=entries)


def _statement_reports(
    rows: Iterable[dict[str, Any]], report_type: type, headline: str, items: tuple[str, ...]
) -> list:
    reports = []
    for row in rows:
        fiscal_date = to_date(row.get("fiscal_date"))
        values = {key: to_float(row.get(key)) for key in (headline, *items)}
        if fiscal_date is None or values[headline] is None:
            continue
        reports.append(
            report_type(
                fiscal_date=fiscal_date,
                period=row.get("period") or None,
                currency=row.get("currency") or None,
                **values,
            )
        )
    reports.sort(key=lambda report: report.fiscal_date, reverse=True)
    return reports


def build_cash_flow(
    provider: str, symbol: str, rows: Iterable[dict[str, Any]]
) -> CanonicalCashFlow:
    reports = _statement_reports(
        rows,
        CashFlowReport,
        "operating_cash_flow",
        ("capital_expenditure", "free_cash_flow", "dividends_paid"),
    )
    require_entries(provider, reports, "cash flow reports")
    return CanonicalCashFlow(symbol=symbol, reports=reports)


def build_income_statement(
    provider: str, symbol: str, rows: Iterable[dict[str, Any]]
) -> CanonicalIncomeStatement:
    reports = _statement_reports(
        rows,
        IncomeStatementReport,
        "revenue",
        ("gross_profit", "operating_income", "net_income", "eps"),
    )
    require_entries(provider, reports, "income statements")
    return CanonicalIncomeStatement(symbol=symbol, reports=reports)


class ProviderAdapter(ABC):
    """Shared fetch and failure classification for one upstream provider."""

    spec: ProviderSpec
    base_url: str = ""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds

    @property
    def name(self) -> str:
        return self.spec.name

    def supports(self, endpoint: Endpoint) -> bool:
        return self.spec.supports(endpoint)

    @abstractmethod
    def build_request(
        self, symbol: str, endpoint: Endpoint, credential: str | None
    ) -> tuple[str, dict[str, str], dict[str, str]]:
        """Return (path, query params, extra headers) for one call."""

    def check_payload(self, payload: Any, endpoint: Endpoint) -> None:
        """Raise a ProviderError for provider-specific failure markers."""

    def _build_url(self, path: str, params: dict[str, str]) -> str:
        url = f"{self.base_url.rstrip('/')}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    def fetch(self, symbol: str, endpoint: Endpoint, credential: str | None) -> Any:
        if not self.supports(endpoint):
            raise UnsupportedError(self.name, f"endpoint {endpoint.value} not offered")

        path, params, headers = self.build_request(symbol, endpoint, credential)
        url = self._build_url(path, params)
        redacted = url.replace(credential, "***") if credential else url
        logger.info("%s request: %s", self.name, redacted)

        request = Request(url, headers={"User-Agent": _USER_AGENT, **headers})
        try:
            with urlopen(request, timeout=self._timeout) as response:
                body = response.read()
        except HTTPError as exc:
            if exc.code == 429:
                raise RateLimitedError(self.name, "HTTP 429") from exc
            if exc.code == 404:
                raise NoDataError(self.name, "HTTP 404") from exc
            raise NetworkFailureError(self.name, f"HTTP {exc.code}") from exc
        except (OSError, http.client.HTTPException) as exc:
            # URLError and timeouts are OSError; IncompleteRead is not wrapped by urllib
            raise NetworkFailureError(self.name, f"{type(exc).__name__}: {exc}") from exc

        try:
            payload = json.loads(body.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise MalformedResponseError(self.name, "response is not UTF-8") from exc
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(self.name, "response is not JSON") from exc

        if payload is None or payload == {} or payload == []:
            raise NoDataError(self.name, "empty response")
        try:
            self.check_payload(payload, endpoint)
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as exc:
            raise MalformedResponseError(self.name, f"{type(exc).__name__}: {exc}") from exc
        return payload

    def normalize(self, raw: Any, endpoint: Endpoint, symbol: str) -> CanonicalData:
        if not self.supports(endpoint):
            raise UnsupportedError(self.name, f"endpoint {endpoint.value} not offered")
        parser = getattr(self, f"_normalize_{endpoint.value}")
        try:
            return parser(raw, symbol)
        except ProviderError:
            raise
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as exc:
            # pydantic.ValidationError is a ValueError
            raise MalformedResponseError(self.name, f"{type(exc).__name__}: {exc}") from exc
