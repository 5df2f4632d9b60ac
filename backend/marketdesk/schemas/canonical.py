from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Endpoint(str, Enum):
    QUOTE = "quote"
    TIME_SERIES = "time_series"
    DIVIDENDS = "dividends"
    EARNINGS = "earnings"
    CASH_FLOW = "cash_flow"
    INCOME_STATEMENT = "income_statement"


class CanonicalModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class CanonicalQuote(CanonicalModel):
    symbol: str
    open: float
    high: float
    low: float
    close: float
    volume: float = Field(ge=0)
    change: float
    percent_change: float
    datetime: Optional[dt.datetime] = None


class TimeSeriesBar(CanonicalModel):
    datetime: dt.date
    open: float
    high: float
    low: float
    close: float
    volume: float = Field(default=0.0, ge=0)


class CanonicalTimeSeries(CanonicalModel):
    symbol: str
    values: list[TimeSeriesBar] = Field(min_length=1)

    @model_validator(mode="after")
    def _ascending(self) -> CanonicalTimeSeries:
        dates = [bar.datetime for bar in self.values]
        if dates != sorted(dates):
            raise ValueError("time series values must be ascending by datetime")
        return self


class DividendEntry(CanonicalModel):
    ex_date: dt.date
    amount: float


class CanonicalDividendList(CanonicalModel):
    symbol: str
    dividends: list[DividendEntry] = Field(min_length=1)

    @model_validator(mode="after")
    def _descending(self) -> CanonicalDividendList:
        dates = [entry.ex_date for entry in self.dividends]
        if dates != sorted(dates, reverse=True):
            raise ValueError("dividends must be descending by ex_date")
        return self


class EarningsEntry(CanonicalModel):
    period: dt.date
    actual: float
    estimate: Optional[float] = None
    surprise: Optional[float] = None
    surprise_percent: Optional[float] = None


class CanonicalEarnings(CanonicalModel):
    symbol: str
    earnings: list[EarningsEntry] = Field(min_length=1)


class CashFlowReport(CanonicalModel):
    fiscal_date: dt.date
    period: Optional[str] = None
    currency: Optional[str] = None
    operating_cash_flow: float
    capital_expenditure: Optional[float] = None
    free_cash_flow: Optional[float] = None
    dividends_paid: Optional[float] = None


class CanonicalCashFlow(CanonicalModel):
    symbol: str
    reports: list[CashFlowReport] = Field(min_length=1)


class IncomeStatementReport(CanonicalModel):
    fiscal_date: dt.date
    period: Optional[str] = None
    currency: Optional[str] = None
    revenue: float
    gross_profit: Optional[float] = None
    operating_income: Optional[float] = None
    net_income: Optional[float] = None
    eps: Optional[float] = None


class CanonicalIncomeStatement(CanonicalModel):
    symbol: str
    reports: list[IncomeStatementReport] = Field(min_length=1)


CanonicalData = Union[
    CanonicalQuote,
    CanonicalTimeSeries,
    CanonicalDividendList,
    CanonicalEarnings,
    CanonicalCashFlow,
    CanonicalIncomeStatement,
]

SCHEMA_BY_ENDPOINT: dict[Endpoint, type[CanonicalModel]] = {
    Endpoint.QUOTE: CanonicalQuote,
    Endpoint.TIME_SERIES: CanonicalTimeSeries,
    Endpoint.DIVIDENDS: CanonicalDividendList,
    Endpoint.EARNINGS: CanonicalEarnings,
    Endpoint.CASH_FLOW: CanonicalCashFlow,
    Endpoint.INCOME_STATEMENT: CanonicalIncomeStatement,
}


def parse_endpoint(value: str | Endpoint | None) -> Endpoint | None:
    """Map a raw request value onto the closed endpoint set.

    Blank input falls back to quote; unknown names return None.
    """
    if isinstance(value, Endpoint):
        return value
    if value is None or not value.strip():
        return Endpoint.QUOTE
    try:
        return Endpoint(value.strip().lower())
    except ValueError:
        return None
