"""Compound annual growth rates over canonical data.

Price CAGR reads a `CanonicalTimeSeries`; growth CAGR reads the annual
reports of a cash-flow or income statement. Every function returns None
rather than raising when the inputs cannot support a rate.
"""

from __future__ import annotations

import datetime as dt
from typing import Sequence

from marketdesk.schemas.canonical import (
    CanonicalCashFlow,
    CanonicalIncomeStatement,
    CanonicalTimeSeries,
    TimeSeriesBar,
)


def cagr(start_value: float | None, end_value: float | None, years: float) -> float | None:
    if not start_value or not end_value or years <= 0:
        return None
    ratio = end_value / start_value
    if ratio <= 0:
        # sign change: no real-valued rate
        return None
    return ratio ** (1 / years) - 1


def years_before(day: dt.date, years: int) -> dt.date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def closest_bar(bars: Sequence[TimeSeriesBar], target: dt.date) -> TimeSeriesBar | None:
    """Bar nearest to `target`; ties go to the earlier bar."""
    closest = None
    closest_diff = None
    for bar in bars:
        diff = abs((bar.datetime - target).days)
        if closest_diff is None or diff < closest_diff:
            closest, closest_diff = bar, diff
    return closest


def price_cagr(
    series: CanonicalTimeSeries, years: int, as_of: dt.date | None = None
) -> float | None:
    """Annualized close-to-close growth over the last `years` years.

    The end point is the latest bar on or before `as_of` (the last bar when
    omitted). The start point is the bar closest to the same date `years`
    earlier.
    """
    if years <= 0:
        return None
    bars = [bar for bar in series.values if as_of is None or bar.datetime <= as_of]
    if not bars:
        return None
    latest = bars[-1]
    start = closest_bar(bars, years_before(latest.datetime, years))
    if start is None or start is latest:
        return None
    return cagr(start.close, latest.close, years)


def annual_values(
    statement: CanonicalCashFlow | CanonicalIncomeStatement, field: str
) -> list[tuple[dt.date, float]]:
    """(fiscal date, value) pairs for annual reports, newest first.

    Quarterly reports are ignored. A missing value counts as 0.
    """
    rows = []
    for report in statement.reports:
        if report.period and report.period.upper().startswith("Q"):
            continue
        value = getattr(report, field)
        rows.append((report.fiscal_date, float(value) if value is not None else 0.0))
    rows.sort(key=lambda row: row[0], reverse=True)
    return rows


def growth_cagr(values: Sequence[tuple[dt.date, float]], years: int) -> float | None:
    """CAGR between the newest value and the one `years` reports earlier."""
    if years <= 0 or len(values) < years + 1:
        return None
    return cagr(values[years][1], values[0][1], years)
