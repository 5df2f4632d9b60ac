import datetime

import pytest

from marketdesk.errors import (
    MalformedResponseError,
    NoDataError,
    RateLimitedError,
    UnsupportedError,
)
from marketdesk.providers.alphavantage import AlphaVantageAdapter
from marketdesk.providers.finnhub import FinnhubAdapter
from marketdesk.providers.fmp import FMPAdapter
from marketdesk.providers.twelvedata import TwelveDataAdapter
from marketdesk.providers.yahoo import YahooFinanceAdapter
from marketdesk.schemas.canonical import Endpoint

# 2024-01-02, 2024-01-03, 2024-01-04 at 00:00 UTC
JAN_2 = 1704153600
JAN_3 = 1704240000
JAN_4 = 1704326400


def _dates(series) -> list[datetime.date]:
    return [bar.datetime for bar in series.values]


def test_finnhub_time_series_sorted_and_drops_null_close() -> None:
    raw = {
        "s": "ok",
        "t": [JAN_3, JAN_2, JAN_4],
        "o": [184.2, 187.1, 182.1],
        "h": [185.9, 188.4, 183.1],
        "l": [183.4, 183.9, 180.9],
        "c": [184.25, None, 181.91],
        "v": [58414500, 82488700, 71983600],
    }

    series = FinnhubAdapter().normalize(raw, Endpoint.TIME_SERIES, "AAPL")

    assert _dates(series) == [datetime.date(2024, 1, 3), datetime.date(2024, 1, 4)]
    assert [bar.close for bar in series.values] == [184.25, 181.91]
    assert series.values[0].volume == 58414500


def test_twelvedata_descending_series_is_reversed() -> None:
    raw = {
        "meta": {"symbol": "AAPL", "interval": "1day"},
        "values": [
            {"datetime": "2024-01-04", "open": "182.15", "high": "183.09",
             "low": "180.88", "close": "181.91", "volume": "71983600"},
            {"datetime": "2024-01-03", "open": "184.22", "high": "185.88",
             "low": "183.43", "close": None, "volume": "58414500"},
            {"datetime": "2024-01-02", "open": "187.15", "high": "188.44",
             "low": "183.89", "close": "185.64", "volume": "82488700"},
        ],
        "status": "ok",
    }

    series = TwelveDataAdapter().normalize(raw, Endpoint.TIME_SERIES, "AAPL")

    assert _dates(series) == [datetime.date(2024, 1, 2), datetime.date(2024, 1, 4)]
    assert series.values[-1].close == 181.91


def test_alphavantage_series_from_date_keyed_mapping() -> None:
    raw = {
        "Meta Data": {"2. Symbol": "IBM"},
        "Time Series (Daily)": {
            "2024-01-04": {"1. open": "160.0", "2. high": "161.5", "3. low": "159.8",
                           "4. close": "161.1", "5. volume": "4000000"},
            "2024-01-03": {"1. open": "158.0", "2. high": "160.2", "3. low": "157.9",
                           "4. close": "159.9", "5. volume": "3500000"},
        },
    }

    series = AlphaVantageAdapter().normalize(raw, Endpoint.TIME_SERIES, "IBM")

    assert _dates(series) == [datetime.date(2024, 1, 3), datetime.date(2024, 1, 4)]
    assert series.values[0].open == 158.0


def test_time_series_without_usable_bars_is_no_data() -> None:
    raw = {"s": "ok", "t": [JAN_2], "o": [1.0], "h": [1.0], "l": [1.0], "c": [None], "v": [1]}

    with pytest.raises(NoDataError):
        FinnhubAdapter().normalize(raw, Endpoint.TIME_SERIES, "AAPL")


def test_fmp_quote_maps_fields() -> None:
    raw = [
        {
            "symbol": "AAPL",
            "price": 181.91,
            "changesPercentage": -1.2666,
            "change": -2.34,
            "dayLow": 180.88,
            "dayHigh": 183.09,
            "open": 182.15,
            "volume": 71983600,
            "timestamp": JAN_4,
        }
    ]

    quote = FMPAdapter().normalize(raw, Endpoint.QUOTE, "AAPL")

    assert quote.close == 181.91
    assert quote.high == 183.09
    assert quote.low == 180.88
    assert quote.percent_change == -1.2666
    assert quote.volume == 71983600
    assert quote.datetime == datetime.datetime(2024, 1, 4, tzinfo=datetime.UTC)


def test_alphavantage_quote_parses_strings() -> None:
    raw = {
        "Global Quote": {
            "01. symbol": "IBM",
            "02. open": "160.0000",
            "03. high": "161.5000",
            "04. low": "159.8000",
            "05. price": "161.1000",
            "06. volume": "4000000",
            "07. latest trading day": "2024-01-04",
            "08. previous close": "159.9000",
            "09. change": "1.2000",
            "10. change percent": "0.7505%",
        }
    }

    quote = AlphaVantageAdapter().normalize(raw, Endpoint.QUOTE, "IBM")

    assert quote.close == 161.1
    assert quote.percent_change == pytest.approx(0.7505)
    assert quote.volume == 4000000


def test_alphavantage_empty_global_quote_is_no_data() -> None:
    with pytest.raises(NoDataError):
        AlphaVantageAdapter().normalize({"Global Quote": {}}, Endpoint.QUOTE, "NOPE")


def test_quote_with_missing_close_is_no_data() -> None:
    raw = {
        "symbol": "AAPL",
        "open": "182.15",
        "high": "183.09",
        "low": "180.88",
        "close": None,
        "volume": "71983600",
        "change": "-2.34",
        "percent_change": "-1.27",
    }

    with pytest.raises(NoDataError):
        TwelveDataAdapter().normalize(raw, Endpoint.QUOTE, "AAPL")


def test_finnhub_zero_quote_is_no_data() -> None:
    raw = {"c": 0, "d": None, "dp": None, "h": 0, "l": 0, "o": 0, "pc": 0, "t": 0}

    with pytest.raises(NoDataError):
        FinnhubAdapter().normalize(raw, Endpoint.QUOTE, "ZZZZ")


def test_yahoo_quote_derives_change_from_previous_close() -> None:
    raw = {
        "chart": {
            "result": [
                {
                    "meta": {
                        "regularMarketPrice": 2950.0,
                        "previousClose": 2900.0,
                        "regularMarketTime": JAN_4,
                    },
                    "indicators": {
                        "quote": [
                            {"open": [2910.0], "high": [2960.0], "low": [2905.0],
                             "close": [2950.0], "volume": [5100000]}
                        ]
                    },
                }
            ],
            "error": None,
        }
    }

    quote = YahooFinanceAdapter().normalize(raw, Endpoint.QUOTE, "RELIANCE.NS")

    assert quote.symbol == "RELIANCE.NS"
    assert quote.change == pytest.approx(50.0)
    assert quote.percent_change == pytest.approx(50.0 / 2900.0 * 100)
    assert quote.open == 2910.0


def test_yahoo_dividends_sorted_newest_first() -> None:
    raw = {
        "chart": {
            "result": [
                {
                    "meta": {},
                    "events": {
                        "dividends": {
                            str(JAN_2): {"amount": 9.0, "date": JAN_2},
                            str(JAN_4): {"amount": 10.0, "date": JAN_4},
                        }
                    },
                }
            ],
            "error": None,
        }
    }

    dividends = YahooFinanceAdapter().normalize(raw, Endpoint.DIVIDENDS, "TCS.NS")

    assert [entry.ex_date for entry in dividends.dividends] == [
        datetime.date(2024, 1, 4),
        datetime.date(2024, 1, 2),
    ]


def test_fmp_cash_flow_reports_descending() -> None:
    raw = [
        {"date": "2022-09-24", "period": "FY", "reportedCurrency": "USD",
         "operatingCashFlow": 122151000000, "capitalExpenditure": -10708000000,
         "freeCashFlow": 111443000000, "dividendsPaid": -14841000000},
        {"date": "2023-09-30", "period": "FY", "reportedCurrency": "USD",
         "operatingCashFlow": 110543000000, "capitalExpenditure": -10959000000,
         "freeCashFlow": 99584000000, "dividendsPaid": -15025000000},
    ]

    cash_flow = FMPAdapter().normalize(raw, Endpoint.CASH_FLOW, "AAPL")

    assert [report.fiscal_date.year for report in cash_flow.reports] == [2023, 2022]
    assert cash_flow.reports[0].free_cash_flow == 99584000000


def test_alphavantage_cash_flow_outflows_are_negative() -> None:
    raw = {
        "symbol": "IBM",
        "annualReports": [
            {"fiscalDateEnding": "2023-12-31", "reportedCurrency": "USD",
             "operatingCashflow": "13931000000", "capitalExpenditures": "1245000000",
             "dividendPayout": "6040000000"},
        ],
    }

    cash_flow = AlphaVantageAdapter().normalize(raw, Endpoint.CASH_FLOW, "IBM")

    report = cash_flow.reports[0]
    assert report.capital_expenditure == -1245000000
    assert report.free_cash_flow == 13931000000 - 1245000000
    assert report.dividends_paid == -6040000000


def test_alphavantage_income_statement_tolerates_none_strings() -> None:
    raw = {
        "symbol": "IBM",
        "annualReports": [
            {"fiscalDateEnding": "2023-12-31", "reportedCurrency": "USD",
             "totalRevenue": "61860000000", "grossProfit": "None",
             "operatingIncome": "9142000000", "netIncome": "7502000000"},
            {"fiscalDateEnding": "2022-12-31", "reportedCurrency": "USD",
             "totalRevenue": "None"},
        ],
    }

    statement = AlphaVantageAdapter().normalize(raw, Endpoint.INCOME_STATEMENT, "IBM")

    assert len(statement.reports) == 1
    assert statement.reports[0].gross_profit is None
    assert statement.reports[0].revenue == 61860000000


def test_finnhub_earnings_skip_unreported_quarters() -> None:
    raw = [
        {"actual": None, "estimate": 2.1, "period": "2024-03-31", "symbol": "AAPL"},
        {"actual": 2.18, "estimate": 2.1, "period": "2023-12-31",
         "surprise": 0.08, "surprisePercent": 3.81, "symbol": "AAPL"},
        {"actual": 1.46, "estimate": 1.39, "period": "2023-09-30", "symbol": "AAPL"},
    ]

    earnings = FinnhubAdapter().normalize(raw, Endpoint.EARNINGS, "AAPL")

    assert [entry.period for entry in earnings.earnings] == [
        datetime.date(2023, 12, 31),
        datetime.date(2023, 9, 30),
    ]
    assert earnings.earnings[1].surprise == pytest.approx(0.07)


def test_normalize_is_idempotent() -> None:
    raw = {
        "s": "ok",
        "t": [JAN_4, JAN_2],
        "o": [182.1, 187.1],
        "h": [183.1, 188.4],
        "l": [180.9, 183.9],
        "c": [181.91, 185.64],
        "v": [71983600, 82488700],
    }
    adapter = FinnhubAdapter()

    first = adapter.normalize(raw, Endpoint.TIME_SERIES, "AAPL")
    second = adapter.normalize(raw, Endpoint.TIME_SERIES, "AAPL")

    assert first == second
    assert first.model_dump_json() == second.model_dump_json()


def test_missing_structure_is_malformed() -> None:
    with pytest.raises(MalformedResponseError):
        TwelveDataAdapter().normalize({"status": "ok"}, Endpoint.TIME_SERIES, "AAPL")


def test_normalize_rejects_unsupported_endpoint() -> None:
    with pytest.raises(UnsupportedError):
        YahooFinanceAdapter().normalize({}, Endpoint.EARNINGS, "TCS.NS")


@pytest.mark.parametrize(
    ("adapter", "payload", "endpoint", "expected"),
    [
        (
            TwelveDataAdapter(),
            {"status": "error", "code": 429, "message": "You have run out of API credits"},
            Endpoint.QUOTE,
            RateLimitedError,
        ),
        (
            TwelveDataAdapter(),
            {"status": "error", "code": 404, "message": "symbol not found"},
            Endpoint.QUOTE,
            NoDataError,
        ),
        (
            AlphaVantageAdapter(),
            {"Note": "Our standard API call frequency is 5 calls per minute"},
            Endpoint.QUOTE,
            RateLimitedError,
        ),
        (
            AlphaVantageAdapter(),
            {"Information": "This is a premium endpoint."},
            Endpoint.CASH_FLOW,
            UnsupportedError,
        ),
        (
            AlphaVantageAdapter(),
            {"Error Message": "Invalid API call."},
            Endpoint.QUOTE,
            NoDataError,
        ),
        (
            FinnhubAdapter(),
            {"error": "API limit reached. Please try again later."},
            Endpoint.QUOTE,
            RateLimitedError,
        ),
        (FinnhubAdapter(), {"s": "no_data"}, Endpoint.TIME_SERIES, NoDataError),
        (
            FMPAdapter(),
            {"Error Message": "Limit Reach . Please upgrade your plan"},
            Endpoint.QUOTE,
            RateLimitedError,
        ),
        (FMPAdapter(), {"symbol": "ZZZZ"}, Endpoint.TIME_SERIES, NoDataError),
        (
            YahooFinanceAdapter(),
            {"chart": {"result": None, "error": {"code": "Not Found",
                                                 "description": "No data found"}}},
            Endpoint.QUOTE,
            NoDataError,
        ),
    ],
)
def test_check_payload_classifies_provider_signals(adapter, payload, endpoint, expected) -> None:
    with pytest.raises(expected):
        adapter.check_payload(payload, endpoint)
