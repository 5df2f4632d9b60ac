import http.client
import logging
import socket
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest

from marketdesk.config.settings import ProviderSettings
from marketdesk.errors import (
    AllProvidersExhaustedError,
    MalformedResponseError,
    NetworkFailureError,
    NoDataError,
    RateLimitedError,
    UnsupportedError,
)
from marketdesk.providers.cascade import CascadeController
from marketdesk.providers.finnhub import FinnhubAdapter
from marketdesk.providers.fmp import FMPAdapter
from marketdesk.providers.selector import LocaleRouter
from marketdesk.providers.twelvedata import TwelveDataAdapter
from marketdesk.providers.yahoo import YahooFinanceAdapter
from marketdesk.schemas.canonical import Endpoint


def _response(body: bytes) -> MagicMock:
    response = MagicMock()
    response.__enter__.return_value.read.return_value = body
    return response


def test_fetch_builds_request_and_returns_payload() -> None:
    adapter = FinnhubAdapter(timeout=3)
    with patch(
        "marketdesk.providers.base.urlopen", return_value=_response(b'{"c": 181.91}')
    ) as urlopen_mock:
        payload = adapter.fetch("AAPL", Endpoint.QUOTE, "secret-token")

    assert payload == {"c": 181.91}
    request = urlopen_mock.call_args.args[0]
    assert request.full_url == "https://finnhub.io/api/v1/quote?symbol=AAPL&token=secret-token"
    assert urlopen_mock.call_args.kwargs["timeout"] == 3


def test_fetch_quotes_symbol_in_path() -> None:
    adapter = FMPAdapter()
    with patch(
        "marketdesk.providers.base.urlopen", return_value=_response(b'[{"price": 1}]')
    ) as urlopen_mock:
        adapter.fetch("BRK/B", Endpoint.CASH_FLOW, "k")

    request = urlopen_mock.call_args.args[0]
    assert request.full_url == (
        "https://financialmodelingprep.com/api/v3/cash-flow-statement/BRK%2FB?apikey=k&limit=40"
    )


def test_fetch_redacts_credential_in_logs(caplog) -> None:
    caplog.set_level(logging.INFO, logger="marketdesk.providers.base")
    with patch("marketdesk.providers.base.urlopen", return_value=_response(b'{"c": 1}')):
        FinnhubAdapter().fetch("AAPL", Endpoint.QUOTE, "secret-token")

    assert "secret-token" not in caplog.text
    assert "token=***" in caplog.text


@pytest.mark.parametrize(
    ("side_effect", "expected"),
    [
        (HTTPError("https://x", 429, "Too Many Requests", None, None), RateLimitedError),
        (HTTPError("https://x", 404, "Not Found", None, None), NoDataError),
        (HTTPError("https://x", 502, "Bad Gateway", None, None), NetworkFailureError),
        (URLError("connection refused"), NetworkFailureError),
        (socket.timeout("timed out"), NetworkFailureError),
        (TimeoutError("timed out"), NetworkFailureError),
        (http.client.RemoteDisconnected("closed"), NetworkFailureError),
        (ConnectionResetError("reset by peer"), NetworkFailureError),
    ],
)
def test_fetch_classifies_transport_failures(side_effect, expected) -> None:
    with patch("marketdesk.providers.base.urlopen", side_effect=side_effect):
        with pytest.raises(expected):
            FinnhubAdapter().fetch("AAPL", Endpoint.QUOTE, "k")


def test_fetch_non_json_body_is_malformed() -> None:
    with patch(
        "marketdesk.providers.base.urlopen", return_value=_response(b"<html>oops</html>")
    ):
        with pytest.raises(MalformedResponseError):
            FinnhubAdapter().fetch("AAPL", Endpoint.QUOTE, "k")


def test_fetch_empty_list_is_no_data() -> None:
    with patch("marketdesk.providers.base.urlopen", return_value=_response(b"[]")):
        with pytest.raises(NoDataError):
            FMPAdapter().fetch("ZZZZ", Endpoint.QUOTE, "k")


def test_fetch_applies_provider_error_markers() -> None:
    body = b'{"error": "API limit reached. Please try again later."}'
    with patch("marketdesk.providers.base.urlopen", return_value=_response(body)):
        with pytest.raises(RateLimitedError):
            FinnhubAdapter().fetch("AAPL", Endpoint.QUOTE, "k")


def test_fetch_unsupported_endpoint_makes_no_call() -> None:
    with patch("marketdesk.providers.base.urlopen") as urlopen_mock:
        with pytest.raises(UnsupportedError):
            YahooFinanceAdapter().fetch("TCS.NS", Endpoint.CASH_FLOW, None)

    assert urlopen_mock.called is False


def test_fetch_truncated_body_is_network_failure() -> None:
    response = MagicMock()
    response.__enter__.return_value.read.side_effect = http.client.IncompleteRead(b"{")
    with patch("marketdesk.providers.base.urlopen", return_value=response):
        with pytest.raises(NetworkFailureError):
            FinnhubAdapter().fetch("AAPL", Endpoint.QUOTE, "k")


def test_fetch_non_utf8_body_is_malformed() -> None:
    with patch("marketdesk.providers.base.urlopen", return_value=_response(b"\xff\xfe{}")):
        with pytest.raises(MalformedResponseError):
            FinnhubAdapter().fetch("AAPL", Endpoint.QUOTE, "k")


def test_fetch_yahoo_string_chart_error_is_malformed() -> None:
    body = b'{"chart": {"error": "boom", "result": null}}'
    with patch("marketdesk.providers.base.urlopen", return_value=_response(body)):
        with pytest.raises(MalformedResponseError):
            YahooFinanceAdapter().fetch("TCS.NS", Endpoint.QUOTE, None)


def test_fetch_check_payload_type_errors_are_malformed() -> None:
    class StrictFinnhub(FinnhubAdapter):
        def check_payload(self, payload, endpoint) -> None:
            payload["missing"]

    with patch("marketdesk.providers.base.urlopen", return_value=_response(b'{"c": 1}')):
        with pytest.raises(MalformedResponseError):
            StrictFinnhub().fetch("AAPL", Endpoint.QUOTE, "k")


def test_dropped_connection_advances_to_next_provider() -> None:
    router = LocaleRouter(
        [TwelveDataAdapter(), FMPAdapter()], YahooFinanceAdapter(), [".NS", ".BO"]
    )
    credentials = ProviderSettings(twelvedata_api_key="td", fmp_api_key="fmp")
    controller = CascadeController(router, credentials=credentials)

    with patch(
        "marketdesk.providers.base.urlopen",
        side_effect=[http.client.RemoteDisconnected("closed"), _response(b"[]")],
    ) as urlopen_mock:
        with pytest.raises(AllProvidersExhaustedError) as excinfo:
            controller.run("AAPL", "quote")

    assert urlopen_mock.call_count == 2
    assert [(record.provider, record.reason) for record in excinfo.value.attempted] == [
        ("TwelveData", "network_failure"),
        ("FMP", "no_data"),
    ]
