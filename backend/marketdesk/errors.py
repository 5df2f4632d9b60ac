"""Exception hierarchy for marketdesk.

Two families live here. Request-level errors escape to the caller and map
to an HTTP status. Provider errors are raised inside an adapter and are
always caught by the cascade, which records them and moves on.
"""

from __future__ import annotations

from typing import Any


class MarketDeskError(Exception):
    """Base exception for all marketdesk errors.

    Carries an optional `context` dict with structured metadata that can be
    logged or serialized without parsing the message.
    """

    status_code = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(MarketDeskError):
    """Invalid configuration, e.g. an unknown provider name. Fatal at startup."""


class MissingParameterError(MarketDeskError):
    """A required request parameter (the symbol) is absent or blank."""

    status_code = 400


class UnsupportedEndpointError(MarketDeskError):
    """No configured provider anywhere supports the requested endpoint.

    Raised before any network call is made.
    """

    status_code = 400


class AllProvidersExhaustedError(MarketDeskError):
    """Every eligible candidate was tried or skipped without success.

    Context keys:
        attempted: list[dict], one {provider, reason, detail} per attempt
        skipped: list[dict], one {provider, reason} per skipped candidate
    """

    def __init__(
        self,
        symbol: str,
        endpoint: str,
        attempted: list,
        skipped: list,
    ):
        self.symbol = symbol
        self.endpoint = endpoint
        self.attempted = list(attempted)
        self.skipped = list(skipped)
        super().__init__(
            self._build_message(),
            context={
                "symbol": symbol,
                "endpoint": endpoint,
                "attempted": [record.model_dump() for record in self.attempted],
                "skipped": [record.model_dump() for record in self.skipped],
            },
        )

    @property
    def all_skipped(self) -> bool:
        return not self.attempted

    def _build_message(self) -> str:
        if self.all_skipped:
            skipped = "; ".join(
                f"{record.provider}: {record.reason}" for record in self.skipped
            )
            return (
                f"All providers exhausted for {self.symbol}/{self.endpoint}: "
                f"every candidate was skipped ({skipped or 'none configured'})"
            )
        attempts = "; ".join(
            f"{record.provider}: {record.reason}"
            + (f" ({record.detail})" if record.detail else "")
            for record in self.attempted
        )
        return (
            f"All providers exhausted for {self.symbol}/{self.endpoint}: {attempts}"
        )


class ProviderError(MarketDeskError):
    """A single adapter failed. Never escapes the cascade.

    Subclasses fix the `reason` code recorded in the failure list.
    """

    reason = "provider_error"

    def __init__(self, provider: str, detail: str = ""):
        self.provider = provider
        self.detail = detail
        super().__init__(
            f"{provider}: {self.reason}" + (f" ({detail})" if detail else ""),
            context={"provider": provider, "reason": self.reason},
        )


class RateLimitedError(ProviderError):
    reason = "rate_limited"


class NoDataError(ProviderError):
    reason = "no_data"


class MalformedResponseError(ProviderError):
    reason = "malformed_response"


class NetworkFailureError(ProviderError):
    reason = "network_failure"


class UnsupportedError(ProviderError):
    reason = "unsupported"


def status_code_for(exc: Exception) -> int:
    if isinstance(exc, MarketDeskError):
        return exc.status_code
    return 500
