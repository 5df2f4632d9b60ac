from __future__ import annotations

import datetime as dt
import logging
from typing import Callable

from marketdesk.config.settings import ProviderSettings, settings
from marketdesk.errors import (
    AllProvidersExhaustedError,
    MissingParameterError,
    ProviderError,
    UnsupportedEndpointError,
)
from marketdesk.providers.base import ProviderAdapter
from marketdesk.providers.selector import LocaleRouter
from marketdesk.schemas.canonical import Endpoint, parse_endpoint
from marketdesk.schemas.provider import CascadeResult, FailureRecord

logger = logging.getLogger(__name__)

SKIPPED_UNSUPPORTED = "skipped: unsupported"
SKIPPED_MISSING_CREDENTIAL = "skipped: missing credential"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def validate_request(symbol: str | None, endpoint: str | Endpoint | None) -> tuple[str, Endpoint]:
    """Reject bad requests before any provider is consulted."""
    cleaned = (symbol or "").strip().upper()
    if not cleaned:
        raise MissingParameterError(
            'Missing "symbol" query parameter', context={"endpoint": str(endpoint or "")}
        )
    parsed = parse_endpoint(endpoint)
    if parsed is None:
        raise UnsupportedEndpointError(
            f"Unknown endpoint {endpoint!r}",
            context={"symbol": cleaned, "endpoint": str(endpoint)},
        )
    return cleaned, parsed


class CascadeController:
    """Try the routed adapters in order until one returns canonical data.

    One `run` call is one request: adapters are tried sequentially, each at
    most once, and the first success wins. Skipped candidates (unsupported
    endpoint, missing credential) are recorded separately from failed
    attempts.
    """

    def __init__(
        self,
        router: LocaleRouter,
        credentials: ProviderSettings | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self._router = router
        self._credentials = credentials if credentials is not None else settings.providers
        self._clock = clock

    def _partition(
        self, candidates: list[ProviderAdapter], endpoint: Endpoint
    ) -> tuple[list[tuple[ProviderAdapter, str | None]], list[FailureRecord]]:
        eligible: list[tuple[ProviderAdapter, str | None]] = []
        skipped: list[FailureRecord] = []
        for adapter in candidates:
            if not adapter.supports(endpoint):
                skipped.append(FailureRecord(provider=adapter.name, reason=SKIPPED_UNSUPPORTED))
                continue
            setting_name = adapter.spec.credential_setting
            credential = self._credentials.credential_for(setting_name)
            if setting_name is not None and credential is None:
                logger.info("%s: API key missing; skipping", adapter.name)
                skipped.append(
                    FailureRecord(provider=adapter.name, reason=SKIPPED_MISSING_CREDENTIAL)
                )
                continue
            eligible.append((adapter, credential))
        return eligible, skipped

    def run(
        self, symbol: str | None, endpoint: str | Endpoint | None = Endpoint.QUOTE
    ) -> CascadeResult:
        symbol, endpoint = validate_request(symbol, endpoint)
        candidates = self._router.route(symbol)
        logger.info(
            "cascade start | symbol=%s | endpoint=%s | candidates=%s",
            symbol,
            endpoint.value,
            [adapter.name for adapter in candidates],
        )

        if not any(adapter.supports(endpoint) for adapter in candidates):
            raise UnsupportedEndpointError(
                f"No provider supports endpoint {endpoint.value!r} for {symbol}",
                context={"symbol": symbol, "endpoint": endpoint.value},
            )

        eligible, skipped = self._partition(candidates, endpoint)
        failures: list[FailureRecord] = []
        for adapter, credential in eligible:
            logger.info("Trying %s for %s/%s", adapter.name, symbol, endpoint.value)
            try:
                raw = adapter.fetch(symbol, endpoint, credential)
                data = adapter.normalize(raw, endpoint, symbol)
            except ProviderError as exc:
                logger.warning("%s failed: %s", adapter.name, exc)
                failures.append(
                    FailureRecord(provider=adapter.name, reason=exc.reason, detail=exc.detail)
                )
                continue
            logger.info("%s succeeded for %s/%s", adapter.name, symbol, endpoint.value)
            return CascadeResult(
                endpoint=endpoint,
                data=data,
                source=adapter.name,
                last_updated=self._clock(),
                failures=failures,
            )

        error = AllProvidersExhaustedError(symbol, endpoint.value, failures, skipped)
        logger.error("%s", error)
        raise error
