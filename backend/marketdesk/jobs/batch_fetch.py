"""Offline batch fetch: run the cascade for a slice of symbols and dump JSON.

Pacing between upstream calls is handled by `IntervalScheduler`, kept apart
from the cascade so request handling never sleeps.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable, Sequence

from marketdesk.config.log import configure_logging
from marketdesk.config.settings import settings
from marketdesk.errors import MarketDeskError
from marketdesk.service import StockService, build_service

logger = logging.getLogger(__name__)


class IntervalScheduler:
    """Enforce a minimum delay between consecutive calls."""

    def __init__(
        self,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    def wait(self) -> None:
        if self._last_call is not None:
            elapsed = self._clock() - self._last_call
            if elapsed < self.interval_seconds:
                self._sleep(self.interval_seconds - elapsed)
        self._last_call = self._clock()


def load_symbols(path: str | Path) -> list[str]:
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip()]


def batch_slice(symbols: Sequence[str], batch_num: int, size: int) -> list[str]:
    return list(symbols[batch_num * size : (batch_num + 1) * size])


def output_filename(symbol: str, endpoint: str) -> str:
    return f"{symbol.lower()}-{endpoint}.json"


def fetch_batch(
    service: StockService,
    symbols: Sequence[str],
    endpoints: Sequence[str],
    data_dir: str | Path,
    scheduler: IntervalScheduler,
) -> dict:
    out_dir = Path(data_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written: list[str] = []
    failed: list[dict] = []
    for symbol in symbols:
        for endpoint in endpoints:
            scheduler.wait()
            try:
                result = service.get(symbol, endpoint)
            except MarketDeskError as exc:
                logger.warning("%s/%s failed: %s", symbol, endpoint, exc)
                failed.append({"symbol": symbol, "endpoint": endpoint, "error": str(exc)})
                continue
            filename = output_filename(symbol, endpoint)
            (out_dir / filename).write_text(
                json.dumps(result.to_response(), indent=1), encoding="utf-8"
            )
            logger.info("wrote %s (source=%s)", filename, result.source)
            written.append(filename)
    return {"written": written, "failed": failed}


def run_batch_fetch(batch_num: int = 0, symbols: list[str] | None = None) -> dict:
    configure_logging(settings.log_level)
    batch_config = settings.batch
    all_symbols = symbols if symbols is not None else load_symbols(batch_config.symbols_file)
    batch = batch_slice(all_symbols, batch_num, batch_config.size)
    if not batch:
        logger.info("Batch %s has no symbols; nothing to do", batch_num)
        return {"written": [], "failed": []}

    logger.info("Batch %s: %s symbols", batch_num, len(batch))
    return fetch_batch(
        build_service(settings),
        batch,
        batch_config.endpoints,
        batch_config.data_dir,
        IntervalScheduler(batch_config.request_interval_seconds),
    )
