from __future__ import annotations

import logging

from marketdesk.cache import ResultCache, build_cache
from marketdesk.config.settings import Settings, settings
from marketdesk.providers.cascade import CascadeController, validate_request
from marketdesk.providers.selector import build_router
from marketdesk.schemas.canonical import Endpoint
from marketdesk.schemas.provider import CascadeResult

logger = logging.getLogger(__name__)


class StockService:
    """Cache-fronted entry point: cache hit, else full cascade, then store."""

    def __init__(self, controller: CascadeController, cache: ResultCache | None = None) -> None:
        self.controller = controller
        self.cache = cache

    def get(
        self, symbol: str | None, endpoint: str | Endpoint | None = Endpoint.QUOTE
    ) -> CascadeResult:
        symbol, endpoint = validate_request(symbol, endpoint)
        if self.cache is not None:
            cached = self.cache.get(symbol, endpoint)
            if cached is not None:
                logger.info("cache hit | symbol=%s | endpoint=%s", symbol, endpoint.value)
                return cached
        result = self.controller.run(symbol, endpoint)
        if self.cache is not None:
            self.cache.put(symbol, endpoint, result)
        return result


def build_service(config: Settings | None = None) -> StockService:
    config = config or settings
    controller = CascadeController(build_router(config), credentials=config.providers)
    return StockService(controller, build_cache(config))
