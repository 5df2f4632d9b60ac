"""FastAPI application factory."""

from __future__ import annotations

import datetime as dt
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketdesk.api.routes import router
from marketdesk.config.log import configure_logging
from marketdesk.config.settings import Settings, settings
from marketdesk.errors import MarketDeskError, status_code_for
from marketdesk.service import StockService, build_service

logger = logging.getLogger(__name__)


def _error_body(request: Request, message: str) -> dict:
    return {
        "error": message,
        "symbol": request.query_params.get("symbol", ""),
        "endpoint": request.query_params.get("endpoint", "quote"),
        "ts": dt.datetime.now(dt.UTC).isoformat(),
    }


async def marketdesk_error_handler(request: Request, exc: MarketDeskError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code_for(exc),
        content=_error_body(request, str(exc)),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error for %s", request.url.path)
    return JSONResponse(status_code=500, content=_error_body(request, str(exc)))


def create_app(
    config: Settings | None = None, service: StockService | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or settings
    configure_logging(config.log_level)

    app = FastAPI(
        title="MarketDesk API",
        description="Normalized market data with provider fallback",
    )
    app.state.stock_service = service or build_service(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api")
    app.add_exception_handler(MarketDeskError, marketdesk_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    return app
