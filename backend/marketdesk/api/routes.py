from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from marketdesk.service import StockService

router = APIRouter()

_CACHE_CONTROL = "max-age=1800"


def get_service(request: Request) -> StockService:
    return request.app.state.stock_service


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/stock")
def get_stock(
    response: Response,
    symbol: str = "",
    endpoint: str = "quote",
    service: StockService = Depends(get_service),
) -> dict:
    # MarketDeskError subclasses propagate to the app-level handler.
    result = service.get(symbol, endpoint)
    response.headers["Cache-Control"] = _CACHE_CONTROL
    return result.to_response()
