"""API routers — /api/btc-price, /api/btc-depth, /api/predictions.

No business logic. Delegates to the ticker client, depth analyzer and
prediction service injected at startup.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from btcguess.analysis.depth import AllSourcesFailedError
from btcguess.predictions.models import UnknownHorizonError
from btcguess.predictions.service import NoPriceError
from btcguess.market.price_feed import PriceFetchError

logger = logging.getLogger("btcguess")
router = APIRouter(prefix="/api")

PRICE_CACHE_CONTROL = "s-maxage=5, stale-while-revalidate"

# ── Shared state (set during app startup) ────────────────────────────────

_ticker = None      # BinanceTickerClient
_analyzer = None    # DepthAnalyzer
_service = None     # PredictionService
_book = None        # PredictionBook
_feed = None        # PriceFeed
_symbol: str = "BTCUSDT"


def configure_routers(
    ticker=None,
    analyzer=None,
    service=None,
    book=None,
    feed=None,
    symbol: str = "BTCUSDT",
) -> None:
    """Inject dependencies from the application startup.

    Args:
        ticker: A ``BinanceTickerClient`` (or duck-type for tests).
        analyzer: A ``DepthAnalyzer``.
        service: A ``PredictionService``.
        book: The ``PredictionBook`` the service writes to.
        feed: The ``PriceFeed`` holding the live price.
        symbol: Exchange symbol served by ``/api/btc-price``.
    """
    global _ticker, _analyzer, _service, _book, _feed, _symbol  # noqa: PLW0603
    _ticker = ticker
    _analyzer = analyzer
    _service = service
    _book = book
    _feed = feed
    _symbol = symbol


class PredictionRequest(BaseModel):
    horizon: str = "10m"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/btc-price")
async def get_btc_price():
    """Return the latest trade price from Binance."""
    if _ticker is None:
        return _error(503, "Price service not configured")
    try:
        sample = await _ticker.fetch_price(_symbol)
    except PriceFetchError as exc:
        logger.error("Failed to fetch Binance price: %s", exc)
        return _error(500, "Failed to fetch price from Binance")
    if _feed is not None:
        _feed.update(sample)
    return JSONResponse(
        content={"rate": sample.price},
        headers={"Cache-Control": PRICE_CACHE_CONTROL},
    )


@router.get("/btc-depth")
async def get_btc_depth():
    """Return the SMA/volatility recommendation and risk label."""
    if _analyzer is None:
        return _error(503, "Depth analysis not configured")
    try:
        result = await _analyzer.analyze()
    except AllSourcesFailedError as exc:
        return _error(502, f"Depth analysis failed: {exc}")
    return result.to_dict()


@router.get("/predictions")
async def get_predictions():
    """Return every prediction, oldest first, with the live price."""
    price: Optional[float] = _feed.price if _feed is not None else None
    if _book is None:
        return {"predictions": [], "price": price}
    now = _book.clock()
    return {
        "predictions": [p.to_dict(now) for p in _book.all()],
        "price": price,
    }


@router.post("/predictions", status_code=201)
async def post_prediction(body: PredictionRequest):
    """Open a prediction at the live price for the requested horizon."""
    if _service is None:
        return _error(503, "Prediction service not configured")
    try:
        prediction = await _service.predict(body.horizon)
    except UnknownHorizonError as exc:
        return _error(400, str(exc))
    except NoPriceError as exc:
        return _error(409, str(exc))
    return prediction.to_dict(prediction.time)
