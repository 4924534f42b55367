"""Prediction creation — the "analyse and guess" user action."""

import logging

from btcguess.analysis.depth import AllSourcesFailedError, DepthAnalyzer
from btcguess.analysis.heuristic import assess_price
from btcguess.market.price_feed import PriceFeed
from btcguess.predictions.book import PredictionBook
from btcguess.predictions.models import Prediction, horizon_seconds

logger = logging.getLogger("btcguess.predictions")


class NoPriceError(Exception):
    """No price sample has arrived yet."""


class PredictionService:
    """Open predictions at the current price.

    The direction comes from the support/resistance heuristic. The detail
    text comes from the depth analyzer when it succeeds, and falls back to
    the heuristic's reason otherwise.
    """

    def __init__(
        self,
        book: PredictionBook,
        feed: PriceFeed,
        analyzer: DepthAnalyzer,
        support: float,
        resistance: float,
    ) -> None:
        self._book = book
        self._feed = feed
        self._analyzer = analyzer
        self._support = support
        self._resistance = resistance

    async def predict(self, horizon: str) -> Prediction:
        """Create a prediction for *horizon* at the latest price.

        Raises ``UnknownHorizonError`` or ``NoPriceError``.
        """
        horizon_seconds(horizon)
        price = self._feed.price
        if price is None:
            raise NoPriceError("No price available yet")

        basic = assess_price(price, self._support, self._resistance)
        try:
            analysis = await self._analyzer.analyze()
            position, suggestion = (
                ("above", "up") if price > analysis.avg else ("below", "down")
            )
            detail = (
                f"{analysis.detail}; current {price:.2f} is {position} the "
                f"average, risk {analysis.risk_index}, suggests {suggestion}"
            )
        except AllSourcesFailedError as exc:
            logger.warning("Depth analysis unavailable for prediction: %s", exc)
            detail = f"{basic.reason}, risk: {basic.risk}"

        return self._book.create(
            price=price,
            horizon=horizon,
            recommendation=basic.recommendation,
            reason=basic.reason,
            risk=basic.risk,
            analysis_detail=detail,
        )
