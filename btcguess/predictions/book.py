"""In-memory prediction book and the timed settlement sweep.

Predictions are kept for the process lifetime only. The sweep runs on a
fixed cadence on the event loop, so the book needs no locking.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from btcguess.market.price_feed import PriceFeed
from btcguess.predictions.models import OPEN, Prediction, horizon_seconds

logger = logging.getLogger("btcguess.predictions")


class PredictionBook:
    """Ordered collection of predictions.

    Args:
        clock: Wall-clock source in epoch seconds. Injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._predictions: list[Prediction] = []
        self._next_id = 1

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def create(
        self,
        price: float,
        horizon: str,
        recommendation: str,
        reason: str = "",
        risk: str = "",
        analysis_detail: str = "",
    ) -> Prediction:
        """Open a prediction at *price* that settles after *horizon*.

        Raises ``UnknownHorizonError`` for an unrecognised horizon.
        """
        duration = horizon_seconds(horizon)
        now = self._clock()
        prediction = Prediction(
            id=self._next_id,
            time=now,
            price=price,
            horizon=horizon,
            recommendation=recommendation,
            predicted_price=price,
            end_time=now + duration,
            reason=reason,
            risk=risk,
            analysis_detail=analysis_detail,
        )
        self._next_id += 1
        self._predictions.append(prediction)
        logger.info(
            "Prediction %d opened: %s from %.2f over %s",
            prediction.id, recommendation, price, horizon,
        )
        return prediction

    def all(self) -> list[Prediction]:
        return list(self._predictions)

    def get(self, prediction_id: int) -> Optional[Prediction]:
        for p in self._predictions:
            if p.id == prediction_id:
                return p
        return None

    def open_count(self) -> int:
        return sum(1 for p in self._predictions if p.status == OPEN)

    def settle_due(self, price: Optional[float]) -> list[Prediction]:
        """Settle every open prediction whose horizon has elapsed.

        Does nothing until a price is known. Returns the predictions settled
        by this sweep.
        """
        if price is None:
            return []
        now = self._clock()
        settled: list[Prediction] = []
        for p in self._predictions:
            if not p.is_due(now):
                continue
            result = p.settle(price, now)
            settled.append(p)
            logger.info(
                "Prediction %d settled at %.2f: %s", p.id, price, result,
            )
        return settled


class SettlementTask:
    """Scheduled sweep that settles due predictions on a fixed cadence.

    Args:
        book: The prediction book to sweep.
        feed: Source of the current price.
        interval: Seconds between sweeps.
        sleep: Awaitable sleep, injectable so tests need not wait.
    """

    def __init__(
        self,
        book: PredictionBook,
        feed: PriceFeed,
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._book = book
        self._feed = feed
        self._interval = interval
        self._sleep = sleep
        self._running = False
        self._cycle_count = 0

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    def run_once(self) -> list[Prediction]:
        """Run one sweep with the feed's latest price."""
        self._cycle_count += 1
        return self._book.settle_due(self._feed.price)

    async def run(self, max_cycles: int = 0) -> None:
        """Sweep until stopped (or for *max_cycles* sweeps when non-zero)."""
        self._running = True
        cycle = 0
        while self._running:
            cycle += 1
            try:
                self.run_once()
            except Exception as exc:
                logger.error("Settlement sweep %d error: %s", cycle, exc)
            if max_cycles > 0 and cycle >= max_cycles:
                break
            await self._sleep(self._interval)
        self._running = False

    def stop(self) -> None:
        self._running = False
