"""Prediction record and its settlement rule."""

from dataclasses import asdict, dataclass
from typing import Optional


HORIZONS: dict[str, int] = {
    "10m": 10 * 60,
    "30m": 30 * 60,
    "1h": 60 * 60,
    "1d": 24 * 60 * 60,
}

OPEN = "open"
SETTLED = "settled"


class UnknownHorizonError(ValueError):
    """The requested horizon is not one of ``HORIZONS``."""


class PredictionStateError(Exception):
    """A prediction was asked to settle when it cannot."""


def horizon_seconds(horizon: str) -> int:
    """Return the duration of *horizon* in seconds."""
    try:
        return HORIZONS[horizon]
    except KeyError:
        raise UnknownHorizonError(
            f"Unknown horizon {horizon!r}; expected one of {', '.join(HORIZONS)}"
        ) from None


def score(recommendation: str, predicted_price: float, actual_price: float) -> str:
    """Judge a call against the actual price.

    ``up`` is correct only if the price rose, ``down`` only if it fell. A
    ``neutral`` call cannot be judged.
    """
    if recommendation == "up":
        return "correct" if actual_price > predicted_price else "incorrect"
    if recommendation == "down":
        return "correct" if actual_price < predicted_price else "incorrect"
    return "unknown"


@dataclass
class Prediction:
    """A user's price-direction guess.

    ``time`` and ``end_time`` are epoch seconds. ``actual_price`` and
    ``result`` stay ``None`` until the prediction settles.
    """

    id: int
    time: float
    price: float
    horizon: str
    recommendation: str  # "up", "down" or "neutral"
    predicted_price: float
    end_time: float
    reason: str = ""
    risk: str = ""
    analysis_detail: str = ""
    actual_price: Optional[float] = None
    result: Optional[str] = None

    @property
    def status(self) -> str:
        return SETTLED if self.result is not None else OPEN

    def is_due(self, now: float) -> bool:
        return self.status == OPEN and now >= self.end_time

    def remaining_seconds(self, now: float) -> int:
        if self.status == SETTLED:
            return 0
        return max(0, int(self.end_time - now))

    def settle(self, actual_price: float, now: float) -> str:
        """Record *actual_price* and score the call. Allowed once.

        Raises ``PredictionStateError`` if already settled or if the
        horizon has not elapsed at *now*.
        """
        if self.status == SETTLED:
            raise PredictionStateError(f"Prediction {self.id} already settled")
        if now < self.end_time:
            raise PredictionStateError(
                f"Prediction {self.id} not due until {self.end_time}"
            )
        self.actual_price = actual_price
        self.result = score(self.recommendation, self.predicted_price, actual_price)
        return self.result

    def to_dict(self, now: Optional[float] = None) -> dict:
        data = asdict(self)
        data["status"] = self.status
        if now is not None:
            data["remaining_seconds"] = self.remaining_seconds(now)
        return data
