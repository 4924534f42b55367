"""Market data models — typed representations of upstream price data."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PriceSample:
    """Latest trade price at a point in time (epoch seconds)."""

    time: float
    price: float


@dataclass(frozen=True)
class Candle:
    """A single candlestick bar. Times are epoch milliseconds."""

    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of a depth analysis over recent closes."""

    recommendation: str  # "up" or "down"
    risk_index: str  # "low", "medium" or "high"
    detail: str
    avg: float
    vol_ratio: float
    last: float

    def to_dict(self) -> dict:
        """Render the JSON shape served by ``/api/btc-depth``."""
        return {
            "recommendation": self.recommendation,
            "riskIndex": self.risk_index,
            "analysisDetail": self.detail,
        }
