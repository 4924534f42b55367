"""Depth analysis — SMA and volatility ratio over recent closes.

``analyze_closes`` is pure math with no I/O. ``DepthAnalyzer`` wraps it with
the candle-source fallback chain and a single-slot result cache.
"""

import logging
import math
from typing import Optional, Sequence

from btcguess.cache import ExpiringSlot
from btcguess.market.models import AnalysisResult
from btcguess.market.sources import CandleSource, SourceError

logger = logging.getLogger("btcguess.depth")

LOW_RISK_MAX = 0.005
HIGH_RISK_MIN = 0.01


class InsufficientDataError(ValueError):
    """Too few (or unusable) closing prices to analyse."""


class AllSourcesFailedError(Exception):
    """Every candle source in the chain failed.

    ``errors`` holds the last error of each attempted source, in order.
    """

    def __init__(self, errors: list[SourceError]) -> None:
        self.errors = errors
        detail = "; ".join(str(e) for e in errors) or "no sources configured"
        super().__init__(detail)


def classify_risk(vol_ratio: float) -> str:
    """Bucket a volatility ratio into ``low`` / ``medium`` / ``high``."""
    if vol_ratio < LOW_RISK_MAX:
        return "low"
    if vol_ratio > HIGH_RISK_MIN:
        return "high"
    return "medium"


def analyze_closes(closes: Sequence[float]) -> AnalysisResult:
    """Compute the recommendation and risk label for *closes*.

    *closes* are ordered oldest to newest. The last close must be strictly
    above the mean for an ``up`` call; a tie is ``down``.

    Raises ``InsufficientDataError`` for an empty sequence or a mean that
    is not finite and positive.
    """
    if not closes:
        raise InsufficientDataError("no closing prices to analyse")

    n = len(closes)
    avg = sum(closes) / n
    if not math.isfinite(avg) or avg <= 0:
        raise InsufficientDataError(f"mean close must be finite and positive, got {avg}")
    variance = sum((c - avg) ** 2 for c in closes) / n
    vol_ratio = math.sqrt(variance) / avg
    last = closes[-1]

    recommendation = "up" if last > avg else "down"
    return AnalysisResult(
        recommendation=recommendation,
        risk_index=classify_risk(vol_ratio),
        detail=(
            f"SMA={avg:.2f}, volatility={vol_ratio * 100:.2f}%, "
            f"last={last:.2f}"
        ),
        avg=avg,
        vol_ratio=vol_ratio,
        last=last,
    )


class DepthAnalyzer:
    """Fetch candles through an ordered fallback chain and analyse them.

    Args:
        sources: Candle adapters in priority order.
        cache: Slot holding the most recent result.
        symbol: Exchange symbol, e.g. ``"BTCUSDT"``.
        interval: Candle interval, e.g. ``"1h"``.
        limit: Number of candles to request.
    """

    def __init__(
        self,
        sources: Sequence[CandleSource],
        cache: ExpiringSlot[AnalysisResult],
        symbol: str = "BTCUSDT",
        interval: str = "1h",
        limit: int = 20,
    ) -> None:
        self._sources = list(sources)
        self._cache = cache
        self._symbol = symbol
        self._interval = interval
        self._limit = limit

    @property
    def cache(self) -> ExpiringSlot[AnalysisResult]:
        return self._cache

    async def analyze(self) -> AnalysisResult:
        """Return a fresh or cached analysis.

        Raises ``AllSourcesFailedError`` when no source produced usable
        candles.
        """
        cached = self._cache.get()
        if cached is not None:
            logger.debug("Depth analysis served from cache")
            return cached

        errors: list[SourceError] = []
        for source in self._sources:
            result = await self._try_source(source, errors)
            if result is not None:
                self._cache.set(result)
                return result

        logger.error(
            "Depth analysis failed on all %d source(s)", len(self._sources)
        )
        raise AllSourcesFailedError(errors)

    async def _try_source(
        self, source: CandleSource, errors: list[SourceError]
    ) -> Optional[AnalysisResult]:
        try:
            candles = await source.fetch_candles(
                self._symbol, self._interval, self._limit
            )
            result = analyze_closes([c.close for c in candles])
        except SourceError as exc:
            errors.append(exc)
        except InsufficientDataError as exc:
            errors.append(SourceError(source.name, str(exc)))
        else:
            logger.info(
                "Depth analysis via %s: %s (%s risk)",
                source.name, result.recommendation, result.risk_index,
            )
            return result

        logger.warning("Candle source %s failed: %s", source.name, errors[-1].message)
        return None
