"""Support/resistance threshold heuristic. Pure function, no I/O."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Assessment:
    """Direction call from fixed support/resistance levels."""

    recommendation: str  # "up", "down" or "neutral"
    reason: str
    risk: str  # "low", "medium" or "high"


def assess_price(price: float, support: float, resistance: float) -> Assessment:
    """Call a direction from where *price* sits between the two levels.

    At or below support the price tends to bounce; at or above resistance it
    tends to pull back. In between there is no call.
    """
    if price <= support:
        return Assessment(
            recommendation="up",
            reason="price is near intraday support, likely to rebound",
            risk="low",
        )
    if price >= resistance:
        return Assessment(
            recommendation="down",
            reason="price is near resistance, likely to pull back",
            risk="medium",
        )
    return Assessment(
        recommendation="neutral",
        reason="price is in a neutral range, direction unclear",
        risk="high",
    )
