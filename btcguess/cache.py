"""Single-slot result cache with time-based expiry.

Holds the most recent value only. There is no eviction beyond staleness.
"""

import time
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class ExpiringSlot(Generic[T]):
    """One cached value that goes stale *ttl_seconds* after it was stored.

    Args:
        ttl_seconds: Lifetime of a stored value.
        clock: Monotonic time source in seconds. Injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not ttl_seconds > 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._value: Optional[T] = None
        self._stored_at: Optional[float] = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self) -> Optional[T]:
        """Return the stored value, or ``None`` when empty or stale."""
        if self._stored_at is None:
            return None
        if self._clock() - self._stored_at >= self._ttl:
            return None
        return self._value

    def set(self, value: T) -> None:
        """Store *value*, replacing whatever was there."""
        self._value = value
        self._stored_at = self._clock()

    def clear(self) -> None:
        self._value = None
        self._stored_at = None
