"""Bounded bar history — fixed-capacity, chronologically ordered."""

from collections import deque

from trendbot.errors import InvalidConfigError, InvalidInputError
from trendbot.strategy.models import PriceBar


class BoundedBarHistory:
    """Keeps the most recent *capacity* closed bars, oldest first.

    Args:
        capacity: Maximum number of bars retained.  The oldest bar is
            evicted once the buffer is full.
    """

    def __init__(self, capacity: int = 500) -> None:
        if capacity < 1:
            raise InvalidConfigError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._bars: deque[PriceBar] = deque(maxlen=capacity)

    def append(self, bar: PriceBar) -> bool:
        """Store *bar* and return ``True``.

        A bar with the same timestamp as the last stored bar is treated as a
        duplicate ingestion: nothing changes and ``False`` is returned.

        Raises:
            InvalidInputError: If *bar* is older than the last stored bar.
        """
        if self._bars:
            last = self._bars[-1]
            if bar.timestamp == last.timestamp:
                return False
            if bar.timestamp < last.timestamp:
                raise InvalidInputError(
                    f"bar at {bar.timestamp.isoformat()} is older than the "
                    f"last stored bar at {last.timestamp.isoformat()}"
                )
        self._bars.append(bar)
        return True

    def as_sequence(self) -> tuple[PriceBar, ...]:
        """Ordered snapshot of the stored bars, oldest first."""
        return tuple(self._bars)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def last(self) -> PriceBar | None:
        return self._bars[-1] if self._bars else None

    def __len__(self) -> int:
        return len(self._bars)
