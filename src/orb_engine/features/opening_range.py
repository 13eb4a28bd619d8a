"""Opening Range (OR) calculation."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from loguru import logger

from ..data.base import Bar


@dataclass(frozen=True)
class OpeningRange:
    """Finalized opening range (high/low band of the first bars of a session)."""

    high: float
    low: float
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    bar_count: int = 0

    def __post_init__(self) -> None:
        if self.high < self.low:
            raise ValueError(f"OR high {self.high} < low {self.low}")

    @property
    def width(self) -> float:
        """OR width."""
        return self.high - self.low

    @property
    def midpoint(self) -> float:
        """OR midpoint."""
        return (self.high + self.low) / 2.0

    def contains(self, price: float) -> bool:
        """Check if a price lies inside the range (inclusive)."""
        return self.low <= price <= self.high

    def __repr__(self) -> str:
        return f"OpeningRange(H={self.high:.2f} L={self.low:.2f} W={self.width:.2f}, bars={self.bar_count})"


def compute_opening_range(bars: Sequence[Bar]) -> OpeningRange:
    """Compute the OR over a window of bars.

    Args:
        bars: Bars of the OR window, in time order.

    Returns:
        OpeningRange with ``high = max(high)`` and ``low = min(low)``.

    Raises:
        ValueError: If no bars are given.
    """
    if not bars:
        raise ValueError("Cannot compute opening range from zero bars")

    opening_range = OpeningRange(
        high=max(bar.high for bar in bars),
        low=min(bar.low for bar in bars),
        start_time=bars[0].timestamp,
        end_time=bars[-1].end_time,
        bar_count=len(bars),
    )

    logger.debug(f"Computed {opening_range}")

    return opening_range
