"""Breakout and retest detection against a finalized opening range."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from loguru import logger

from ..data.base import Bar
from ..features.opening_range import OpeningRange


class Direction(str, Enum):
    """Breakout direction."""

    BULLISH = "bullish"
    BEARISH = "bearish"

    @property
    def sign(self) -> int:
        """+1 for bullish, -1 for bearish."""
        return 1 if self is Direction.BULLISH else -1


class RetestType(str, Enum):
    """How deep price came back after the breakout."""

    SHALLOW = "shallow"  # Touched the boundary zone, closed outside the range
    DEEP = "deep"  # Closed back inside the range


@dataclass(frozen=True)
class BreakoutMarker:
    """Confirmed breakout."""

    direction: Direction
    price: float  # Close of the confirming bar
    bar_high: float
    bar_low: float
    timestamp: datetime

    @classmethod
    def from_bar(cls, direction: Direction, bar: Bar) -> "BreakoutMarker":
        return cls(
            direction=direction,
            price=bar.close,
            bar_high=bar.high,
            bar_low=bar.low,
            timestamp=bar.timestamp,
        )


def detect_breakout(
    bar: Bar,
    upper_trigger: float,
    lower_trigger: float,
) -> Optional[Direction]:
    """Detect a closing breakout.

    Args:
        bar: Latest closed bar.
        upper_trigger: Upper threshold (OR high + buffer).
        lower_trigger: Lower threshold (OR low - buffer).

    Returns:
        Direction of the breakout, or None if the close is inside the triggers.

    Notes:
        - Bullish when ``close > upper_trigger``, bearish when ``close < lower_trigger``.
        - If both hold (triggers crossed), the trigger nearer to the close
          wins; an exact tie resolves bullish. The outcome depends only on the
          inputs.
        - :class:`OrbStrategy` never passes crossed triggers: the breakout
          buffer is non-negative and an OR has ``high >= low``. An outside
          bar whose wick pierces both boundaries is judged by its close
          alone, so the tie-break only serves callers with custom triggers.
    """
    up = bar.close > upper_trigger
    down = bar.close < lower_trigger

    if up and down:
        direction = resolve_double_breach(bar.close, upper_trigger, lower_trigger)
        logger.debug(
            f"[{bar.symbol}] close {bar.close} breaches both triggers "
            f"({upper_trigger}, {lower_trigger}), nearer boundary gives {direction.value}"
        )
        return direction
    if up:
        return Direction.BULLISH
    if down:
        return Direction.BEARISH
    return None


def resolve_double_breach(close: float, upper: float, lower: float) -> Direction:
    """Pick the side whose boundary is nearer to the close (ties go bullish)."""
    if abs(close - upper) <= abs(close - lower):
        return Direction.BULLISH
    return Direction.BEARISH


def closed_through_range(bar: Bar, opening_range: OpeningRange, direction: Direction) -> bool:
    """Check if a bar closed beyond the boundary opposite the breakout.

    Such a bar has crossed the whole range and marks a failed breakout.
    """
    if direction is Direction.BULLISH:
        return bar.close < opening_range.low
    return bar.close > opening_range.high


def detect_retest(
    bar: Bar,
    opening_range: OpeningRange,
    direction: Direction,
    buffer: float,
) -> Optional[RetestType]:
    """Detect a retest of the broken boundary.

    Bullish breakouts retest when the bar's low comes back to within
    ``buffer`` of the OR high; bearish breakouts when the bar's high comes
    back to within ``buffer`` of the OR low.

    A close back inside the range (boundaries inclusive) is a deep retest,
    a close still beyond the broken boundary a shallow one. A close beyond
    the opposite boundary is not a retest at all (see
    :func:`closed_through_range`).

    Returns:
        RetestType, or None if price stayed away from the boundary or fell
        through the whole range.
    """
    if closed_through_range(bar, opening_range, direction):
        return None

    if direction is Direction.BULLISH:
        if bar.low > opening_range.high + buffer:
            return None
        return RetestType.DEEP if opening_range.contains(bar.close) else RetestType.SHALLOW

    if bar.high < opening_range.low - buffer:
        return None
    return RetestType.DEEP if opening_range.contains(bar.close) else RetestType.SHALLOW
