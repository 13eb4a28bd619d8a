"""Signal generation: breakout and retest detection."""

from .detector import (
    BreakoutMarker,
    Direction,
    RetestType,
    closed_through_range,
    detect_breakout,
    detect_retest,
    resolve_double_breach,
)

__all__ = [
    "BreakoutMarker",
    "Direction",
    "RetestType",
    "closed_through_range",
    "detect_breakout",
    "detect_retest",
    "resolve_double_breach",
]
