"""Per-symbol ORB state machine."""

from .state import OpeningRangeLockedError, SymbolTradingState, TradingContext, TradingPhase
from .orb import OrbStrategy, TickResult

__all__ = [
    "OpeningRangeLockedError",
    "SymbolTradingState",
    "TradingContext",
    "TradingPhase",
    "OrbStrategy",
    "TickResult",
]
