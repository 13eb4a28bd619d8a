"""Strategy registry, concurrent dispatcher and schedule trigger."""

from .registry import StrategyNotFoundError, StrategyRegistry
from .dispatcher import CycleResult, StrategyDispatcher, SymbolOutcome
from .scheduler import SessionScheduler

__all__ = [
    "StrategyNotFoundError",
    "StrategyRegistry",
    "CycleResult",
    "StrategyDispatcher",
    "SymbolOutcome",
    "SessionScheduler",
]
