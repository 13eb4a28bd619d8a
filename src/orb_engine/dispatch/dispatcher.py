"""Concurrent fan-out of strategy work across symbols.

Each symbol gets its own single-worker lane, so its ticks run in trigger
order while different symbols proceed in parallel. Work on a symbol also
holds that symbol's lock, which snapshot reads share.
"""

import copy
import threading
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional

from loguru import logger

from ..config import SessionConfig, StrategyType
from ..execution.order import OrderIntent
from ..strategy.orb import OrbStrategy, TickResult
from ..strategy.state import TradingContext, TradingPhase
from ..utils.time_utils import market_today
from .registry import StrategyRegistry


@dataclass
class SymbolOutcome:
    """Result of one symbol's task in a cycle."""

    symbol: str
    phase: Optional[TradingPhase] = None
    tick: Optional[TickResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """Check if the task completed without error."""
        return self.error is None and (self.tick is None or self.tick.error is None)


@dataclass
class CycleResult:
    """Outcomes of one start/advance/close cycle."""

    action: str
    session_date: Optional[date]
    outcomes: Dict[str, SymbolOutcome] = field(default_factory=dict)

    @property
    def failed(self) -> List[SymbolOutcome]:
        """Outcomes that carry an error."""
        return [o for o in self.outcomes.values() if not o.ok]

    @property
    def intents(self) -> List[OrderIntent]:
        """Intents emitted during the cycle."""
        return [i for o in self.outcomes.values() if o.tick for i in o.tick.intents]

    @property
    def all_terminal(self) -> bool:
        """Check if every symbol reached a terminal phase."""
        return all(o.phase is not None and o.phase.is_terminal for o in self.outcomes.values())


class StrategyDispatcher:
    """Runs one strategy variant over a symbol universe."""

    def __init__(
        self,
        registry: StrategyRegistry,
        strategy_type: StrategyType,
        symbols: List[str],
        session: SessionConfig,
        max_workers: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize dispatcher.

        Args:
            registry: Registered strategy engines.
            strategy_type: Variant to run.
            symbols: Symbol universe.
            session: Session timing (for trading date and day changes).
            max_workers: Upper bound on symbols worked at once (unbounded if None).
            clock: Returns the current aware UTC time.
        """
        self.registry = registry
        self.strategy_type = strategy_type
        self.symbols = [s.upper() for s in symbols]
        self.session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._contexts: Dict[str, TradingContext] = {}
        self._contexts_lock = threading.Lock()
        self._symbol_locks = defaultdict(threading.Lock)  # symbol -> Lock
        self._lanes: Dict[str, ThreadPoolExecutor] = {}
        self._lanes_lock = threading.Lock()
        self._throttle = threading.BoundedSemaphore(max_workers) if max_workers else None
        self._closed = False

    @property
    def strategy(self) -> OrbStrategy:
        """Engine for the configured strategy type.

        Raises:
            StrategyNotFoundError: If the type is not registered.
        """
        return self.registry.get_strategy(self.strategy_type)

    def trading_date(self) -> date:
        """Current trading date in the market timezone."""
        return market_today(self._clock(), self.session.timezone)

    @contextmanager
    def symbol_guard(self, symbol: str):
        """Exclusive section for one symbol's state."""
        lock = self._symbol_locks[symbol.upper()]
        with lock:
            yield

    def start_symbol(self, symbol: str, session_date: Optional[date] = None) -> "Future[TradingContext]":
        """Start a symbol's session without blocking the caller."""
        strategy = self.strategy
        day = session_date or self.trading_date()
        return self._submit(symbol.upper(), lambda s: self._start(strategy, s, day))

    def start_all(self, session_date: Optional[date] = None) -> CycleResult:
        """Start every symbol's session and wait for all of them."""
        strategy = self.strategy
        day = session_date or self.trading_date()
        logger.info(f"Starting {self.strategy_type.value} for {len(self.symbols)} symbols on {day}")

        return self._fan_out(
            "start",
            day,
            lambda s: self._outcome(s, self._start(strategy, s, day)),
        )

    def advance_all(self) -> CycleResult:
        """Tick every started symbol once and wait for all of them."""
        strategy = self.strategy
        day = self.trading_date() if self.session.use_wall_clock else None

        return self._fan_out("advance", day, lambda s: self._advance(strategy, s, day))

    def close_session(self, reason: str = "session closed") -> CycleResult:
        """Force every unfinished symbol into TIMEOUT."""
        strategy = self.strategy
        logger.info(f"Closing session for {self.strategy_type.value}: {reason}")

        def close(symbol: str) -> SymbolOutcome:
            context = self._get(symbol)
            if context is None:
                return SymbolOutcome(symbol=symbol)
            strategy.force_timeout(context, reason)
            return self._outcome(symbol, context)

        return self._fan_out("close", None, close)

    def context(self, symbol: str) -> Optional[TradingContext]:
        """Snapshot of a symbol's context (None if never started)."""
        symbol = symbol.upper()
        with self.symbol_guard(symbol):
            context = self._get(symbol)
            return copy.deepcopy(context) if context is not None else None

    def active_symbols(self) -> List[str]:
        """Symbols started and not yet terminal."""
        active = []
        for symbol in self.symbols:
            with self.symbol_guard(symbol):
                context = self._get(symbol)
                if context is not None and self.strategy.should_monitor(context):
                    active.append(symbol)
        return active

    def shutdown(self, wait: bool = True) -> None:
        """Stop all symbol lanes."""
        with self._lanes_lock:
            self._closed = True
            lanes = list(self._lanes.values())
            self._lanes.clear()

        for lane in lanes:
            lane.shutdown(wait=wait)

        logger.info(f"Dispatcher shut down ({len(lanes)} lanes)")

    def __enter__(self) -> "StrategyDispatcher":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def _start(self, strategy: OrbStrategy, symbol: str, day: date) -> TradingContext:
        context = self._get(symbol)
        if context is not None and context.session_date != day:
            strategy.force_timeout(context, f"session {context.session_date} ended")
            context = None

        if context is None:
            context = TradingContext.new(symbol, day)
            with self._contexts_lock:
                self._contexts[symbol] = context

        return strategy.start_strategy(context)

    def _advance(self, strategy: OrbStrategy, symbol: str, day: Optional[date]) -> SymbolOutcome:
        context = self._get(symbol)
        if context is None:
            return SymbolOutcome(symbol=symbol, error="symbol not started")

        if day is not None and context.session_date != day:
            strategy.force_timeout(context, f"trading date changed to {day}")
            return self._outcome(symbol, context)

        tick = strategy.on_tick(context)
        return SymbolOutcome(symbol=symbol, phase=context.state.phase, tick=tick)

    def _outcome(self, symbol: str, context: TradingContext) -> SymbolOutcome:
        return SymbolOutcome(symbol=symbol, phase=context.state.phase)

    def _fan_out(
        self,
        action: str,
        day: Optional[date],
        task: Callable[[str], SymbolOutcome],
    ) -> CycleResult:
        futures = {symbol: self._submit(symbol, task) for symbol in self.symbols}
        result = CycleResult(action=action, session_date=day)

        for symbol, future in futures.items():
            try:
                result.outcomes[symbol] = future.result()
            except Exception as e:
                logger.error(f"[{symbol}] {action} failed: {type(e).__name__}: {e}")
                result.outcomes[symbol] = SymbolOutcome(
                    symbol=symbol,
                    phase=self._phase_of(symbol),
                    error=f"{type(e).__name__}: {e}",
                )

        if result.failed:
            logger.warning(f"{action} cycle finished with {len(result.failed)} failed symbol(s)")

        return result

    def _submit(self, symbol: str, task: Callable[[str], object]) -> Future:
        return self._lane(symbol).submit(self._guarded, symbol, task)

    def _guarded(self, symbol: str, task: Callable[[str], object]):
        if self._throttle is None:
            with self.symbol_guard(symbol):
                return task(symbol)

        with self._throttle:
            with self.symbol_guard(symbol):
                return task(symbol)

    def _lane(self, symbol: str) -> ThreadPoolExecutor:
        with self._lanes_lock:
            if self._closed:
                raise RuntimeError("Dispatcher is shut down")
            lane = self._lanes.get(symbol)
            if lane is None:
                lane = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"lane-{symbol}")
                self._lanes[symbol] = lane
            return lane

    def _get(self, symbol: str) -> Optional[TradingContext]:
        with self._contexts_lock:
            return self._contexts.get(symbol)

    def _phase_of(self, symbol: str) -> Optional[TradingPhase]:
        context = self._get(symbol)
        return context.state.phase if context is not None else None
