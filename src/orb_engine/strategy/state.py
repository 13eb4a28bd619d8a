"""Per-symbol trading state for one session."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from ..data.base import Bar
from ..execution.order import OrderIntent
from ..features.opening_range import OpeningRange
from ..signals.detector import BreakoutMarker, Direction, RetestType
from ..utils.timeframe import TimeFrame


class TradingPhase(str, Enum):
    """Session phase of one symbol."""

    WAITING_FOR_MARKET_OPEN = "waiting_for_market_open"
    COLLECTING_OPENING_RANGE = "collecting_opening_range"
    MONITORING_FOR_BREAKOUT = "monitoring_for_breakout"
    MONITORING_FOR_RETEST = "monitoring_for_retest"
    SETUP_COMPLETE = "setup_complete"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are possible."""
        return self in (TradingPhase.SETUP_COMPLETE, TradingPhase.TIMEOUT)


class OpeningRangeLockedError(RuntimeError):
    """The opening range was already frozen for this session."""


@dataclass
class SymbolTradingState:
    """Mutable state of one symbol for one session.

    Only the strategy mutates it, and only inside the symbol's exclusive
    section held by the dispatcher.
    """

    symbol: str
    session_date: Optional[date] = None
    phase: TradingPhase = TradingPhase.WAITING_FOR_MARKET_OPEN
    started: bool = False

    or_bars: List[Bar] = field(default_factory=list)
    _opening_range: Optional[OpeningRange] = field(default=None, init=False, repr=False)

    pending_direction: Optional[Direction] = None
    pending_breakout_bars: List[Bar] = field(default_factory=list)
    breakout: Optional[BreakoutMarker] = None

    retest_bars_seen: int = 0
    retest_type: Optional[RetestType] = None

    last_bar_ts: Dict[TimeFrame, datetime] = field(default_factory=dict)

    phase_entered_at: Optional[datetime] = None
    market_open_time: Optional[datetime] = None
    breakout_start_time: Optional[datetime] = None
    retest_start_time: Optional[datetime] = None

    emitted_intents: List[OrderIntent] = field(default_factory=list)
    terminal_reason: Optional[str] = None

    @property
    def opening_range(self) -> Optional[OpeningRange]:
        """Frozen opening range, None until collected."""
        return self._opening_range

    def freeze_opening_range(self, opening_range: OpeningRange) -> None:
        """Assign the session's opening range.

        Raises:
            OpeningRangeLockedError: If a range was already assigned.
        """
        if self._opening_range is not None:
            raise OpeningRangeLockedError(
                f"[{self.symbol}] Opening range already set for {self.session_date}: "
                f"{self._opening_range}"
            )
        self._opening_range = opening_range

    def transition(self, phase: TradingPhase, at: datetime) -> None:
        """Enter a new phase."""
        if self.phase.is_terminal:
            raise RuntimeError(f"[{self.symbol}] Cannot leave terminal phase {self.phase.value}")

        self.phase = phase
        self.phase_entered_at = at

        if phase is TradingPhase.COLLECTING_OPENING_RANGE:
            self.market_open_time = at
        elif phase is TradingPhase.MONITORING_FOR_BREAKOUT:
            self.breakout_start_time = at
        elif phase is TradingPhase.MONITORING_FOR_RETEST:
            self.retest_start_time = at

    def is_new_bar(self, bar: Bar) -> bool:
        """Record a bar's timestamp, returning False if it was already seen."""
        last = self.last_bar_ts.get(bar.timeframe)
        if last is not None and bar.timestamp <= last:
            return False
        self.last_bar_ts[bar.timeframe] = bar.timestamp
        return True

    def clear_pending_breakout(self) -> None:
        """Drop unconfirmed breakout candidates."""
        self.pending_direction = None
        self.pending_breakout_bars.clear()

    def reset(self, session_date: date) -> None:
        """Start over for a new session, discarding all prior session data."""
        self.session_date = session_date
        self.phase = TradingPhase.WAITING_FOR_MARKET_OPEN
        self.started = False
        self.or_bars = []
        self._opening_range = None
        self.pending_direction = None
        self.pending_breakout_bars = []
        self.breakout = None
        self.retest_bars_seen = 0
        self.retest_type = None
        self.last_bar_ts = {}
        self.phase_entered_at = None
        self.market_open_time = None
        self.breakout_start_time = None
        self.retest_start_time = None
        self.emitted_intents = []
        self.terminal_reason = None

    def to_dict(self) -> dict:
        """Summary for logs and reports."""
        return {
            "symbol": self.symbol,
            "session_date": self.session_date.isoformat() if self.session_date else None,
            "phase": self.phase.value,
            "or_high": self._opening_range.high if self._opening_range else None,
            "or_low": self._opening_range.low if self._opening_range else None,
            "breakout": self.breakout.direction.value if self.breakout else None,
            "retest": self.retest_type.value if self.retest_type else None,
            "intents": len(self.emitted_intents),
            "terminal_reason": self.terminal_reason,
        }


@dataclass
class TradingContext:
    """One symbol's state for one trading day."""

    symbol: str
    session_date: date
    state: SymbolTradingState

    @classmethod
    def new(cls, symbol: str, session_date: date) -> "TradingContext":
        """Fresh context with an unstarted state."""
        return cls(
            symbol=symbol,
            session_date=session_date,
            state=SymbolTradingState(symbol=symbol, session_date=session_date),
        )
