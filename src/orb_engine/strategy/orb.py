"""Opening range breakout / retest state machine.

One :class:`OrbStrategy` serves every symbol of a strategy variant. It keeps no
per-symbol state of its own: everything lives in the :class:`TradingContext`
passed in, so the dispatcher decides which thread touches which symbol.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from loguru import logger

from ..config import OrderType, SessionConfig, StrategyConfig, StrategyType
from ..data.base import Bar, DataSource, DataSourceError
from ..execution.gateway import OrderGateway
from ..execution.order import OrderIntent, OrderSide, SubmissionResult
from ..features.opening_range import compute_opening_range
from ..signals.detector import (
    BreakoutMarker,
    Direction,
    closed_through_range,
    detect_breakout,
    detect_retest,
)
from ..utils.time_utils import market_time_to_utc
from ..utils.timeframe import TimeFrame
from .state import TradingContext, TradingPhase

PRICE_DECIMALS = 2


@dataclass
class TickResult:
    """What one ``on_tick`` call did."""

    symbol: str
    phase_before: TradingPhase
    phase_after: TradingPhase
    intents: List[OrderIntent] = field(default_factory=list)
    submissions: List[SubmissionResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def transitioned(self) -> bool:
        """Check if the phase changed during the tick."""
        return self.phase_before is not self.phase_after


class OrbStrategy:
    """Per-symbol ORB state machine for one strategy variant.

    Phases run ``WAITING_FOR_MARKET_OPEN -> COLLECTING_OPENING_RANGE ->
    MONITORING_FOR_BREAKOUT -> MONITORING_FOR_RETEST -> SETUP_COMPLETE``,
    with ``TIMEOUT`` reachable from any non-terminal phase. The
    ``orb_breakout`` variant enters at breakout confirmation and skips the
    retest phase.
    """

    def __init__(
        self,
        strategy_type: StrategyType,
        data_source: DataSource,
        gateway: OrderGateway,
        config: StrategyConfig,
        session: SessionConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize strategy.

        Args:
            strategy_type: Variant this engine implements.
            data_source: Bar source bound to this engine.
            gateway: Destination of emitted order intents.
            config: Variant parameters.
            session: Session timing.
            clock: Returns the current aware UTC time.
        """
        self.strategy_type = strategy_type
        self.data_source = data_source
        self.gateway = gateway
        self.config = config
        self.session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def or_timeframe(self) -> TimeFrame:
        return self.config.opening_range.timeframe

    @property
    def monitor_timeframe(self) -> TimeFrame:
        return self.config.breakout.timeframe

    def should_monitor(self, context: TradingContext) -> bool:
        """Check if the symbol still needs ticks this session."""
        return context.state.started and not context.state.phase.is_terminal

    def start_strategy(self, context: TradingContext) -> TradingContext:
        """Start (or restart) a symbol's session.

        Idempotent for the same session date: an already started state is
        returned untouched. Otherwise prior session data is discarded.
        """
        state = context.state
        if state.started and state.session_date == context.session_date:
            logger.debug(f"[{context.symbol}] Strategy already started for {context.session_date}")
            return context

        state.reset(context.session_date)
        state.started = True
        self.data_source.prepare_session(context.symbol, context.session_date)

        now = self._clock()
        state.phase_entered_at = now
        if self._market_open_passed(context, now):
            state.transition(TradingPhase.COLLECTING_OPENING_RANGE, now)

        logger.info(
            f"[{context.symbol}] Started {self.strategy_type.value} for {context.session_date} "
            f"in {state.phase.value}"
        )

        return context

    def on_tick(self, context: TradingContext) -> TickResult:
        """Advance the state machine by at most one transition.

        Returns:
            TickResult with the intents emitted during this tick. Fetch
            failures leave the phase unchanged and are reported on ``error``.
        """
        state = context.state
        result = TickResult(
            symbol=context.symbol,
            phase_before=state.phase,
            phase_after=state.phase,
        )

        if not state.started or state.session_date != context.session_date:
            result.error = "strategy not started for this session"
            logger.warning(f"[{context.symbol}] Tick before start for {context.session_date}")
            return result

        if state.phase.is_terminal:
            return result

        now = self._clock()
        if self.session.use_wall_clock and now >= self._deadline(context):
            self._timeout(context, now, f"setup deadline {self.session.deadline} reached")
            result.phase_after = state.phase
            return result

        try:
            intents = self._advance(context, now)
        except DataSourceError as e:
            logger.warning(f"[{context.symbol}] Missed tick in {state.phase.value}: {e}")
            result.error = f"{type(e).__name__}: {e}"
            return result

        result.intents = intents
        result.submissions = [self._submit(intent) for intent in intents]
        result.phase_after = state.phase

        if result.transitioned:
            logger.info(
                f"[{context.symbol}] {result.phase_before.value} -> {result.phase_after.value}"
            )

        return result

    def force_timeout(self, context: TradingContext, reason: str) -> bool:
        """Move a non-terminal symbol to TIMEOUT.

        Returns:
            True if the state changed.
        """
        if context.state.phase.is_terminal:
            return False
        self._timeout(context, self._clock(), reason)
        return True

    def _advance(self, context: TradingContext, now: datetime) -> List[OrderIntent]:
        phase = context.state.phase

        if phase is TradingPhase.WAITING_FOR_MARKET_OPEN:
            if self._market_open_passed(context, now):
                context.state.transition(TradingPhase.COLLECTING_OPENING_RANGE, now)
            return []
        if phase is TradingPhase.COLLECTING_OPENING_RANGE:
            self._collect_opening_range(context, now)
            return []
        if phase is TradingPhase.MONITORING_FOR_BREAKOUT:
            return self._monitor_breakout(context, now)
        if phase is TradingPhase.MONITORING_FOR_RETEST:
            return self._monitor_retest(context, now)

        return []

    def _collect_opening_range(self, context: TradingContext, now: datetime) -> None:
        state = context.state
        bar = self._next_bar(context, self.or_timeframe, now)
        if bar is None:
            return

        if bar.timestamp < self._market_open(context):
            logger.debug(f"[{context.symbol}] Ignoring pre-open bar at {bar.timestamp}")
            return

        state.or_bars.append(bar)
        logger.debug(
            f"[{context.symbol}] OR bar {len(state.or_bars)}/{self.config.opening_range.bars}: "
            f"H={bar.high} L={bar.low}"
        )

        if len(state.or_bars) < self.config.opening_range.bars:
            return

        opening_range = compute_opening_range(state.or_bars)
        state.freeze_opening_range(opening_range)
        state.transition(TradingPhase.MONITORING_FOR_BREAKOUT, now)

        logger.info(f"[{context.symbol}] Opening range set: {opening_range}")

    def _monitor_breakout(self, context: TradingContext, now: datetime) -> List[OrderIntent]:
        state = context.state
        max_wait = timedelta(minutes=self.config.breakout.max_wait_minutes)

        if self.session.use_wall_clock and now - state.breakout_start_time >= max_wait:
            self._timeout(context, now, self._breakout_wait_reason())
            return []

        bar = self._next_bar(context, self.monitor_timeframe, now)
        if bar is None:
            return []

        opening_range = state.opening_range
        # Replays have no wall clock, so the budget also runs on bar time
        if bar.timestamp >= opening_range.end_time + max_wait:
            self._timeout(context, now, self._breakout_wait_reason())
            return []

        buffer = self.config.breakout.buffer
        direction = detect_breakout(bar, opening_range.high + buffer, opening_range.low - buffer)

        if direction is None:
            if state.pending_breakout_bars:
                logger.debug(f"[{context.symbol}] Close {bar.close} back inside range, candidates reset")
            state.clear_pending_breakout()
            return []

        if state.pending_direction is not direction:
            state.clear_pending_breakout()
            state.pending_direction = direction
        state.pending_breakout_bars.append(bar)

        if len(state.pending_breakout_bars) < self.config.breakout.confirmation_bars:
            logger.debug(
                f"[{context.symbol}] {direction.value} candidate "
                f"{len(state.pending_breakout_bars)}/{self.config.breakout.confirmation_bars}"
            )
            return []

        state.breakout = BreakoutMarker.from_bar(direction, bar)
        state.clear_pending_breakout()

        logger.info(
            f"[{context.symbol}] {direction.value.upper()} breakout confirmed at {bar.close} "
            f"(OR {opening_range.low}-{opening_range.high})"
        )

        if self.strategy_type is StrategyType.ORB_BREAKOUT:
            intent = self._build_intent(context, direction, now, reason="breakout")
            return self._complete(context, intent, now)

        state.transition(TradingPhase.MONITORING_FOR_RETEST, now)
        return []

    def _monitor_retest(self, context: TradingContext, now: datetime) -> List[OrderIntent]:
        state = context.state
        bar = self._next_bar(context, self.monitor_timeframe, now)
        if bar is None:
            return []

        state.retest_bars_seen += 1
        direction = state.breakout.direction

        if closed_through_range(bar, state.opening_range, direction):
            self._timeout(
                context,
                now,
                f"failed {direction.value} breakout: close {bar.close} beyond the opposite boundary",
            )
            return []

        retest = detect_retest(bar, state.opening_range, direction, self.config.retest.buffer)

        if retest is not None:
            state.retest_type = retest
            logger.info(
                f"[{context.symbol}] {retest.value} retest after {state.retest_bars_seen} bar(s): "
                f"H={bar.high} L={bar.low} C={bar.close}"
            )
            intent = self._build_intent(context, direction, now, reason=f"{retest.value} retest")
            return self._complete(context, intent, now)

        if state.retest_bars_seen >= self.config.retest.max_bars:
            self._timeout(context, now, f"no retest within {self.config.retest.max_bars} bars")

        return []

    def _breakout_wait_reason(self) -> str:
        return f"no breakout within {self.config.breakout.max_wait_minutes} minutes"

    def _complete(self, context: TradingContext, intent: OrderIntent, now: datetime) -> List[OrderIntent]:
        context.state.emitted_intents.append(intent)
        context.state.transition(TradingPhase.SETUP_COMPLETE, now)
        return [intent]

    def _next_bar(self, context: TradingContext, timeframe: TimeFrame, now: datetime) -> Optional[Bar]:
        """Fetch the latest bar, returning None if it was already processed.

        A bar stamped at or after the setup deadline times the symbol out.
        """
        bar = self.data_source.fetch_bar(context.symbol, timeframe, context.session_date)

        if bar.timestamp >= self._deadline(context):
            self._timeout(context, now, f"bar at {bar.timestamp} is past the setup deadline")
            return None

        if not context.state.is_new_bar(bar):
            logger.debug(f"[{context.symbol}] Duplicate {timeframe.value} bar at {bar.timestamp}")
            return None

        return bar

    def _build_intent(
        self,
        context: TradingContext,
        direction: Direction,
        now: datetime,
        reason: str,
    ) -> OrderIntent:
        opening_range = context.state.opening_range
        order = self.config.order

        if direction is Direction.BULLISH:
            side = OrderSide.BUY
            entry = opening_range.high + order.entry_offset
            stop = opening_range.low - order.stop_offset
        else:
            side = OrderSide.SELL
            entry = opening_range.low - order.entry_offset
            stop = opening_range.high + order.stop_offset
        take_profit = entry + direction.sign * order.take_profit_range

        return OrderIntent(
            symbol=context.symbol,
            side=side,
            quantity=order.quantity,
            limit_price=round(entry, PRICE_DECIMALS) if order.order_type is OrderType.LIMIT else None,
            stop_price=round(stop, PRICE_DECIMALS),
            take_profit_price=round(take_profit, PRICE_DECIMALS),
            reason=f"{self.strategy_type.value}: {direction.value} {reason}",
            created_at=now,
        )

    def _submit(self, intent: OrderIntent) -> SubmissionResult:
        try:
            handle = self.gateway.submit(intent)
        except Exception as e:
            logger.error(f"[{intent.symbol}] Order submission failed: {e}")
            return SubmissionResult(intent=intent, error=f"{type(e).__name__}: {e}")

        logger.info(f"[{intent.symbol}] Order #{handle.order_id} submitted: {intent.reason}")
        return SubmissionResult(intent=intent, handle=handle)

    def _timeout(self, context: TradingContext, now: datetime, reason: str) -> None:
        context.state.terminal_reason = reason
        context.state.transition(TradingPhase.TIMEOUT, now)
        logger.info(f"[{context.symbol}] TIMEOUT: {reason}")

    def _market_open(self, context: TradingContext) -> datetime:
        return market_time_to_utc(
            context.session_date, self.session.market_open, self.session.timezone
        )

    def _deadline(self, context: TradingContext) -> datetime:
        return market_time_to_utc(
            context.session_date, self.session.deadline, self.session.timezone
        )

    def _market_open_passed(self, context: TradingContext, now: datetime) -> bool:
        if not self.session.use_wall_clock:
            return True
        return now >= self._market_open(context)
