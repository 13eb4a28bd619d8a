"""Test the per-symbol ORB state machine."""

from datetime import date, time

import pytest

from orb_engine.config import OrderType, SessionConfig, StrategyType
from orb_engine.data import ProviderError
from orb_engine.execution import OrderSide, PaperOrderGateway
from orb_engine.signals import Direction, RetestType
from orb_engine.strategy import OrbStrategy, TradingContext, TradingPhase
from orb_engine.utils.timeframe import TimeFrame

SESSION_DATE = date(2025, 7, 3)
NY = "America/New_York"


def collect_opening_range(strategy, context, source, or_bars):
    source.queue("AAPL", *or_bars)
    strategy.start_strategy(context)
    for _ in or_bars:
        strategy.on_tick(context)
    assert context.state.phase is TradingPhase.MONITORING_FOR_BREAKOUT


def test_start_after_open_begins_collecting(strategy, context, source):
    """Starting after the open skips the wait phase."""
    strategy.start_strategy(context)

    assert context.state.started
    assert context.state.phase is TradingPhase.COLLECTING_OPENING_RANGE
    assert context.state.market_open_time is not None
    assert source.prepared == [("AAPL", SESSION_DATE)]


def test_waits_for_market_open(strategy, context, clock):
    """Before the open the state waits without fetching bars."""
    clock.set_local(SESSION_DATE, time(9, 0))
    strategy.start_strategy(context)
    assert context.state.phase is TradingPhase.WAITING_FOR_MARKET_OPEN

    result = strategy.on_tick(context)
    assert result.phase_after is TradingPhase.WAITING_FOR_MARKET_OPEN
    assert strategy.data_source.fetches == 0

    clock.set_local(SESSION_DATE, time(9, 30))
    result = strategy.on_tick(context)
    assert result.transitioned
    assert context.state.phase is TradingPhase.COLLECTING_OPENING_RANGE


def test_start_is_idempotent_per_session(strategy, context, source, or_bars):
    """Restarting the same session keeps collected data."""
    source.queue("AAPL", or_bars[0])
    strategy.start_strategy(context)
    strategy.on_tick(context)

    strategy.start_strategy(context)

    assert len(context.state.or_bars) == 1
    assert len(source.prepared) == 1


def test_start_new_session_resets_state(strategy, context, source, or_bars):
    """A new session date discards the previous day's data."""
    collect_opening_range(strategy, context, source, or_bars)

    next_day = TradingContext(symbol="AAPL", session_date=date(2025, 7, 7), state=context.state)
    strategy.start_strategy(next_day)

    assert next_day.state.session_date == date(2025, 7, 7)
    assert next_day.state.opening_range is None
    assert next_day.state.or_bars == []


def test_opening_range_from_three_bars(strategy, context, source, or_bars):
    """OR is the max high / min low of the window."""
    source.queue("AAPL", *or_bars)
    strategy.start_strategy(context)

    phases = [strategy.on_tick(context).phase_after for _ in range(3)]

    assert phases == [
        TradingPhase.COLLECTING_OPENING_RANGE,
        TradingPhase.COLLECTING_OPENING_RANGE,
        TradingPhase.MONITORING_FOR_BREAKOUT,
    ]
    assert context.state.opening_range.high == 103
    assert context.state.opening_range.low == 97
    assert context.state.opening_range.bar_count == 3


def test_pre_open_and_duplicate_bars_ignored(strategy, context, source, or_bars, make_bar):
    """Bars before the open or already seen do not count toward the OR."""
    early = make_bar("09:25", 120, 80, timeframe=TimeFrame.FIVE_MIN)
    source.queue("AAPL", early, or_bars[0], or_bars[0], or_bars[1], or_bars[2])
    strategy.start_strategy(context)

    for _ in range(5):
        strategy.on_tick(context)

    assert context.state.opening_range.high == 103
    assert context.state.opening_range.low == 97
    assert len(context.state.or_bars) == 3


def test_bullish_breakout_then_retest_emits_one_buy(strategy, context, source, or_bars, make_bar, gateway):
    """Close above the high, then a pullback to the boundary, gives one buy."""
    collect_opening_range(strategy, context, source, or_bars)

    source.queue("AAPL", make_bar("09:45", 104.5, 103.5, close=104))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.MONITORING_FOR_RETEST
    assert result.intents == []
    assert context.state.breakout.direction is Direction.BULLISH
    assert context.state.breakout.price == 104

    source.queue("AAPL", make_bar("09:46", 103.8, 101.9, close=102))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.SETUP_COMPLETE
    assert len(result.intents) == 1
    intent = result.intents[0]
    assert intent.side is OrderSide.BUY
    assert intent.quantity == 100
    assert intent.is_market
    assert intent.stop_price == pytest.approx(96.99)
    assert intent.take_profit_price == pytest.approx(106.01)
    assert "deep retest" in intent.reason
    assert context.state.retest_type is RetestType.DEEP
    assert context.state.emitted_intents == [intent]

    assert len(result.submissions) == 1
    assert result.submissions[0].success
    assert result.submissions[0].handle.order_id == 100
    assert len(gateway.handles) == 1


def test_bearish_breakout_and_shallow_retest_emits_sell(
    strategy, context, source, or_bars, make_bar, strategy_config
):
    """Mirror case: close below the low, then a touch from below."""
    strategy.config = strategy_config.model_copy(
        update={"order": strategy_config.order.model_copy(update={"order_type": OrderType.LIMIT})}
    )
    collect_opening_range(strategy, context, source, or_bars)

    source.queue(
        "AAPL",
        make_bar("09:45", 97.2, 95.5, close=96),
        make_bar("09:46", 96.99, 96.0, close=96.5),
    )
    strategy.on_tick(context)
    result = strategy.on_tick(context)

    intent = result.intents[0]
    assert intent.side is OrderSide.SELL
    assert intent.limit_price == pytest.approx(96.99)
    assert intent.stop_price == pytest.approx(103.01)
    assert intent.take_profit_price == pytest.approx(93.99)
    assert context.state.retest_type is RetestType.SHALLOW


def test_no_retest_within_budget_times_out(strategy, context, source, or_bars, make_bar, strategy_config):
    """Running out of retest bars ends the session without an order."""
    strategy.config = strategy_config.model_copy(
        update={"retest": strategy_config.retest.model_copy(update={"max_bars": 3})}
    )
    collect_opening_range(strategy, context, source, or_bars)

    source.queue(
        "AAPL",
        make_bar("09:45", 104.5, 103.5, close=104),
        make_bar("09:46", 105.0, 104.0, close=104.8),
        make_bar("09:47", 105.5, 104.2, close=105.1),
        make_bar("09:48", 106.0, 105.0, close=105.9),
    )
    results = [strategy.on_tick(context) for _ in range(4)]

    assert results[-1].phase_after is TradingPhase.TIMEOUT
    assert all(r.intents == [] for r in results)
    assert context.state.emitted_intents == []
    assert context.state.retest_bars_seen == 3
    assert "no retest" in context.state.terminal_reason


def test_close_through_whole_range_is_failed_breakout(strategy, context, source, or_bars, make_bar, gateway):
    """A bar that falls back through the OR low ends the setup without a buy."""
    collect_opening_range(strategy, context, source, or_bars)

    source.queue(
        "AAPL",
        make_bar("09:45", 104.5, 103.5, close=104),
        make_bar("09:46", 103.5, 94, close=94.5),
    )
    strategy.on_tick(context)
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.TIMEOUT
    assert result.intents == []
    assert context.state.retest_type is None
    assert context.state.emitted_intents == []
    assert gateway.handles == {}
    assert "failed bullish breakout" in context.state.terminal_reason


def test_close_above_range_after_bearish_breakout_is_failed_breakout(strategy, context, source, or_bars, make_bar):
    """Mirror case: a rally closing above the OR high never emits a sell."""
    collect_opening_range(strategy, context, source, or_bars)

    source.queue(
        "AAPL",
        make_bar("09:45", 97.2, 95.5, close=96),
        make_bar("09:46", 106, 96.5, close=105.5),
    )
    strategy.on_tick(context)
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.TIMEOUT
    assert result.intents == []
    assert "failed bearish breakout" in context.state.terminal_reason


def test_no_breakout_within_wait_budget_times_out(strategy, context, source, or_bars, clock):
    """The breakout phase has its own wall-clock budget."""
    collect_opening_range(strategy, context, source, or_bars)
    fetches = source.fetches

    clock.set_local(SESSION_DATE, time(11, 44))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.MONITORING_FOR_BREAKOUT
    assert result.error is not None  # nothing queued

    clock.set_local(SESSION_DATE, time(11, 45))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.TIMEOUT
    assert source.fetches == fetches + 1
    assert context.state.terminal_reason == "no breakout within 120 minutes"


def test_breakout_wait_budget_uses_bar_time_in_replay(source, gateway, strategy_config, clock, context, or_bars, make_bar):
    """Without the wall clock, the budget runs from the end of the OR window."""
    session = SessionConfig(timezone=NY, use_wall_clock=False)
    config = strategy_config.model_copy(
        update={"breakout": strategy_config.breakout.model_copy(update={"max_wait_minutes": 30})}
    )
    strategy = OrbStrategy(StrategyType.ORB_RETEST, source, gateway, config, session, clock)
    clock.set_local(SESSION_DATE, time(18, 0))
    collect_opening_range(strategy, context, source, or_bars)

    source.queue(
        "AAPL",
        make_bar("10:14", 101, 99, close=100),
        make_bar("10:15", 104.5, 103.5, close=104),
    )
    strategy.on_tick(context)
    assert context.state.phase is TradingPhase.MONITORING_FOR_BREAKOUT

    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.TIMEOUT
    assert context.state.breakout is None
    assert "30 minutes" in context.state.terminal_reason


def test_outside_bar_breaks_out_by_close(strategy, context, source, or_bars, make_bar):
    """A wick through both boundaries takes the direction of its close."""
    collect_opening_range(strategy, context, source, or_bars)

    source.queue("AAPL", make_bar("09:45", 104, 96, close=96.5))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.MONITORING_FOR_RETEST
    assert context.state.breakout.direction is Direction.BEARISH


def test_inside_bar_resets_breakout_confirmation(strategy, context, source, or_bars, make_bar, strategy_config):
    """With two confirmation bars a close back inside starts the count over."""
    strategy.config = strategy_config.model_copy(
        update={"breakout": strategy_config.breakout.model_copy(update={"confirmation_bars": 2})}
    )
    collect_opening_range(strategy, context, source, or_bars)

    source.queue(
        "AAPL",
        make_bar("09:45", 104.5, 103.5, close=104),
        make_bar("09:46", 103.5, 101.5, close=102),
        make_bar("09:47", 104.5, 103.5, close=104),
    )
    for _ in range(3):
        strategy.on_tick(context)

    assert context.state.phase is TradingPhase.MONITORING_FOR_BREAKOUT
    assert len(context.state.pending_breakout_bars) == 1

    source.queue("AAPL", make_bar("09:48", 105, 104, close=104.6))
    strategy.on_tick(context)

    assert context.state.phase is TradingPhase.MONITORING_FOR_RETEST
    assert context.state.breakout.timestamp == context.state.last_bar_ts[TimeFrame.ONE_MIN]


def test_breakout_variant_enters_at_confirmation(source, gateway, strategy_config, session_config, clock, context, or_bars, make_bar):
    """The breakout variant skips the retest phase."""
    strategy = OrbStrategy(
        strategy_type=StrategyType.ORB_BREAKOUT,
        data_source=source,
        gateway=gateway,
        config=strategy_config,
        session=session_config,
        clock=clock,
    )
    collect_opening_range(strategy, context, source, or_bars)

    source.queue("AAPL", make_bar("09:45", 104.5, 103.5, close=104))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.SETUP_COMPLETE
    assert result.intents[0].side is OrderSide.BUY
    assert result.intents[0].reason.startswith("orb_breakout")


def test_terminal_phase_is_noop(strategy, context, source, or_bars, make_bar):
    """Ticks after completion change nothing and fetch nothing."""
    collect_opening_range(strategy, context, source, or_bars)
    source.queue(
        "AAPL",
        make_bar("09:45", 104.5, 103.5, close=104),
        make_bar("09:46", 103.8, 101.9, close=102),
    )
    strategy.on_tick(context)
    strategy.on_tick(context)
    opening_range = context.state.opening_range

    source.queue("AAPL", make_bar("09:47", 99, 90, close=91))
    fetches = source.fetches
    result = strategy.on_tick(context)

    assert result.intents == []
    assert not result.transitioned
    assert context.state.opening_range is opening_range
    assert source.fetches == fetches
    assert source.pending("AAPL", TimeFrame.ONE_MIN) == 1


def test_fetch_failure_is_missed_tick(strategy, context, source, or_bars):
    """A provider error leaves the phase unchanged and is reported."""
    strategy.start_strategy(context)
    source.queue_error("AAPL", TimeFrame.FIVE_MIN, ProviderError("HTTP 503"))

    result = strategy.on_tick(context)

    assert result.error == "ProviderError: HTTP 503"
    assert result.phase_after is TradingPhase.COLLECTING_OPENING_RANGE
    assert context.state.or_bars == []


def test_order_failure_still_completes(source, strategy_config, session_config, clock, context, or_bars, make_bar):
    """A rejected order is reported per intent; the setup is still complete."""
    strategy = OrbStrategy(
        strategy_type=StrategyType.ORB_RETEST,
        data_source=source,
        gateway=PaperOrderGateway(reject_symbols=["AAPL"]),
        config=strategy_config,
        session=session_config,
        clock=clock,
    )
    collect_opening_range(strategy, context, source, or_bars)
    source.queue(
        "AAPL",
        make_bar("09:45", 104.5, 103.5, close=104),
        make_bar("09:46", 103.8, 101.9, close=102),
    )
    strategy.on_tick(context)
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.SETUP_COMPLETE
    assert len(result.intents) == 1
    assert not result.submissions[0].success
    assert "OrderSubmissionError" in result.submissions[0].error


def test_wall_clock_deadline_times_out(source, gateway, strategy_config, clock, context):
    """Reaching the setup deadline on the wall clock ends the session."""
    session = SessionConfig(timezone=NY, setup_deadline=time(10, 0))
    strategy = OrbStrategy(StrategyType.ORB_RETEST, source, gateway, strategy_config, session, clock)
    strategy.start_strategy(context)

    clock.set_local(SESSION_DATE, time(10, 0))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.TIMEOUT
    assert source.fetches == 0
    assert "deadline" in context.state.terminal_reason


def test_bar_past_deadline_times_out_in_replay(source, gateway, strategy_config, clock, context, or_bars, make_bar):
    """Without the wall clock, bar timestamps drive the deadline."""
    session = SessionConfig(timezone=NY, setup_deadline=time(10, 0), use_wall_clock=False)
    strategy = OrbStrategy(StrategyType.ORB_RETEST, source, gateway, strategy_config, session, clock)
    clock.set_local(SESSION_DATE, time(18, 0))
    collect_opening_range(strategy, context, source, or_bars)

    source.queue("AAPL", make_bar("10:00", 104.5, 103.5, close=104))
    result = strategy.on_tick(context)

    assert result.phase_after is TradingPhase.TIMEOUT
    assert context.state.breakout is None


def test_force_timeout(strategy, context):
    """Forcing a timeout only affects non-terminal states."""
    strategy.start_strategy(context)

    assert strategy.force_timeout(context, "session closed") is True
    assert context.state.phase is TradingPhase.TIMEOUT
    assert context.state.terminal_reason == "session closed"
    assert strategy.force_timeout(context, "again") is False
    assert not strategy.should_monitor(context)


def test_tick_before_start_reports_error(strategy, context, source):
    """Ticking an unstarted context does nothing."""
    result = strategy.on_tick(context)

    assert result.error is not None
    assert source.fetches == 0
