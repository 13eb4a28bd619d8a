"""Pytest configuration and fixtures."""

import threading
from collections import defaultdict, deque
from datetime import date, datetime, time, timedelta, timezone

import pytest

from orb_engine.config import SessionConfig, StrategyConfig, StrategyType
from orb_engine.data import Bar, DataSource, NoDataError
from orb_engine.execution import PaperOrderGateway
from orb_engine.strategy import OrbStrategy, TradingContext
from orb_engine.utils.time_utils import market_time_to_utc
from orb_engine.utils.timeframe import TimeFrame

SESSION_DATE = date(2025, 7, 3)  # Thursday
NY = "America/New_York"


class FixedClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now = self.now + timedelta(minutes=minutes)

    def set_local(self, day: date, at: time) -> None:
        self.now = market_time_to_utc(day, at, NY)


class ScriptedSource(DataSource):
    """Returns queued bars (or raises queued errors) one fetch at a time."""

    def __init__(self) -> None:
        self._queues = defaultdict(deque)
        self._lock = threading.Lock()
        self.fetches = 0
        self.prepared = []

    @property
    def name(self) -> str:
        return "scripted"

    def queue(self, symbol: str, *items) -> None:
        for item in items:
            timeframe = item.timeframe if isinstance(item, Bar) else TimeFrame.ONE_MIN
            with self._lock:
                self._queues[(symbol, timeframe)].append(item)

    def queue_error(self, symbol: str, timeframe: TimeFrame, error: Exception) -> None:
        with self._lock:
            self._queues[(symbol, timeframe)].append(error)

    def pending(self, symbol: str, timeframe: TimeFrame) -> int:
        with self._lock:
            return len(self._queues[(symbol, timeframe)])

    def prepare_session(self, symbol, session_date) -> None:
        self.prepared.append((symbol, session_date))

    def fetch_bar(self, symbol, timeframe, session_date) -> Bar:
        with self._lock:
            self.fetches += 1
            queue = self._queues[(symbol, timeframe)]
            if not queue:
                raise NoDataError(f"nothing queued for {symbol} {timeframe.value}")
            item = queue.popleft()

        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def make_bar():
    """Build a bar stamped at a New York wall time on the session date."""

    def _make(
        at: str,
        high: float,
        low: float,
        close: float | None = None,
        open_price: float | None = None,
        symbol: str = "AAPL",
        timeframe: TimeFrame = TimeFrame.ONE_MIN,
        day: date = SESSION_DATE,
    ) -> Bar:
        hour, minute = (int(p) for p in at.split(":"))
        close = close if close is not None else (high + low) / 2
        return Bar(
            symbol=symbol,
            timeframe=timeframe,
            timestamp=market_time_to_utc(day, time(hour, minute), NY),
            open=open_price if open_price is not None else close,
            high=high,
            low=low,
            close=close,
            volume=1000.0,
            source="scripted",
        )

    return _make


@pytest.fixture
def or_bars(make_bar):
    """The three 5m opening range bars: H=103, L=97."""
    return [
        make_bar("09:30", 101, 99, timeframe=TimeFrame.FIVE_MIN),
        make_bar("09:35", 103, 98, timeframe=TimeFrame.FIVE_MIN),
        make_bar("09:40", 100, 97, timeframe=TimeFrame.FIVE_MIN),
    ]


@pytest.fixture
def clock():
    """Clock fixed at 09:45 New York time on the session date."""
    return FixedClock(market_time_to_utc(SESSION_DATE, time(9, 45), NY))


@pytest.fixture
def source():
    return ScriptedSource()


@pytest.fixture
def gateway():
    return PaperOrderGateway()


@pytest.fixture
def session_config():
    return SessionConfig(timezone=NY)


@pytest.fixture
def strategy_config():
    return StrategyConfig(data_source="csv")


@pytest.fixture
def strategy(source, gateway, strategy_config, session_config, clock):
    return OrbStrategy(
        strategy_type=StrategyType.ORB_RETEST,
        data_source=source,
        gateway=gateway,
        config=strategy_config,
        session=session_config,
        clock=clock,
    )


@pytest.fixture
def context():
    return TradingContext.new("AAPL", SESSION_DATE)
