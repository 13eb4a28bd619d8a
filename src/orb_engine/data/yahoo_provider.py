"""Yahoo Finance data source."""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import pandas as pd
import yfinance as yf
from loguru import logger

from ..utils.timeframe import TimeFrame
from .base import Bar, DataSource, MarketClosedError, NoDataError, ProviderError, as_date_str

_INTERVAL_MAP = {
    TimeFrame.ONE_MIN: "1m",
    TimeFrame.FIVE_MIN: "5m",
    TimeFrame.FIFTEEN_MIN: "15m",
    TimeFrame.THIRTY_MIN: "30m",
    TimeFrame.ONE_HOUR: "1h",
    TimeFrame.ONE_DAY: "1d",
}


class YahooDataSource(DataSource):
    """Yahoo Finance source for free equity/ETF bars.

    Uses yfinance to pull the session's intraday history and returns the
    newest closed bar. Yahoo intraday history is limited to ~30 days for
    1-minute bars.
    """

    supported_timeframes = frozenset(_INTERVAL_MAP)

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        """Initialize Yahoo Finance source.

        Args:
            clock: Returns the current aware UTC time.
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        """Source name."""
        return "yahoo"

    def fetch_bar(
        self,
        symbol: str,
        timeframe: TimeFrame,
        session_date: date | str,
    ) -> Bar:
        """Fetch the latest closed bar from Yahoo Finance."""
        if timeframe not in _INTERVAL_MAP:
            raise ValueError(f"Yahoo Finance does not support timeframe {timeframe.value}")

        day = date.fromisoformat(as_date_str(session_date))
        if day.weekday() >= 5:
            raise MarketClosedError(f"Market closed on {day} (weekend)")

        try:
            df = yf.Ticker(symbol).history(
                start=day,
                end=day + timedelta(days=1),
                interval=_INTERVAL_MAP[timeframe],
                auto_adjust=False,
                actions=False,
            )
        except Exception as e:
            raise ProviderError(f"Yahoo Finance fetch failed for {symbol}: {e}") from e

        if df.empty:
            raise NoDataError(f"No data returned from Yahoo Finance for {symbol} on {day}")

        index = df.index
        if index.tz is None:
            # Yahoo sometimes returns naive datetimes in US Eastern
            index = index.tz_localize("US/Eastern")
        df.index = index.tz_convert("UTC")

        now = pd.Timestamp(self._clock())
        closed = df[df.index + pd.Timedelta(timeframe.duration) <= now]
        if closed.empty:
            raise NoDataError(f"No closed {timeframe.value} bar yet for {symbol} on {day}")

        ts = closed.index[-1]
        row = closed.iloc[-1]
        logger.debug(f"[{symbol}] Yahoo {timeframe.value} bar at {ts}")

        return Bar(
            symbol=symbol,
            timeframe=timeframe,
            timestamp=ts.to_pydatetime(),
            open=float(row["Open"]),
            high=float(row["High"]),
            low=float(row["Low"]),
            close=float(row["Close"]),
            volume=float(row.get("Volume", 0.0) or 0.0),
            source=self.name,
        )
