"""Twelve Data REST data source."""

from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional

import requests
from loguru import logger

from ..config import TwelveDataConfig
from ..utils.time_utils import parse_provider_time
from ..utils.timeframe import TimeFrame
from .base import (
    Bar,
    DataSource,
    MarketClosedError,
    NoDataError,
    ProviderError,
    as_date_str,
)

_INTERVAL_MAP = {
    TimeFrame.ONE_MIN: "1min",
    TimeFrame.FIVE_MIN: "5min",
    TimeFrame.FIFTEEN_MIN: "15min",
    TimeFrame.THIRTY_MIN: "30min",
    TimeFrame.ONE_HOUR: "1h",
    TimeFrame.ONE_DAY: "1day",
}


class TwelveDataSource(DataSource):
    """Twelve Data time-series source.

    Requests the most recent bars for the session date and returns the newest
    one whose interval has already closed. Bar timestamps come back in the
    exchange timezone and are normalized to UTC.
    """

    supported_timeframes = frozenset(_INTERVAL_MAP)

    def __init__(
        self,
        config: Optional[TwelveDataConfig] = None,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize Twelve Data source.

        Args:
            config: Client settings.
            session: HTTP session (injected in tests).
            clock: Returns the current aware UTC time.
        """
        self.config = config or TwelveDataConfig()
        self._session = session or requests.Session()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        """Source name."""
        return "twelve"

    def fetch_bar(
        self,
        symbol: str,
        timeframe: TimeFrame,
        session_date: date | str,
    ) -> Bar:
        """Fetch the latest closed bar from Twelve Data."""
        if timeframe not in _INTERVAL_MAP:
            raise ValueError(f"Twelve Data does not support timeframe {timeframe.value}")

        day = as_date_str(session_date)
        if date.fromisoformat(day).weekday() >= 5:
            raise MarketClosedError(f"Market closed on {day} (weekend)")

        payload = self._get_time_series(symbol, timeframe, day)

        meta = payload.get("meta") or {}
        values = payload.get("values") or []
        if not values:
            raise NoDataError(f"No {timeframe.value} bars for {symbol} on {day}")

        zone = meta.get("exchange_timezone", "")
        now = self._clock()

        for row in values:  # newest first
            bar = self._to_bar(symbol, timeframe, row, zone)
            if bar.end_time <= now:
                if str(row.get("datetime", ""))[:10] != day:
                    raise MarketClosedError(
                        f"No session bars for {symbol} on {day}; latest is {row.get('datetime')}"
                    )
                logger.debug(f"[{symbol}] Twelve Data {timeframe.value} bar at {bar.timestamp}")
                return bar

        raise NoDataError(f"No closed {timeframe.value} bar yet for {symbol} on {day}")

    def _get_time_series(self, symbol: str, timeframe: TimeFrame, day: str) -> Dict[str, Any]:
        params = {
            "symbol": symbol.upper(),
            "interval": _INTERVAL_MAP[timeframe],
            "date": day,
            "outputsize": 2,
            "apikey": self.config.resolved_api_key() or "",
        }

        logger.info(f"Fetching candle for {symbol} with timeframe {timeframe.value}")

        try:
            response = self._session.get(
                f"{self.config.base_url}/time_series",
                params=params,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise ProviderError(f"Twelve Data request failed for {symbol}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Twelve Data returned invalid JSON for {symbol}: {e}") from e

        if payload.get("status") == "error":
            message = payload.get("message", "unknown error")
            if "no data" in message.lower():
                raise NoDataError(f"Twelve Data has no data for {symbol}: {message}")
            raise ProviderError(f"Twelve Data error {payload.get('code')} for {symbol}: {message}")

        return payload

    def _to_bar(
        self,
        symbol: str,
        timeframe: TimeFrame,
        row: Dict[str, Any],
        zone: str,
    ) -> Bar:
        raw_ts = str(row.get("datetime", ""))
        if " " not in raw_ts:
            raw_ts = f"{raw_ts} 00:00:00"

        try:
            return Bar(
                symbol=symbol,
                timeframe=timeframe,
                timestamp=parse_provider_time(f"{raw_ts} {zone}".strip()),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=float(row.get("volume") or 0.0),
                source=self.name,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed Twelve Data bar for {symbol}: {row}") from e
