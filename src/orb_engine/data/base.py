"""Base data source interface and bar schema."""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.time_utils import ensure_utc
from ..utils.timeframe import TimeFrame


class DataSourceError(RuntimeError):
    """Base class for bar fetch failures."""


class NoDataError(DataSourceError):
    """The provider has no bar for the request."""


class ProviderError(DataSourceError):
    """The provider failed or returned an unusable response."""


class MarketClosedError(DataSourceError):
    """The market is closed for the requested date."""


class Bar(BaseModel):
    """Standardized OHLCV bar (timestamp is the bar open, UTC)."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Instrument symbol")
    timeframe: TimeFrame = Field(..., description="Bar timeframe")
    timestamp: datetime = Field(..., description="Bar open time (UTC)")
    open: float = Field(..., description="Opening price")
    high: float = Field(..., description="High price")
    low: float = Field(..., description="Low price")
    close: float = Field(..., description="Closing price")
    volume: float = Field(0.0, ge=0.0, description="Volume")
    trade_count: Optional[int] = Field(None, ge=0, description="Number of trades")
    vwap: Optional[float] = Field(None, description="Volume-weighted average price")
    source: str = Field("unknown", description="Data source")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Require an aware timestamp and store it in UTC."""
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_prices(self) -> "Bar":
        """Ensure high/low bound the bar."""
        if self.high < self.low:
            raise ValueError(f"Bar high {self.high} < low {self.low}")
        return self

    @property
    def end_time(self) -> datetime:
        """Bar close time (UTC)."""
        return self.timestamp + self.timeframe.duration


class DataSource(ABC):
    """Abstract base class for bar data sources.

    Implementations normalize a provider's candle response into a :class:`Bar`.
    They must be safe to call from several worker threads at once.
    """

    #: Timeframes this source can serve
    supported_timeframes: FrozenSet[TimeFrame] = frozenset(TimeFrame)

    @abstractmethod
    def fetch_bar(
        self,
        symbol: str,
        timeframe: TimeFrame,
        session_date: date | str,
    ) -> Bar:
        """Fetch the latest closed bar for a symbol.

        Args:
            symbol: Trading symbol.
            timeframe: Bar timeframe.
            session_date: Trading date (``date`` or ``YYYY-MM-DD``).

        Returns:
            Latest closed bar.

        Raises:
            NoDataError: No bar available.
            ProviderError: The provider failed.
            MarketClosedError: The market is closed for the date.
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name identifier."""
        pass

    def supports(self, timeframe: TimeFrame) -> bool:
        """Check if this source can serve a timeframe."""
        return timeframe in self.supported_timeframes

    def prepare_session(self, symbol: str, session_date: date | str) -> None:
        """Hook called when a symbol's session starts. No-op by default."""


def as_date_str(session_date: date | str) -> str:
    """Render a session date as ``YYYY-MM-DD``."""
    if isinstance(session_date, date):
        return session_date.isoformat()
    return str(session_date)
