"""Bar timeframe definitions shared by data sources and configuration."""

from datetime import timedelta
from enum import Enum


class TimeFrame(str, Enum):
    """Supported bar timeframes.

    Values are the canonical short codes used in configuration files.
    """

    ONE_MIN = "1m"
    THREE_MIN = "3m"
    FIVE_MIN = "5m"
    FIFTEEN_MIN = "15m"
    THIRTY_MIN = "30m"
    ONE_HOUR = "1h"
    ONE_DAY = "1d"

    @property
    def minutes(self) -> int:
        """Bar duration in minutes."""
        return _MINUTES[self]

    @property
    def duration(self) -> timedelta:
        """Bar duration as a timedelta."""
        return timedelta(minutes=self.minutes)

    @property
    def ib_format(self) -> str:
        """Bar size string used by brokerage historical-data requests."""
        return _IB_FORMAT[self]

    @classmethod
    def parse(cls, value: "str | TimeFrame") -> "TimeFrame":
        """Parse a timeframe code.

        Accepts canonical codes ('5m'), member names ('FIVE_MIN') and
        brokerage bar sizes ('5 mins').

        Raises:
            ValueError: If the value is not a known timeframe.
        """
        if isinstance(value, cls):
            return value

        text = str(value).strip()
        for tf in cls:
            if text.lower() == tf.value or text.upper() == tf.name or text == tf.ib_format:
                return tf

        valid = [tf.value for tf in cls]
        raise ValueError(f"Unknown timeframe: '{value}'. Valid options: {valid}")


_MINUTES = {
    TimeFrame.ONE_MIN: 1,
    TimeFrame.THREE_MIN: 3,
    TimeFrame.FIVE_MIN: 5,
    TimeFrame.FIFTEEN_MIN: 15,
    TimeFrame.THIRTY_MIN: 30,
    TimeFrame.ONE_HOUR: 60,
    TimeFrame.ONE_DAY: 1440,
}

_IB_FORMAT = {
    TimeFrame.ONE_MIN: "1 min",
    TimeFrame.THREE_MIN: "3 mins",
    TimeFrame.FIVE_MIN: "5 mins",
    TimeFrame.FIFTEEN_MIN: "15 mins",
    TimeFrame.THIRTY_MIN: "30 mins",
    TimeFrame.ONE_HOUR: "1 hour",
    TimeFrame.ONE_DAY: "1 day",
}
