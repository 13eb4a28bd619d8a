"""Bar data sources.

Every source normalizes its provider's candles into a :class:`Bar` and exposes
a single ``fetch_bar`` operation.
"""

from .base import (
    Bar,
    DataSource,
    DataSourceError,
    MarketClosedError,
    NoDataError,
    ProviderError,
)
from .csv_replay import CsvReplaySource
from .twelve_data import TwelveDataSource
from .yahoo_provider import YahooDataSource
from .factory import build_data_source

__all__ = [
    "Bar",
    "DataSource",
    "DataSourceError",
    "MarketClosedError",
    "NoDataError",
    "ProviderError",
    "CsvReplaySource",
    "TwelveDataSource",
    "YahooDataSource",
    "build_data_source",
]
