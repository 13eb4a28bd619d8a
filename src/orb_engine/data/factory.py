"""Data source construction by kind."""

from datetime import datetime
from typing import Callable, Optional

from ..config import DataSourcesConfig, StrategyDataSource
from .base import DataSource
from .csv_replay import CsvReplaySource
from .twelve_data import TwelveDataSource
from .yahoo_provider import YahooDataSource


def build_data_source(
    kind: StrategyDataSource,
    config: Optional[DataSourcesConfig] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> DataSource:
    """Build the data source for a kind.

    Raises:
        ValueError: If the kind is unsupported.
    """
    config = config or DataSourcesConfig()

    if kind == StrategyDataSource.TWELVE:
        return TwelveDataSource(config.twelve, clock=clock)
    if kind == StrategyDataSource.CSV:
        return CsvReplaySource(config.csv)
    if kind == StrategyDataSource.YAHOO:
        return YahooDataSource(clock=clock)

    raise ValueError(f"Unsupported data source: {kind}")
