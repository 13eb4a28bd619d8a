"""Configuration schemas and validation."""

from .schema import (
    EngineConfig,
    StrategyConfig,
    SessionConfig,
    OpeningRangeConfig,
    BreakoutConfig,
    RetestConfig,
    OrderConfig,
    OrderType,
    TwelveDataConfig,
    CsvSourceConfig,
    DataSourcesConfig,
    ScheduleConfig,
    StrategyType,
    StrategyDataSource,
    load_config,
)

__all__ = [
    "EngineConfig",
    "StrategyConfig",
    "SessionConfig",
    "OpeningRangeConfig",
    "BreakoutConfig",
    "RetestConfig",
    "OrderConfig",
    "OrderType",
    "TwelveDataConfig",
    "CsvSourceConfig",
    "DataSourcesConfig",
    "ScheduleConfig",
    "StrategyType",
    "StrategyDataSource",
    "load_config",
]
