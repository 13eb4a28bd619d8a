"""Pydantic configuration schemas for the ORB engine.

All engine configuration is defined here and validated on load.
YAML configs are deserialized into these models.
"""

import os
from datetime import time
from enum import Enum
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from ruamel.yaml import YAML

from ..utils.time_utils import KNOWN_TIMEZONES
from ..utils.timeframe import TimeFrame


class StrategyType(str, Enum):
    """Strategy variant identifiers."""

    ORB_RETEST = "orb_retest"  # Breakout, then wait for a retest before entry
    ORB_BREAKOUT = "orb_breakout"  # Enter on confirmed breakout


class StrategyDataSource(str, Enum):
    """Bar data source bound to a strategy instance."""

    TWELVE = "twelve"
    CSV = "csv"
    YAHOO = "yahoo"


class OrderType(str, Enum):
    """Entry order type."""

    MARKET = "market"
    LIMIT = "limit"


class SessionConfig(BaseModel):
    """Trading session timing (exchange local)."""

    timezone: str = Field("America/New_York", description="Exchange timezone")
    market_open: time = Field(time(9, 30), description="Session open")
    market_close: time = Field(time(16, 0), description="Session close")
    setup_deadline: Optional[time] = Field(
        None, description="No setup may complete after this time (defaults to close)"
    )
    use_wall_clock: bool = Field(
        True, description="Gate market open and deadline on the wall clock (off for replays)"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the session timezone is one the engine knows how to map."""
        if v not in KNOWN_TIMEZONES:
            raise ValueError(f"Unsupported session timezone: {v}")
        return KNOWN_TIMEZONES[v]

    @model_validator(mode="after")
    def validate_session(self) -> "SessionConfig":
        """Ensure session times are ordered."""
        if self.market_open >= self.market_close:
            raise ValueError("market_open must be < market_close")
        if self.setup_deadline is not None and not (
            self.market_open < self.setup_deadline <= self.market_close
        ):
            raise ValueError("setup_deadline must fall inside the session")
        return self

    @property
    def deadline(self) -> time:
        """Effective setup deadline."""
        return self.setup_deadline or self.market_close


class OpeningRangeConfig(BaseModel):
    """Opening range window."""

    timeframe: TimeFrame = Field(TimeFrame.FIVE_MIN, description="OR bar timeframe")
    bars: int = Field(3, ge=1, le=60, description="Bars in the OR window")

    @field_validator("timeframe", mode="before")
    @classmethod
    def parse_timeframe(cls, v):
        """Accept any known timeframe spelling."""
        return TimeFrame.parse(v)


class BreakoutConfig(BaseModel):
    """Breakout detection."""

    timeframe: TimeFrame = Field(TimeFrame.ONE_MIN, description="Monitoring bar timeframe")
    confirmation_bars: int = Field(
        1, ge=1, le=10, description="Consecutive closes outside the range required"
    )
    buffer: float = Field(0.0, ge=0.0, description="Distance beyond the range boundary")
    max_wait_minutes: int = Field(
        120, ge=1, le=390, description="Minutes after the OR window to wait for a breakout"
    )

    @field_validator("timeframe", mode="before")
    @classmethod
    def parse_timeframe(cls, v):
        """Accept any known timeframe spelling."""
        return TimeFrame.parse(v)


class RetestConfig(BaseModel):
    """Retest confirmation."""

    buffer: float = Field(0.02, ge=0.0, description="Tolerance around the broken boundary")
    max_bars: int = Field(15, ge=1, le=390, description="Bars allowed for the retest")


class OrderConfig(BaseModel):
    """Entry order sizing and bracket levels."""

    quantity: int = Field(100, ge=1, description="Shares per entry")
    order_type: OrderType = Field(OrderType.MARKET, description="Entry order type")
    entry_offset: float = Field(0.01, ge=0.0, description="Entry offset beyond the boundary")
    stop_offset: float = Field(0.01, ge=0.0, description="Stop offset beyond the opposite boundary")
    take_profit_range: float = Field(3.0, gt=0.0, description="Take-profit distance from entry")


class StrategyConfig(BaseModel):
    """One strategy variant bound to one data source."""

    data_source: StrategyDataSource = Field(..., description="Bar data source")
    opening_range: OpeningRangeConfig = Field(default_factory=OpeningRangeConfig)
    breakout: BreakoutConfig = Field(default_factory=BreakoutConfig)
    retest: RetestConfig = Field(default_factory=RetestConfig)
    order: OrderConfig = Field(default_factory=OrderConfig)


class TwelveDataConfig(BaseModel):
    """Twelve Data REST client settings."""

    api_key: Optional[str] = Field(None, description="API key (falls back to TWELVE_DATA_API_KEY)")
    base_url: str = Field("https://api.twelvedata.com", description="API base URL")
    timeout: float = Field(10.0, gt=0.0, description="HTTP timeout (seconds)")

    def resolved_api_key(self) -> Optional[str]:
        """API key from config or environment."""
        return self.api_key or os.environ.get("TWELVE_DATA_API_KEY")


class CsvSourceConfig(BaseModel):
    """Exported CSV bars replayed as a data source."""

    root_dir: Path = Field(Path("exports"), description="Root of exported bar files")


class DataSourcesConfig(BaseModel):
    """Settings for every data source kind."""

    twelve: TwelveDataConfig = Field(default_factory=TwelveDataConfig)
    csv: CsvSourceConfig = Field(default_factory=CsvSourceConfig)


class ScheduleConfig(BaseModel):
    """Trigger timing for the scheduler loop."""

    start_time: time = Field(time(9, 30), description="Daily session start trigger (exchange local)")
    tick_interval_seconds: float = Field(60.0, gt=0.0, description="Advance-all interval")
    max_workers: int = Field(4, ge=1, le=64, description="Upper bound on symbol lanes run at once")
    weekdays_only: bool = Field(True, description="Skip Saturday and Sunday")


class EngineConfig(BaseModel):
    """Root engine configuration."""

    name: str = Field("ORB_Retest", description="Engine name")
    version: str = Field("1.0", description="Configuration version")

    symbols: List[str] = Field(..., description="Symbol universe")
    strategy_type: StrategyType = Field(StrategyType.ORB_RETEST, description="Active strategy")
    strategies: Dict[StrategyType, StrategyConfig] = Field(
        ..., description="Strategy variants by identifier"
    )

    session: SessionConfig = Field(default_factory=SessionConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    data_sources: DataSourcesConfig = Field(default_factory=DataSourcesConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Logging level"
    )
    log_to_file: bool = Field(True, description="Write logs to file")

    @field_validator("symbols")
    @classmethod
    def validate_symbols(cls, v: List[str]) -> List[str]:
        """Uppercase, de-duplicate and require at least one symbol."""
        symbols = list(dict.fromkeys(s.strip().upper() for s in v if s.strip()))
        if not symbols:
            raise ValueError("At least one symbol must be configured")
        return symbols

    @model_validator(mode="after")
    def validate_engine(self) -> "EngineConfig":
        """Cross-field validation."""
        if self.strategy_type not in self.strategies:
            raise ValueError(
                f"strategy_type '{self.strategy_type.value}' has no entry in strategies"
            )
        return self

    @property
    def active_strategy(self) -> StrategyConfig:
        """Configuration of the active strategy variant."""
        return self.strategies[self.strategy_type]


def load_config(path: Path | str) -> EngineConfig:
    """Load and validate engine configuration from YAML.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config validation fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    yaml = YAML(typ="safe")
    with path.open("r") as f:
        raw_config = yaml.load(f)

    try:
        config = EngineConfig(**raw_config)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}") from e

    return config
