"""Utility functions and helpers."""

from .logging import setup_logger
from .ids import generate_run_id
from .time_utils import (
    ensure_utc,
    format_provider_time,
    market_time_to_utc,
    market_today,
    parse_provider_time,
    resolve_timezone,
)
from .timeframe import TimeFrame

__all__ = [
    "setup_logger",
    "generate_run_id",
    "ensure_utc",
    "format_provider_time",
    "market_time_to_utc",
    "market_today",
    "parse_provider_time",
    "resolve_timezone",
    "TimeFrame",
]
