"""Time and timezone utility functions.

Provider timestamps arrive as ``"<date> <time> <zone-name>"`` in the market's
local time. They are converted to UTC before being compared or stored.
"""

from datetime import date, datetime, time, timezone as dt_timezone
from typing import Optional

import pytz
from loguru import logger

# Provider zone names mapped to canonical tz database identifiers
KNOWN_TIMEZONES = {
    "US/Eastern": "America/New_York",
    "US/Central": "America/Chicago",
    "US/Mountain": "America/Denver",
    "US/Pacific": "America/Los_Angeles",
    "America/New_York": "America/New_York",
    "America/Chicago": "America/Chicago",
    "America/Denver": "America/Denver",
    "America/Los_Angeles": "America/Los_Angeles",
    "Europe/London": "Europe/London",
    "Asia/Tokyo": "Asia/Tokyo",
    "Australia/Sydney": "Australia/Sydney",
    "UTC": "UTC",
}

_DATE_FORMATS = ("%Y%m%d", "%Y-%m-%d")
_TIME_FORMATS = ("%H:%M:%S", "%H:%M")


def ensure_utc(dt: datetime) -> datetime:
    """Ensure datetime is in UTC timezone.

    Raises:
        ValueError: If datetime is naive (no timezone info).
    """
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(dt_timezone.utc)


def resolve_timezone(zone_name: Optional[str]) -> str:
    """Map a provider zone name to a canonical timezone identifier.

    Unknown or empty names fall back to UTC with a warning; this never raises.
    """
    if zone_name and zone_name in KNOWN_TIMEZONES:
        return KNOWN_TIMEZONES[zone_name]

    logger.warning(f"Unknown timezone from provider: {zone_name!r}, defaulting to UTC")
    return "UTC"


def parse_provider_time(value: str) -> datetime:
    """Parse a provider timestamp into an aware UTC datetime.

    Args:
        value: Timestamp like ``"20250703 09:30:00 US/Eastern"``. The date part
            may also be ``YYYY-MM-DD``. Without a zone part the time is read
            as UTC.

    Returns:
        Timezone-aware datetime in UTC.

    Raises:
        ValueError: If the date or time part is malformed.
    """
    parts = value.split() if value else []
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid provider timestamp: {value!r}")

    local = _parse_naive(parts[0], parts[1], raw=value)
    zone = resolve_timezone(parts[2]) if len(parts) == 3 else "UTC"

    return pytz.timezone(zone).localize(local).astimezone(pytz.utc)


def format_provider_time(dt: datetime, zone_name: str) -> str:
    """Render an aware datetime in provider format for the given zone.

    Inverse of :func:`parse_provider_time` for zones in the known table.
    """
    local = ensure_utc(dt).astimezone(pytz.timezone(resolve_timezone(zone_name)))
    return f"{local.strftime('%Y%m%d %H:%M:%S')} {zone_name}"


def market_time_to_utc(session_date: date, at: time, tz_name: str) -> datetime:
    """Convert a market-local wall time on a session date to UTC."""
    tz = pytz.timezone(tz_name)
    return tz.localize(datetime.combine(session_date, at)).astimezone(pytz.utc)


def market_today(now: datetime, tz_name: str) -> date:
    """Trading date in the market timezone for an aware ``now``."""
    return ensure_utc(now).astimezone(pytz.timezone(tz_name)).date()


def _parse_naive(date_part: str, time_part: str, raw: str) -> datetime:
    for date_fmt in _DATE_FORMATS:
        for time_fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(f"{date_part} {time_part}", f"{date_fmt} {time_fmt}")
            except ValueError:
                continue
    raise ValueError(f"Invalid provider timestamp: {raw!r}")
