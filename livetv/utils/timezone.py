"""
Date and Time utilities

XMLTV timestamp parsing and the display offset used when presenting program times.
Stored instants are always timezone-aware; the display offset never affects comparisons.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from livetv.errors import ConfigurationError

DEFAULT_DISPLAY_OFFSET = "+1:00"

_OFFSET_PATTERN = re.compile(r'^([+-])(\d{1,2}):(\d{2})$')
_XMLTV_TIME_PATTERN = re.compile(r'^(\d{14})\s*([+-])(\d{2})(\d{2})$')


def parse_display_offset(value: str) -> timezone:
    """
    Parse a display offset such as '+1:00' or '-05:30'.

    Raises:
        ConfigurationError: If the value does not match ±H:MM / ±HH:MM
    """
    match = _OFFSET_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ConfigurationError(f"Invalid timezone offset: {value!r}")

    sign, hours, minutes = match.groups()
    if int(minutes) >= 60:
        raise ConfigurationError(f"Invalid timezone offset: {value!r}")

    delta = timedelta(hours=int(hours), minutes=int(minutes))
    if delta >= timedelta(hours=24):
        raise ConfigurationError(f"Invalid timezone offset: {value!r}")
    return timezone(-delta if sign == '-' else delta)


def parse_xmltv_time(value: Optional[str]) -> Optional[datetime]:
    """
    Parse XMLTV time format.
    Format: 20240101180000 +0100

    Returns:
        Timezone-aware datetime, or None if the value is missing or malformed
    """
    if not value:
        return None

    match = _XMLTV_TIME_PATTERN.match(value.strip())
    if not match:
        return None

    stamp, sign, tz_hours, tz_minutes = match.groups()
    try:
        offset = timedelta(hours=int(tz_hours), minutes=int(tz_minutes))
        tz = timezone(-offset if sign == '-' else offset)
        return datetime.strptime(stamp, '%Y%m%d%H%M%S').replace(tzinfo=tz)
    except ValueError:
        return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
