"""
Time utilities for business-local (KST) and epoch handling.
"""

import time
from datetime import datetime, time as dt_time, timezone
from zoneinfo import ZoneInfo
from typing import Optional

from autoreply.config.settings import get_settings

settings = get_settings()

# Business time zone for rule active hours
BUSINESS_TZ = ZoneInfo(settings.timezone)


def get_current_time_local() -> datetime:
    """Get the current time in the business time zone."""
    return datetime.now(BUSINESS_TZ)


def get_current_time_of_day() -> dt_time:
    """Get the current wall-clock time of day in the business time zone."""
    return get_current_time_local().time().replace(tzinfo=None)


def epoch_millis(dt: Optional[datetime] = None) -> int:
    """
    Convert a datetime to epoch milliseconds.

    Args:
        dt: Datetime to convert (defaults to now; naive values are treated as UTC)

    Returns:
        Milliseconds since the Unix epoch
    """
    if dt is None:
        return int(time.time() * 1000)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()
