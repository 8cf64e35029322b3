"""
Timezone utilities for the reservation engine.

Bookings are stored as UTC instants; opening hours, slot grids and the
"requested day" are expressed in the branch's local business calendar.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

import pytz

from .config import settings


def get_business_timezone(tz_name: Optional[str] = None) -> pytz.BaseTzInfo:
    """
    Resolve a branch timezone, falling back to the configured business timezone.

    Raises:
        pytz.UnknownTimeZoneError: If the name is not a valid IANA zone
    """
    return pytz.timezone(tz_name or settings.business_timezone)


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are interpreted as wall-clock time in the business timezone.
    """
    if dt.tzinfo is None:
        dt = get_business_timezone(tz_name).localize(dt)
    return dt.astimezone(timezone.utc)


def local_datetime(day: date, at: time, tz_name: Optional[str] = None) -> datetime:
    """Wall-clock time on ``day`` in the business timezone, as aware UTC."""
    tz = get_business_timezone(tz_name)
    return tz.localize(datetime.combine(day, at)).astimezone(timezone.utc)


def local_hour(day: date, hour: int, tz_name: Optional[str] = None) -> datetime:
    """``day @ hour:00`` local; hour 24 means midnight at the end of ``day``."""
    if hour >= 24:
        return local_datetime(day + timedelta(days=1), time(0, 0), tz_name)
    return local_datetime(day, time(hour, 0), tz_name)


def local_day_bounds(day: date, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """Return ``[dayStart, dayEnd)`` of a local calendar day as UTC instants."""
    return local_hour(day, 0, tz_name), local_hour(day, 24, tz_name)


def to_local(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert an instant to the business timezone."""
    return ensure_utc(dt, tz_name).astimezone(get_business_timezone(tz_name))


def local_today(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """Today's date in the business timezone."""
    return to_local(now or utc_now(), tz_name).date()
