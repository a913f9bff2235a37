from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.DEFAULT_TIMEZONE)


def now_local(tz_name: Optional[str] = None) -> datetime:
    return datetime.now(get_zoneinfo(tz_name))


def to_local_naive(dt: datetime | None, tz_name: Optional[str] = None) -> datetime | None:
    """
    Convert any datetime to local civil time (settings.DEFAULT_TIMEZONE) and strip tzinfo.
    - Aware datetimes are converted to the local zone and tzinfo is stripped
    - Naive datetimes are assumed local and returned as-is
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(get_zoneinfo(tz_name)).replace(tzinfo=None)


def civil_now(tz_name: Optional[str] = None) -> datetime:
    """Current local civil time, naive, truncated to whole seconds."""
    return to_local_naive(now_local(tz_name)).replace(microsecond=0)


def format_civil(dt: datetime) -> str:
    """Client-facing date format, e.g. 01/06/2024 10:00."""
    return dt.strftime("%d/%m/%Y %H:%M")
