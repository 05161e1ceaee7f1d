"""
Time helpers.

Timestamps are stored as naive UTC datetimes; client answer timestamps are
epoch milliseconds. Display formatting uses the configured timezone.
"""
from datetime import datetime
from typing import Optional
import time

import pytz

from ..core.config import settings


def utc_now() -> datetime:
    """Current time as a naive UTC datetime"""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def epoch_ms(dt: Optional[datetime] = None) -> int:
    if dt is None:
        return int(time.time() * 1000)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=pytz.UTC)
    return int(dt.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, pytz.UTC).replace(tzinfo=None)


def to_local(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert a naive UTC datetime to the display timezone"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.timezone(tz_name or settings.default_timezone))


def format_local_time(dt: Optional[datetime], format_str: Optional[str] = None) -> Optional[str]:
    if dt is None:
        return None
    return to_local(dt).strftime(format_str or settings.timezone_display_format)
