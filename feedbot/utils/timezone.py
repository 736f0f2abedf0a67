"""Timezone conversion utilities"""
from datetime import datetime
from typing import Optional
import pytz


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to naive UTC.
    
    Naive input is assumed to already be in UTC.
    """
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def parse_api_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ESPN timestamp such as '2024-09-06T00:20Z' into naive UTC
    
    Returns None for missing or malformed values.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return to_utc(parsed)


def now_utc() -> datetime:
    """Get current UTC time as naive datetime"""
    return datetime.now(pytz.UTC).replace(tzinfo=None)
