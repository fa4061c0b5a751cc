# src/datajobs/util/time_util.py
from datetime import datetime, timezone
from typing import Optional

def get_current_utc_time() -> datetime:
    """Returns the current time as a timezone-aware datetime object in UTC."""
    return datetime.now(timezone.utc)

def get_current_local_time() -> datetime:
    """
    Returns the current wall-clock time as a naive datetime in the process's
    local timezone. Trigger times are computed and compared in this form.
    """
    return datetime.now()

def to_local_naive(dt: datetime) -> datetime:
    """
    Converts a datetime to a naive local wall-clock datetime.

    Aware datetimes are converted to the system's local timezone first; naive
    datetimes are assumed to already be local.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)

def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensures a datetime object is timezone-aware.
    If naive, it assumes UTC. This is useful for values coming from a DB
    that are known to be UTC but might lack tzinfo.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt

def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds elapsed between two datetimes, rounded."""
    return round((ensure_aware(end) - ensure_aware(start)).total_seconds())
