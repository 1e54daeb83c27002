"""
Clock and duration helpers.
"""

from datetime import datetime, timedelta, timezone


def utc_now(offset: timedelta = timedelta(0)) -> datetime:
    """
    Current UTC time as a naive datetime, shifted by ``offset``.

    Timestamps are stored naive in UTC so that every supported dialect
    compares them the same way.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None) + offset


def to_seconds(value: timedelta | float | int) -> float:
    """Normalize a duration given as timedelta or seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)
