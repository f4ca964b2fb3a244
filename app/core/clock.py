"""
Clock helpers. All bucket arithmetic happens in UTC on hour boundaries.

Rotation window
---------------
A user whose last rotation is at or after `truncate_to_hour(now) - 23h` has
already rotated "today" and is not due again in this bucket.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]

ROTATION_LOOKBACK = timedelta(hours=23)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def truncate_to_hour(dt: datetime) -> datetime:
    return as_utc(dt).replace(minute=0, second=0, microsecond=0)


def hour_bucket(now: datetime) -> int:
    return truncate_to_hour(now).hour


def rotation_cutoff(now: datetime) -> datetime:
    return truncate_to_hour(now) - ROTATION_LOOKBACK


def notification_cutoff(now: datetime, freeze_window: timedelta) -> datetime:
    return truncate_to_hour(now) - freeze_window
