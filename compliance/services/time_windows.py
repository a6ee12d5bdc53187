"""
Time-window helpers shared by the compliance services.

All functions are pure: the caller always passes the reference instant
(`now`) explicitly, nothing here reads the system clock. Datetimes are
compared as instants and are never localized behind the caller's back;
mixing naive and timezone-aware values is rejected.
"""

import math
from datetime import date, datetime, time, timedelta
from typing import Tuple, Union

DateLike = Union[date, datetime]

SECONDS_PER_DAY = 24 * 60 * 60


def _check_comparable(a: datetime, b: datetime) -> None:
    if (a.tzinfo is None) != (b.tzinfo is None):
        raise ValueError(
            f"Cannot compare naive and timezone-aware datetimes ({a!r}, {b!r})"
        )


def to_instant(value: DateLike, reference: datetime) -> datetime:
    """
    Normalize a date or datetime to an instant comparable with `reference`.

    A plain date becomes midnight in the reference instant's timezone.
    Datetimes are returned unchanged.
    """
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=reference.tzinfo)


def days_between(a: datetime, b: datetime) -> int:
    """Whole days from `a` to `b`, rounded up (used for "due in N days")."""
    _check_comparable(a, b)
    return math.ceil((b - a).total_seconds() / SECONDS_PER_DAY)


def is_within_next_days(value: datetime, days: int, now: datetime) -> bool:
    """True iff now < value <= now + days."""
    _check_comparable(value, now)
    return now < value <= now + timedelta(days=days)


def is_past(value: datetime, now: datetime) -> bool:
    _check_comparable(value, now)
    return value < now


def ranges_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime
) -> bool:
    """Standard half-open interval overlap; touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def quarter_of(value: DateLike) -> Tuple[int, int]:
    """Return (year, quarter) for a date."""
    return value.year, (value.month - 1) // 3 + 1
