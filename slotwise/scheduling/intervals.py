"""Half-open time interval primitives.

Every time comparison in the engine goes through these helpers so there is
exactly one overlap semantics: ``[start, end)``. A booking that ends at
10:00 does not overlap one that starts at 10:00.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_
from sqlalchemy.sql.elements import ColumnElement


@dataclass(frozen=True)
class Interval:
    """A half-open ``[start, end)`` span of aware datetimes."""

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return duration_minutes(self.start, self.end)


def overlaps(a: Interval, b: Interval) -> bool:
    """Return True when the two half-open intervals share any instant."""
    return a.start < b.end and a.end > b.start


def contains(window: Interval, interval: Interval) -> bool:
    """Return True when ``interval`` lies entirely inside ``window``."""
    return window.start <= interval.start and interval.end <= window.end


def add_minutes(moment: datetime, minutes: int) -> datetime:
    return moment + timedelta(minutes=minutes)


def duration_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def day_bounds(day: date) -> Interval:
    """Return the UTC ``[midnight, next midnight)`` interval for ``day``."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return Interval(start, start + timedelta(days=1))


def clip(interval: Interval, bounds: Interval) -> Interval | None:
    """Intersect ``interval`` with ``bounds``; None when they do not overlap."""
    if not overlaps(interval, bounds):
        return None
    return Interval(max(interval.start, bounds.start), min(interval.end, bounds.end))


def overlap_clause(start_column, end_column, interval: Interval) -> ColumnElement[bool]:
    """SQL rendition of :func:`overlaps` for a start/end column pair."""
    return and_(start_column < interval.end, end_column > interval.start)
