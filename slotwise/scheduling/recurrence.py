"""Lazy recurrence expansion for availability window templates.

Occurrences are never materialised. Whether a template occurs on a given
day is answered in closed form from the template and the day alone, so a
query only ever looks at the handful of days around its own interval,
however long the series runs.

Arithmetic is done in UTC. Weekdays use Python numbering (0 = Monday).
A monthly or yearly day that a month lacks (the 31st, 29 February) falls
back to that month's last day.
"""

import math
from datetime import date, datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

from slotwise.models.availability import AvailabilityWindow, RecurrenceType
from slotwise.scheduling.intervals import Interval, contains, overlaps

_ONE_DAY = timedelta(days=1)


def _template(window: AvailabilityWindow) -> Interval:
    """The first occurrence, widened to whole days for all-day windows."""
    if not window.is_all_day:
        return Interval(window.start_at, window.end_at)
    start = datetime.combine(window.start_at.date(), datetime.min.time(), tzinfo=timezone.utc)
    days = max(1, math.ceil((window.end_at - start) / _ONE_DAY))
    return Interval(start, start + timedelta(days=days))


def _monday(day: date) -> date:
    return day - timedelta(days=day.weekday())


def occurrence_index(window: AvailabilityWindow, day: date) -> int | None:
    """Return the 0-based ordinal of the occurrence starting on ``day``.

    ``None`` when the template has no occurrence starting that day, either
    because the pattern skips it or because the series has ended.
    """
    first = _template(window).start.date()
    if day < first:
        return None
    if window.recurrence_end_date is not None and day > window.recurrence_end_date:
        return None

    every = max(1, window.recurrence_interval or 1)
    kind = window.recurrence_type or RecurrenceType.NONE.value
    index: int | None = None

    if kind == RecurrenceType.NONE.value:
        index = 0 if day == first else None

    elif kind == RecurrenceType.DAILY.value:
        elapsed = (day - first).days
        index = elapsed // every if elapsed % every == 0 else None

    elif kind == RecurrenceType.WEEKLY.value:
        weekdays = sorted(set(window.recurrence_days_of_week or [first.weekday()]))
        weeks = (_monday(day) - _monday(first)).days // 7
        if day.weekday() in weekdays and weeks % every == 0:
            before_day = sum(1 for wd in weekdays if wd < day.weekday())
            before_first = sum(1 for wd in weekdays if wd < first.weekday())
            index = (weeks // every) * len(weekdays) + before_day - before_first

    elif kind == RecurrenceType.MONTHLY.value:
        gap = relativedelta(day.replace(day=1), first.replace(day=1))
        months = gap.years * 12 + gap.months
        wanted = window.recurrence_day_of_month or first.day
        if months % every == 0 and day == first + relativedelta(months=months, day=wanted):
            skipped_first = 1 if first + relativedelta(day=wanted) < first else 0
            index = months // every - skipped_first

    elif kind == RecurrenceType.YEARLY.value:
        years = relativedelta(day.replace(day=1), first.replace(day=1)).years
        if years % every == 0 and day == first + relativedelta(years=years):
            index = years // every

    if index is None:
        return None
    if window.recurrence_max_occurrences is not None and index >= window.recurrence_max_occurrences:
        return None
    return index


def occurrence_on(window: AvailabilityWindow, day: date) -> Interval | None:
    """Return the occurrence that starts on ``day``, if any."""
    if occurrence_index(window, day) is None:
        return None
    template = _template(window)
    start = datetime.combine(day, template.start.time(), tzinfo=timezone.utc)
    return Interval(start, start + (template.end - template.start))


def occurrences_overlapping(window: AvailabilityWindow, span: Interval) -> list[Interval]:
    """All occurrences that share at least one instant with ``span``, in start order."""
    template = _template(window)
    if not window.is_recurring:
        return [template] if overlaps(template, span) else []

    # An occurrence that started up to one duration before the span can reach into it.
    lookback = math.ceil((template.end - template.start) / _ONE_DAY)
    day = span.start.date() - timedelta(days=lookback)
    last = (span.end - timedelta(microseconds=1)).date()

    found = []
    while day <= last:
        occurrence = occurrence_on(window, day)
        if occurrence is not None and overlaps(occurrence, span):
            found.append(occurrence)
        day += _ONE_DAY
    return found


def occurrence_covering(window: AvailabilityWindow, interval: Interval) -> Interval | None:
    """Return the occurrence that fully contains ``interval``, if any."""
    for occurrence in occurrences_overlapping(window, interval):
        if contains(occurrence, interval):
            return occurrence
    return None
