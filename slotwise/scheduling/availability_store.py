"""Availability store — which windows cover an interval, and do their rules allow it.

Windows are read through :func:`find_covering` / :func:`windows_in_range`,
which expand recurring templates lazily around the queried interval. Usage
counters move only through :func:`increment_usage` / :func:`decrement_usage`,
each a single conditional UPDATE so concurrent bookings cannot lose updates
or push a window past ``max_bookings``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.clock import utc_now
from slotwise.exceptions import AvailabilityViolation, ViolationReason
from slotwise.models.availability import AvailabilityWindow, RecurrenceType
from slotwise.models.booking import ACTIVE_STATUSES, Booking
from slotwise.scheduling.intervals import Interval, overlap_clause
from slotwise.scheduling.recurrence import occurrence_covering, occurrences_overlapping

logger = logging.getLogger(__name__)

# All-day windows are widened to midnight, so candidate rows are fetched with a day of slack.
_SLACK = timedelta(days=1)


@dataclass(frozen=True)
class CoveringWindow:
    """A window together with the concrete occurrence that matched the query."""

    window: AvailabilityWindow
    occurrence: Interval


@dataclass(frozen=True)
class ConstraintResult:
    reason: ViolationReason | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    def raise_for_violation(self) -> None:
        if self.reason is not None:
            raise AvailabilityViolation(self.reason, self.message)


_PASSED = ConstraintResult()


async def _candidate_windows(
    db: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    span: Interval,
    assignee_id: uuid.UUID | None,
) -> list[AvailabilityWindow]:
    """Bookable window rows that might have an occurrence touching ``span``."""
    query = select(AvailabilityWindow).where(
        AvailabilityWindow.tenant_id == tenant_id,
        AvailabilityWindow.is_active.is_(True),
        AvailabilityWindow.is_published.is_(True),
        AvailabilityWindow.deleted_at.is_(None),
        or_(AvailabilityWindow.resource_id == resource_id, AvailabilityWindow.resource_id.is_(None)),
        AvailabilityWindow.start_at < span.end + _SLACK,
        or_(
            AvailabilityWindow.recurrence_type != RecurrenceType.NONE.value,
            AvailabilityWindow.end_at > span.start - _SLACK,
        ),
    )
    if assignee_id is None:
        query = query.where(AvailabilityWindow.staff_id.is_(None))
    else:
        query = query.where(
            or_(AvailabilityWindow.staff_id.is_(None), AvailabilityWindow.staff_id == assignee_id)
        )

    # Counters may have moved since the rows were last loaded into this session.
    query = query.order_by(AvailabilityWindow.start_at, AvailabilityWindow.id).execution_options(populate_existing=True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def find_covering(
    db: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    interval: Interval,
    assignee_id: uuid.UUID | None = None,
) -> list[CoveringWindow]:
    """Return active, published windows whose occurrence fully contains ``interval``.

    Ordered by occurrence start, then window start.
    """
    covering = []
    for window in await _candidate_windows(
        db, tenant_id=tenant_id, resource_id=resource_id, span=interval, assignee_id=assignee_id
    ):
        occurrence = occurrence_covering(window, interval)
        if occurrence is not None:
            covering.append(CoveringWindow(window, occurrence))
    covering.sort(key=lambda c: c.occurrence.start)
    return covering


async def windows_in_range(
    db: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    span: Interval,
    assignee_id: uuid.UUID | None = None,
) -> list[CoveringWindow]:
    """Return every occurrence (of every bookable window) that overlaps ``span``."""
    found = []
    for window in await _candidate_windows(
        db, tenant_id=tenant_id, resource_id=resource_id, span=span, assignee_id=assignee_id
    ):
        found.extend(CoveringWindow(window, occurrence) for occurrence in occurrences_overlapping(window, span))
    found.sort(key=lambda c: c.occurrence.start)
    return found


async def is_within_constraints(
    db: AsyncSession,
    covering: CoveringWindow,
    interval: Interval,
    *,
    resource_id: uuid.UUID,
    now: datetime,
    exclude_booking: Booking | None = None,
) -> ConstraintResult:
    """Check ``interval`` against the booking rules embedded in the covering window.

    ``exclude_booking`` is the booking being rescheduled: it neither counts
    as a buffer neighbour nor against capacity it already holds.
    """
    window = covering.window
    minutes = interval.duration_minutes

    if not window.min_booking_duration <= minutes <= window.max_booking_duration:
        return ConstraintResult(
            ViolationReason.DURATION_OUT_OF_BOUNDS,
            f"Duration {minutes} min is outside {window.min_booking_duration}-{window.max_booking_duration} min",
        )

    if window.strict_slot_alignment and window.slot_interval:
        offset = interval.start - covering.occurrence.start
        if offset.total_seconds() % (window.slot_interval * 60):
            return ConstraintResult(
                ViolationReason.SLOT_MISALIGNED,
                f"Start must fall on a {window.slot_interval}-minute boundary of the window",
            )

    lead = interval.start - now
    if lead < timedelta(hours=window.min_advance_booking_hours):
        return ConstraintResult(
            ViolationReason.INSUFFICIENT_ADVANCE_NOTICE,
            f"Bookings need at least {window.min_advance_booking_hours}h notice",
        )
    if lead > timedelta(days=window.max_advance_booking_days):
        return ConstraintResult(
            ViolationReason.TOO_FAR_IN_ADVANCE,
            f"Bookings open at most {window.max_advance_booking_days} days ahead",
        )

    exclude_id = exclude_booking.id if exclude_booking is not None else None
    held = int(
        exclude_booking is not None
        and exclude_booking.availability_window_id == window.id
        and exclude_booking.is_active
    )
    if window.current_bookings - held >= window.max_bookings:
        return ConstraintResult(
            ViolationReason.CAPACITY_EXCEEDED,
            f"Availability window is fully booked ({window.current_bookings}/{window.max_bookings})",
        )

    if window.max_concurrent_bookings is not None:
        query = select(func.count()).select_from(Booking).where(
            Booking.availability_window_id == window.id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.deleted_at.is_(None),
            overlap_clause(Booking.start_at, Booking.end_at, interval),
        )
        if exclude_id is not None:
            query = query.where(Booking.id != exclude_id)
        concurrent = (await db.execute(query)).scalar_one()
        if concurrent >= window.max_concurrent_bookings:
            return ConstraintResult(
                ViolationReason.CAPACITY_EXCEEDED,
                f"At most {window.max_concurrent_bookings} concurrent booking(s) allowed",
            )

    if window.buffer_before or window.buffer_after:
        padded = Interval(
            interval.start - timedelta(minutes=window.buffer_before),
            interval.end + timedelta(minutes=window.buffer_after),
        )
        query = select(Booking.id).where(
            Booking.tenant_id == window.tenant_id,
            Booking.resource_id == resource_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.deleted_at.is_(None),
            overlap_clause(Booking.start_at, Booking.end_at, padded),
        )
        if exclude_id is not None:
            query = query.where(Booking.id != exclude_id)
        neighbour = (await db.execute(query.limit(1))).scalar_one_or_none()
        if neighbour is not None:
            return ConstraintResult(
                ViolationReason.BUFFER_VIOLATION,
                f"Too close to booking {neighbour} for the window's buffer",
            )

    return _PASSED


async def increment_usage(db: AsyncSession, window_id: uuid.UUID, now: datetime | None = None) -> None:
    """Take one unit of capacity, or fail if the window is already full.

    Raises:
        AvailabilityViolation: ``capacity_exceeded`` when no unit is left.
    """
    result = await db.execute(
        update(AvailabilityWindow)
        .where(
            AvailabilityWindow.id == window_id,
            AvailabilityWindow.current_bookings < AvailabilityWindow.max_bookings,
        )
        .values(current_bookings=AvailabilityWindow.current_bookings + 1, updated_at=now or utc_now())
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        raise AvailabilityViolation(ViolationReason.CAPACITY_EXCEEDED, "Availability window is fully booked")


async def decrement_usage(db: AsyncSession, window_id: uuid.UUID, now: datetime | None = None) -> None:
    """Release one unit of capacity; never drops below zero."""
    result = await db.execute(
        update(AvailabilityWindow)
        .where(AvailabilityWindow.id == window_id, AvailabilityWindow.current_bookings > 0)
        .values(current_bookings=AvailabilityWindow.current_bookings - 1, updated_at=now or utc_now())
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        logger.warning("Usage counter for window %s already at zero", window_id)
