"""Booking conflict detection, booking-vs-booking first and then booking-vs-availability."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.exceptions import AvailabilityViolation, BookingConflictError, ViolationReason
from slotwise.models.booking import ACTIVE_STATUSES, Booking
from slotwise.scheduling.availability_store import (
    ConstraintResult,
    CoveringWindow,
    find_covering,
    is_within_constraints,
)
from slotwise.scheduling.intervals import Interval, overlap_clause

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConflictResult:
    """Outcome of :func:`check_conflict`.

    Exactly one of ``conflicting_booking_id`` / ``violation`` is set on a
    rejection; ``covering`` names the window that accepted the interval.
    """

    accepted: bool
    conflicting_booking_id: uuid.UUID | None = None
    violation: ViolationReason | None = None
    message: str | None = None
    covering: CoveringWindow | None = None

    @property
    def reason(self) -> str | None:
        """Machine-readable rejection reason, None when accepted."""
        if self.conflicting_booking_id is not None:
            return BookingConflictError.kind
        if self.violation is not None:
            return self.violation.value
        return None

    def raise_for_rejection(self) -> CoveringWindow:
        """Return the accepting window, or raise the matching scheduling error."""
        if self.conflicting_booking_id is not None:
            raise BookingConflictError(self.conflicting_booking_id)
        if self.violation is not None:
            raise AvailabilityViolation(self.violation, self.message)
        if self.covering is None:
            raise RuntimeError("Accepted conflict result has no covering window")
        return self.covering


async def find_overlapping_booking(
    db: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    interval: Interval,
    exclude_booking_id: uuid.UUID | None = None,
) -> uuid.UUID | None:
    """Return the id of the earliest non-terminal booking overlapping ``interval``."""
    query = select(Booking.id).where(
        Booking.tenant_id == tenant_id,
        Booking.resource_id == resource_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.deleted_at.is_(None),
        overlap_clause(Booking.start_at, Booking.end_at, interval),
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    result = await db.execute(query.order_by(Booking.start_at).limit(1))
    return result.scalar_one_or_none()


async def check_conflict(
    db: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    interval: Interval,
    now: datetime,
    assignee_id: uuid.UUID | None = None,
    exclude_booking: Booking | None = None,
    preferred_window_id: uuid.UUID | None = None,
) -> ConflictResult:
    """Decide whether ``interval`` may be booked on ``resource_id``.

    Covering windows are tried in occurrence order (``preferred_window_id``
    first when given); the first whose constraints pass accepts the
    interval. When none pass, the first failure is reported.
    """
    exclude_id = exclude_booking.id if exclude_booking is not None else None
    clash = await find_overlapping_booking(
        db,
        tenant_id=tenant_id,
        resource_id=resource_id,
        interval=interval,
        exclude_booking_id=exclude_id,
    )
    if clash is not None:
        logger.debug("Interval %s-%s on %s clashes with booking %s", interval.start, interval.end, resource_id, clash)
        return ConflictResult(accepted=False, conflicting_booking_id=clash)

    candidates = await find_covering(
        db, tenant_id=tenant_id, resource_id=resource_id, interval=interval, assignee_id=assignee_id
    )
    if not candidates:
        logger.debug("No window covers %s-%s on %s", interval.start, interval.end, resource_id)
        return ConflictResult(
            accepted=False,
            violation=ViolationReason.NO_COVERING_WINDOW,
            message="No active availability window covers the requested interval",
        )
    if preferred_window_id is not None:
        candidates.sort(key=lambda c: c.window.id != preferred_window_id)

    first_failure: ConstraintResult | None = None
    for covering in candidates:
        outcome = await is_within_constraints(
            db,
            covering,
            interval,
            resource_id=resource_id,
            now=now,
            exclude_booking=exclude_booking,
        )
        if outcome.ok:
            return ConflictResult(accepted=True, covering=covering)
        if first_failure is None:
            first_failure = outcome

    logger.debug("Interval %s-%s on %s rejected: %s", interval.start, interval.end, resource_id, first_failure.reason)
    return ConflictResult(accepted=False, violation=first_failure.reason, message=first_failure.message)
