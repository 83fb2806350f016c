"""Booking lifecycle service — every booking write goes through here.

Each mutating operation runs its steps inside a SAVEPOINT: the conflict
check, the usage-counter move and the insert or status change either all
land or none do. The resource row is locked before the overlap check so
two requests for the same resource cannot both pass it; usage counters
are moved only through the availability store's conditional UPDATEs.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise import events
from slotwise.clock import Clock, utc_now
from slotwise.config import settings
from slotwise.events import EventDispatcher, emit
from slotwise.exceptions import (
    AvailabilityViolation,
    BookingNotFound,
    InputValidationError,
    InvalidTransitionError,
    ViolationReason,
)
from slotwise.models.availability import AvailabilityWindow
from slotwise.models.booking import Booking, BookingStatus
from slotwise.scheduling.availability_store import decrement_usage, increment_usage
from slotwise.scheduling.conflicts import check_conflict
from slotwise.scheduling.intervals import Interval, day_bounds
from slotwise.scheduling.lifecycle import Action, is_closed, next_status
from slotwise.scheduling.references import insert_with_reference
from slotwise.scheduling.slots import slot_cost
from slotwise.schemas.booking import BookingCreate, BookingReschedule, BookingResponse, BookingUpdate
from slotwise.services.directory import resolve_resource, resolve_user

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _interval(start_at: datetime, end_at: datetime) -> Interval:
    if end_at <= start_at:
        raise InputValidationError("end_at must be after start_at")
    return Interval(start_at, end_at)


def _payload(booking: Booking) -> dict[str, Any]:
    return BookingResponse.model_validate(booking).model_dump(mode="json")


async def get_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    booking_id: uuid.UUID,
    *,
    lock: bool = False,
) -> Booking:
    """Fetch a booking that is not soft-deleted.

    With ``lock`` the row is locked and reloaded from the database, so a
    status read under the lock is never a stale identity-map copy.

    Raises:
        BookingNotFound: If the booking does not exist for this tenant.
    """
    query = select(Booking).where(
        Booking.id == booking_id,
        Booking.tenant_id == tenant_id,
        Booking.deleted_at.is_(None),
    )
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    booking = result.scalar_one_or_none()

    if booking is None:
        raise BookingNotFound(f"Booking {booking_id} not found")
    return booking


async def _transition(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    booking_id: uuid.UUID,
    action: Action,
    actor_id: uuid.UUID | None,
    now: datetime,
) -> Booking:
    booking = await get_booking(db, tenant_id, booking_id, lock=True)
    booking.status = next_status(booking.status, action)
    booking.updated_by = actor_id
    booking.updated_at = now
    return booking


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def create_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    data: BookingCreate,
    *,
    clock: Clock = utc_now,
    dispatcher: EventDispatcher | None = None,
) -> Booking:
    """Create a pending booking for a free, covered interval.

    Raises:
        InputValidationError: If ``end_at`` is not after ``start_at``.
        ResourceNotFound / UserNotFound: If the resource, requester or
            assignee is unknown or inactive.
        BookingConflictError: If a non-terminal booking overlaps the interval.
        AvailabilityViolation: If no window covers the interval or its rules refuse it.
        AllocationExhausted: If no reference could be allocated.
    """
    interval = _interval(data.start_at, data.end_at)
    now = clock()

    await resolve_resource(db, tenant_id, data.resource_id, lock=True)
    await resolve_user(db, tenant_id, data.requester_id)
    if data.assignee_id is not None:
        await resolve_user(db, tenant_id, data.assignee_id)

    async with db.begin_nested():
        result = await check_conflict(
            db,
            tenant_id=tenant_id,
            resource_id=data.resource_id,
            interval=interval,
            now=now,
            assignee_id=data.assignee_id,
        )
        window = result.raise_for_rejection().window
        await increment_usage(db, window.id, now)

        cost = slot_cost(window, interval.duration_minutes)

        def build(reference: str) -> Booking:
            return Booking(
                tenant_id=tenant_id,
                reference=reference,
                resource_id=data.resource_id,
                requester_id=data.requester_id,
                assignee_id=data.assignee_id,
                availability_window_id=window.id,
                booking_type=data.booking_type,
                title=data.title,
                notes=data.notes,
                start_at=interval.start,
                end_at=interval.end,
                duration_minutes=interval.duration_minutes,
                timezone=data.timezone or settings.default_timezone,
                status=BookingStatus.PENDING.value,
                total_cost=cost,
                currency=window.currency if cost is not None else None,
                created_by=actor_id,
                updated_by=actor_id,
                created_at=now,
                updated_at=now,
            )

        booking = await insert_with_reference(db, build, tenant_id=tenant_id, day=now.date())

    logger.info("Booking %s created for resource %s (%s)", booking.reference, booking.resource_id, booking.id)
    emit(dispatcher, events.BOOKING_CREATED, _payload(booking))
    return booking


async def list_bookings(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    resource_id: uuid.UUID | None = None,
    requester_id: uuid.UUID | None = None,
    assignee_id: uuid.UUID | None = None,
    status: str | None = None,
    booking_type: str | None = None,
    start_from: date | datetime | None = None,
    start_to: date | datetime | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> tuple[list[Booking], int]:
    """Return one page of bookings (newest start first) and the total count."""
    filters = [Booking.tenant_id == tenant_id, Booking.deleted_at.is_(None)]
    if resource_id is not None:
        filters.append(Booking.resource_id == resource_id)
    if requester_id is not None:
        filters.append(Booking.requester_id == requester_id)
    if assignee_id is not None:
        filters.append(Booking.assignee_id == assignee_id)
    if status is not None:
        filters.append(Booking.status == status)
    if booking_type is not None:
        filters.append(Booking.booking_type == booking_type)
    if start_from is not None:
        filters.append(Booking.start_at >= _as_bound(start_from))
    if start_to is not None:
        filters.append(Booking.start_at < _as_bound(start_to, end=True))

    total_result = await db.execute(select(func.count()).select_from(Booking).where(*filters))
    total = total_result.scalar_one()

    page_size = min(limit or settings.default_page_size, settings.max_page_size)
    result = await db.execute(
        select(Booking).where(*filters).order_by(Booking.start_at.desc(), Booking.id).offset(skip).limit(page_size)
    )
    return list(result.scalars().all()), total


def _as_bound(value: date | datetime, *, end: bool = False) -> datetime:
    """Dates filter by whole UTC days; ``start_to`` dates are inclusive."""
    if isinstance(value, datetime):
        return value
    bounds = day_bounds(value)
    return bounds.end if end else bounds.start


async def update_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    data: BookingUpdate,
    *,
    clock: Clock = utc_now,
) -> Booking:
    """Change descriptive fields of a non-terminal booking.

    Raises:
        InvalidTransitionError: If the booking is already closed.
        UserNotFound: If a new assignee is unknown or inactive.
        AvailabilityViolation: If the booking's window is reserved for a
            different staff member than the new assignee.
    """
    booking = await get_booking(db, tenant_id, booking_id, lock=True)
    if is_closed(booking.status):
        raise InvalidTransitionError(booking.status, "update")

    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field != "booking_type"
    }
    new_assignee = changes.get("assignee_id")
    if "assignee_id" in changes and new_assignee != booking.assignee_id:
        if new_assignee is not None:
            await resolve_user(db, tenant_id, new_assignee)
        if booking.availability_window_id is not None:
            window = await db.get(AvailabilityWindow, booking.availability_window_id)
            if window is not None and window.staff_id is not None and window.staff_id != new_assignee:
                raise AvailabilityViolation(
                    ViolationReason.NO_COVERING_WINDOW,
                    "The booking's availability window is reserved for another staff member",
                )

    for field, value in changes.items():
        setattr(booking, field, value)
    booking.updated_by = actor_id
    booking.updated_at = clock()
    await db.flush()

    logger.info("Booking %s updated: %s", booking.reference, ", ".join(sorted(changes)) or "no changes")
    return booking


async def confirm_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    *,
    clock: Clock = utc_now,
    dispatcher: EventDispatcher | None = None,
) -> Booking:
    """pending -> confirmed."""
    now = clock()
    booking = await _transition(db, tenant_id, booking_id, Action.CONFIRM, actor_id, now)
    booking.confirmed_at = now
    await db.flush()

    logger.info("Booking %s confirmed", booking.reference)
    emit(dispatcher, events.BOOKING_CONFIRMED, _payload(booking))
    return booking


async def cancel_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    reason: str | None = None,
    *,
    clock: Clock = utc_now,
    dispatcher: EventDispatcher | None = None,
) -> Booking:
    """Cancel a non-terminal booking and give its unit of capacity back.

    Cancelling twice raises :class:`InvalidTransitionError`.
    """
    now = clock()
    async with db.begin_nested():
        booking = await _transition(db, tenant_id, booking_id, Action.CANCEL, actor_id, now)
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        if booking.availability_window_id is not None:
            await decrement_usage(db, booking.availability_window_id, now)

    logger.info("Booking %s cancelled", booking.reference)
    emit(dispatcher, events.BOOKING_CANCELLED, _payload(booking))
    return booking


async def check_in_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    *,
    clock: Clock = utc_now,
) -> Booking:
    """confirmed -> in_progress, recording the actual start."""
    now = clock()
    booking = await _transition(db, tenant_id, booking_id, Action.CHECK_IN, actor_id, now)
    booking.actual_start_at = now
    await db.flush()

    logger.info("Booking %s checked in", booking.reference)
    return booking


async def check_out_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    *,
    clock: Clock = utc_now,
    dispatcher: EventDispatcher | None = None,
) -> Booking:
    """in_progress -> completed, recording the actual end."""
    now = clock()
    booking = await _transition(db, tenant_id, booking_id, Action.CHECK_OUT, actor_id, now)
    booking.actual_end_at = now
    await db.flush()

    logger.info("Booking %s completed", booking.reference)
    emit(dispatcher, events.BOOKING_COMPLETED, _payload(booking))
    return booking


async def mark_no_show(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    *,
    clock: Clock = utc_now,
    dispatcher: EventDispatcher | None = None,
) -> Booking:
    """pending|confirmed -> no_show. The unit of capacity stays consumed."""
    booking = await _transition(db, tenant_id, booking_id, Action.NO_SHOW, actor_id, clock())
    await db.flush()

    logger.info("Booking %s marked as no-show", booking.reference)
    emit(dispatcher, events.BOOKING_NO_SHOW, _payload(booking))
    return booking


async def reschedule_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    data: BookingReschedule,
    *,
    clock: Clock = utc_now,
    dispatcher: EventDispatcher | None = None,
) -> Booking:
    """Move a booking to a new interval.

    The existing record is closed as ``rescheduled`` and a new ``pending``
    record is created for the new interval with ``rescheduled_from_id``
    pointing back at it. The old record's own interval does not count
    against the new one, and its unit of capacity moves to the window that
    accepts the new interval.

    Returns:
        The new booking record.
    """
    interval = _interval(data.start_at, data.end_at)
    now = clock()

    previous = await get_booking(db, tenant_id, booking_id, lock=True)
    target_status = next_status(previous.status, Action.RESCHEDULE)
    await resolve_resource(db, tenant_id, previous.resource_id, lock=True)

    async with db.begin_nested():
        result = await check_conflict(
            db,
            tenant_id=tenant_id,
            resource_id=previous.resource_id,
            interval=interval,
            now=now,
            assignee_id=previous.assignee_id,
            exclude_booking=previous,
        )
        window = result.raise_for_rejection().window

        if previous.availability_window_id is not None:
            await decrement_usage(db, previous.availability_window_id, now)
        previous.status = target_status
        previous.updated_by = actor_id
        previous.updated_at = now
        await db.flush()

        await increment_usage(db, window.id, now)
        cost = slot_cost(window, interval.duration_minutes)

        def build(reference: str) -> Booking:
            return Booking(
                tenant_id=tenant_id,
                reference=reference,
                resource_id=previous.resource_id,
                requester_id=previous.requester_id,
                assignee_id=previous.assignee_id,
                availability_window_id=window.id,
                rescheduled_from_id=previous.id,
                booking_type=previous.booking_type,
                title=previous.title,
                notes=previous.notes,
                start_at=interval.start,
                end_at=interval.end,
                duration_minutes=interval.duration_minutes,
                timezone=data.timezone or previous.timezone,
                status=BookingStatus.PENDING.value,
                total_cost=cost,
                currency=window.currency if cost is not None else None,
                created_by=actor_id,
                updated_by=actor_id,
                created_at=now,
                updated_at=now,
            )

        booking = await insert_with_reference(db, build, tenant_id=tenant_id, day=now.date())

    logger.info("Booking %s rescheduled as %s", previous.reference, booking.reference)
    emit(dispatcher, events.BOOKING_RESCHEDULED, _payload(booking))
    return booking


async def delete_booking(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    booking_id: uuid.UUID,
    *,
    clock: Clock = utc_now,
) -> None:
    """Soft-delete a booking; an active one gives its unit of capacity back."""
    now = clock()
    async with db.begin_nested():
        booking = await get_booking(db, tenant_id, booking_id, lock=True)
        if booking.is_active and booking.availability_window_id is not None:
            await decrement_usage(db, booking.availability_window_id, now)
        booking.deleted_at = now
        booking.deleted_by = actor_id
        booking.updated_by = actor_id
        booking.updated_at = now

    logger.info("Booking %s deleted", booking.reference)
