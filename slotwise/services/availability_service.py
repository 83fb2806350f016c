"""CRUD for availability windows, plus the read-only availability queries."""

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
    ActiveBookingsPreventDeletion,
    AvailabilityNotFound,
    InputValidationError,
)
from slotwise.models.availability import AvailabilityWindow
from slotwise.models.booking import ACTIVE_STATUSES, Booking
from slotwise.scheduling.conflicts import ConflictResult, check_conflict
from slotwise.scheduling.intervals import Interval
from slotwise.scheduling.slots import TimeSlot, generate_slots
from slotwise.schemas.availability import AvailabilityCreate, AvailabilityResponse, AvailabilityUpdate
from slotwise.services.directory import resolve_resource, resolve_user

logger = logging.getLogger(__name__)


def _payload(window: AvailabilityWindow) -> dict[str, Any]:
    return AvailabilityResponse.model_validate(window).model_dump(mode="json")


# Update fields that may be cleared back to null.
_CLEARABLE = frozenset(
    {
        "description",
        "recurrence_days_of_week",
        "recurrence_day_of_month",
        "recurrence_end_date",
        "recurrence_max_occurrences",
        "max_concurrent_bookings",
        "base_price",
        "price_per_hour",
        "additional_fees",
    }
)


def _check_merged(window: AvailabilityWindow, changes: dict[str, Any]) -> None:
    """Invariants that span several fields, checked before a partial update is applied."""

    def value(field: str) -> Any:
        return changes.get(field, getattr(window, field))

    start_at, end_at = value("start_at"), value("end_at")
    if end_at <= start_at:
        raise InputValidationError("end_at must be after start_at")
    if value("min_booking_duration") > value("max_booking_duration"):
        raise InputValidationError("min_booking_duration must not exceed max_booking_duration")
    if value("max_bookings") < window.current_bookings:
        raise InputValidationError(
            f"max_bookings cannot drop below the {window.current_bookings} booking(s) already held"
        )
    end_date = value("recurrence_end_date")
    if end_date is not None and end_date < start_at.date():
        raise InputValidationError("recurrence_end_date must not be before start_at")


async def create_window(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    data: AvailabilityCreate,
    *,
    clock: Clock = utc_now,
    dispatcher: EventDispatcher | None = None,
) -> AvailabilityWindow:
    """Declare a new availability window.

    Raises:
        ResourceNotFound / UserNotFound: If the resource or staff member is
            unknown or inactive.
    """
    if data.resource_id is not None:
        await resolve_resource(db, tenant_id, data.resource_id)
    if data.staff_id is not None:
        await resolve_user(db, tenant_id, data.staff_id)

    now = clock()
    fields = data.model_dump(exclude={"timezone", "strict_slot_alignment"})
    window = AvailabilityWindow(
        tenant_id=tenant_id,
        timezone=data.timezone or settings.default_timezone,
        strict_slot_alignment=(
            settings.slot_alignment_strict if data.strict_slot_alignment is None else data.strict_slot_alignment
        ),
        current_bookings=0,
        created_by=actor_id,
        updated_by=actor_id,
        created_at=now,
        updated_at=now,
        **fields,
    )
    db.add(window)
    await db.flush()

    logger.info("Availability window %s created for resource %s", window.id, window.resource_id)
    emit(dispatcher, events.AVAILABILITY_CREATED, _payload(window))
    return window


async def get_window(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    window_id: uuid.UUID,
    *,
    lock: bool = False,
) -> AvailabilityWindow:
    """Raises :class:`AvailabilityNotFound` for unknown or soft-deleted windows."""
    query = select(AvailabilityWindow).where(
        AvailabilityWindow.id == window_id,
        AvailabilityWindow.tenant_id == tenant_id,
        AvailabilityWindow.deleted_at.is_(None),
    )
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    window = result.scalar_one_or_none()

    if window is None:
        raise AvailabilityNotFound(f"Availability window {window_id} not found")
    return window


async def list_windows(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    resource_id: uuid.UUID | None = None,
    staff_id: uuid.UUID | None = None,
    is_active: bool | None = None,
    is_published: bool | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> tuple[list[AvailabilityWindow], int]:
    """Return one page of windows (earliest start first) and the total count.

    The date range filters on the template's own start, not on expanded occurrences.
    """
    filters = [AvailabilityWindow.tenant_id == tenant_id, AvailabilityWindow.deleted_at.is_(None)]
    if resource_id is not None:
        filters.append(AvailabilityWindow.resource_id == resource_id)
    if staff_id is not None:
        filters.append(AvailabilityWindow.staff_id == staff_id)
    if is_active is not None:
        filters.append(AvailabilityWindow.is_active.is_(is_active))
    if is_published is not None:
        filters.append(AvailabilityWindow.is_published.is_(is_published))
    if start_from is not None:
        filters.append(AvailabilityWindow.start_at >= start_from)
    if start_to is not None:
        filters.append(AvailabilityWindow.start_at < start_to)

    total_result = await db.execute(select(func.count()).select_from(AvailabilityWindow).where(*filters))
    total = total_result.scalar_one()

    page_size = min(limit or settings.default_page_size, settings.max_page_size)
    result = await db.execute(
        select(AvailabilityWindow)
        .where(*filters)
        .order_by(AvailabilityWindow.start_at, AvailabilityWindow.id)
        .offset(skip)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def update_window(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    window_id: uuid.UUID,
    data: AvailabilityUpdate,
    *,
    clock: Clock = utc_now,
) -> AvailabilityWindow:
    """Apply a partial update and re-check the window's combined invariants.

    Existing bookings are left as they are; new rules apply to new requests.

    Raises:
        InputValidationError: If the merged window is inconsistent.
    """
    window = await get_window(db, tenant_id, window_id, lock=True)

    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field in _CLEARABLE
    }
    _check_merged(window, changes)
    for field, value in changes.items():
        setattr(window, field, value)

    window.updated_by = actor_id
    window.updated_at = clock()
    await db.flush()

    logger.info("Availability window %s updated: %s", window.id, ", ".join(sorted(changes)) or "no changes")
    return window


async def delete_window(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    window_id: uuid.UUID,
    *,
    clock: Clock = utc_now,
) -> None:
    """Soft-delete a window that no non-terminal booking references.

    Raises:
        ActiveBookingsPreventDeletion: While active bookings still hold the window.
    """
    window = await get_window(db, tenant_id, window_id, lock=True)

    active_result = await db.execute(
        select(func.count())
        .select_from(Booking)
        .where(
            Booking.availability_window_id == window.id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.deleted_at.is_(None),
        )
    )
    active = active_result.scalar_one()
    if active:
        raise ActiveBookingsPreventDeletion(window.id, active)

    now = clock()
    window.deleted_at = now
    window.deleted_by = actor_id
    window.is_active = False
    window.updated_by = actor_id
    window.updated_at = now
    await db.flush()

    logger.info("Availability window %s deleted", window.id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def check_availability(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    start_at: datetime,
    end_at: datetime,
    *,
    assignee_id: uuid.UUID | None = None,
    clock: Clock = utc_now,
) -> ConflictResult:
    """Run the full conflict check for an interval without booking it."""
    if end_at <= start_at:
        raise InputValidationError("end_at must be after start_at")
    await resolve_resource(db, tenant_id, resource_id)
    return await check_conflict(
        db,
        tenant_id=tenant_id,
        resource_id=resource_id,
        interval=Interval(start_at, end_at),
        now=clock(),
        assignee_id=assignee_id,
    )


async def available_slots(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    day: date,
    duration_minutes: int,
    *,
    assignee_id: uuid.UUID | None = None,
    clock: Clock = utc_now,
) -> list[TimeSlot]:
    """Every candidate slot for ``resource_id`` on ``day``, available or not."""
    await resolve_resource(db, tenant_id, resource_id)
    slots = await generate_slots(
        db,
        tenant_id=tenant_id,
        resource_id=resource_id,
        day=day,
        duration_minutes=duration_minutes,
        now=clock(),
        assignee_id=assignee_id,
    )
    logger.debug(
        "%d of %d slot(s) free on %s for resource %s",
        sum(1 for s in slots if s.is_available),
        len(slots),
        day,
        resource_id,
    )
    return slots
