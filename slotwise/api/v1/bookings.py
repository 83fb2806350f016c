"""Bookings API router.

Thin layer over :mod:`slotwise.services.booking_service`: every handler
passes the request's tenant, actor, clock and dispatcher through and lets
scheduling errors propagate to the application's exception handler.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.api.deps import RequestContext, get_clock, get_context, get_db, get_event_dispatcher
from slotwise.clock import Clock
from slotwise.config import settings
from slotwise.events import EventDispatcher
from slotwise.schemas.booking import (
    BOOKING_STATUS_PATTERN,
    BOOKING_TYPE_PATTERN,
    BookingCancel,
    BookingCreate,
    BookingListResponse,
    BookingReschedule,
    BookingResponse,
    BookingUpdate,
)
from slotwise.schemas.common import MessageResponse
from slotwise.services import booking_service

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new booking",
)
async def create_booking(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> BookingResponse:
    """Book an interval on a resource.

    Rejected with 409 when the interval overlaps an existing booking
    (``booking_conflict``) or no availability window accepts it
    (``availability_violation`` plus a ``reason``).
    """
    booking = await booking_service.create_booking(
        db, ctx.tenant_id, ctx.actor_id, body, clock=clock, dispatcher=dispatcher
    )
    return BookingResponse.model_validate(booking)


@router.get(
    "",
    response_model=BookingListResponse,
    summary="List bookings",
)
async def list_bookings(
    resource_id: uuid.UUID | None = Query(None, description="Filter by resource"),
    requester_id: uuid.UUID | None = Query(None, description="Filter by requester"),
    assignee_id: uuid.UUID | None = Query(None, description="Filter by assigned staff member"),
    status_filter: str | None = Query(None, alias="status", pattern=BOOKING_STATUS_PATTERN),
    booking_type: str | None = Query(None, pattern=BOOKING_TYPE_PATTERN),
    start_from: date | None = Query(None, description="Bookings starting on or after this date"),
    start_to: date | None = Query(None, description="Bookings starting on or before this date"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
) -> BookingListResponse:
    """Return a page of bookings, newest start first."""
    items, total = await booking_service.list_bookings(
        db,
        ctx.tenant_id,
        resource_id=resource_id,
        requester_id=requester_id,
        assignee_id=assignee_id,
        status=status_filter,
        booking_type=booking_type,
        start_from=start_from,
        start_to=start_to,
        skip=skip,
        limit=limit,
    )
    return BookingListResponse(items=[BookingResponse.model_validate(b) for b in items], total=total)


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get a booking",
)
async def get_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
) -> BookingResponse:
    booking = await booking_service.get_booking(db, ctx.tenant_id, booking_id)
    return BookingResponse.model_validate(booking)


@router.put(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Update a booking's descriptive fields",
)
async def update_booking(
    booking_id: uuid.UUID,
    body: BookingUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
) -> BookingResponse:
    """Title, notes, type and assignee only; use ``/reschedule`` to move the interval."""
    booking = await booking_service.update_booking(db, ctx.tenant_id, ctx.actor_id, booking_id, body, clock=clock)
    return BookingResponse.model_validate(booking)


@router.delete(
    "/{booking_id}",
    response_model=MessageResponse,
    summary="Delete a booking",
)
async def delete_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
) -> MessageResponse:
    """Soft-delete a booking. Records are never removed from the database."""
    await booking_service.delete_booking(db, ctx.tenant_id, ctx.actor_id, booking_id, clock=clock)
    return MessageResponse(message="Booking deleted")


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/confirm", response_model=BookingResponse, summary="Confirm a pending booking")
async def confirm_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> BookingResponse:
    booking = await booking_service.confirm_booking(
        db, ctx.tenant_id, ctx.actor_id, booking_id, clock=clock, dispatcher=dispatcher
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse, summary="Cancel a booking")
async def cancel_booking(
    booking_id: uuid.UUID,
    body: BookingCancel | None = Body(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> BookingResponse:
    booking = await booking_service.cancel_booking(
        db,
        ctx.tenant_id,
        ctx.actor_id,
        booking_id,
        body.reason if body is not None else None,
        clock=clock,
        dispatcher=dispatcher,
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/check-in", response_model=BookingResponse, summary="Check in a confirmed booking")
async def check_in_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
) -> BookingResponse:
    booking = await booking_service.check_in_booking(db, ctx.tenant_id, ctx.actor_id, booking_id, clock=clock)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/check-out", response_model=BookingResponse, summary="Check out a booking in progress")
async def check_out_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> BookingResponse:
    booking = await booking_service.check_out_booking(
        db, ctx.tenant_id, ctx.actor_id, booking_id, clock=clock, dispatcher=dispatcher
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/no-show", response_model=BookingResponse, summary="Mark a booking as no-show")
async def mark_no_show(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> BookingResponse:
    booking = await booking_service.mark_no_show(
        db, ctx.tenant_id, ctx.actor_id, booking_id, clock=clock, dispatcher=dispatcher
    )
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/reschedule",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Move a booking to a new interval",
)
async def reschedule_booking(
    booking_id: uuid.UUID,
    body: BookingReschedule,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> BookingResponse:
    """Close the booking as ``rescheduled`` and return the new pending record linked to it."""
    booking = await booking_service.reschedule_booking(
        db, ctx.tenant_id, ctx.actor_id, booking_id, body, clock=clock, dispatcher=dispatcher
    )
    return BookingResponse.model_validate(booking)
