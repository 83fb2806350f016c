"""Slot generation and availability check routes (read-only)."""

import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.api.deps import RequestContext, get_clock, get_context, get_db
from slotwise.clock import Clock
from slotwise.schemas.common import as_utc
from slotwise.schemas.slots import AvailabilityCheckResponse, SlotListResponse, TimeSlotResponse
from slotwise.services import availability_service

router = APIRouter(prefix="/api/v1/slots", tags=["slots"])


@router.get(
    "",
    response_model=SlotListResponse,
    summary="Generate bookable slots for a resource and day",
)
async def list_slots(
    resource_id: uuid.UUID = Query(...),
    day: date = Query(..., description="UTC calendar day"),
    duration_minutes: int = Query(..., ge=1, le=24 * 60),
    assignee_id: uuid.UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
) -> SlotListResponse:
    """Every candidate slot, each marked with whether it could be booked right now."""
    slots = await availability_service.available_slots(
        db, ctx.tenant_id, resource_id, day, duration_minutes, assignee_id=assignee_id, clock=clock
    )
    return SlotListResponse(
        resource_id=resource_id,
        day=day,
        duration_minutes=duration_minutes,
        slots=[TimeSlotResponse.model_validate(s) for s in slots],
        available_count=sum(1 for s in slots if s.is_available),
    )


@router.get(
    "/check",
    response_model=AvailabilityCheckResponse,
    summary="Check whether an exact interval is bookable",
)
async def check_availability(
    resource_id: uuid.UUID = Query(...),
    start_at: datetime = Query(...),
    end_at: datetime = Query(...),
    assignee_id: uuid.UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
) -> AvailabilityCheckResponse:
    result = await availability_service.check_availability(
        db,
        ctx.tenant_id,
        resource_id,
        as_utc(start_at),
        as_utc(end_at),
        assignee_id=assignee_id,
        clock=clock,
    )
    return AvailabilityCheckResponse(
        available=result.accepted,
        reason=result.reason,
        message=result.message,
        conflicting_booking_id=result.conflicting_booking_id,
        availability_window_id=result.covering.window.id if result.covering is not None else None,
    )
