"""Availability windows CRUD API routes."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.api.deps import RequestContext, get_clock, get_context, get_db, get_event_dispatcher
from slotwise.clock import Clock
from slotwise.config import settings
from slotwise.events import EventDispatcher
from slotwise.schemas.availability import (
    AvailabilityCreate,
    AvailabilityListResponse,
    AvailabilityResponse,
    AvailabilityUpdate,
)
from slotwise.schemas.common import MessageResponse
from slotwise.services import availability_service

router = APIRouter(prefix="/api/v1/availability", tags=["availability"])


@router.post(
    "",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Declare an availability window",
)
async def create_window(
    body: AvailabilityCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> AvailabilityResponse:
    window = await availability_service.create_window(
        db, ctx.tenant_id, ctx.actor_id, body, clock=clock, dispatcher=dispatcher
    )
    return AvailabilityResponse.model_validate(window)


@router.get(
    "",
    response_model=AvailabilityListResponse,
    summary="List availability windows",
)
async def list_windows(
    resource_id: uuid.UUID | None = Query(None),
    staff_id: uuid.UUID | None = Query(None),
    is_active: bool | None = Query(None),
    is_published: bool | None = Query(None),
    start_from: datetime | None = Query(None, description="Windows starting at or after this instant"),
    start_to: datetime | None = Query(None, description="Windows starting before this instant"),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
) -> AvailabilityListResponse:
    items, total = await availability_service.list_windows(
        db,
        ctx.tenant_id,
        resource_id=resource_id,
        staff_id=staff_id,
        is_active=is_active,
        is_published=is_published,
        start_from=start_from,
        start_to=start_to,
        skip=skip,
        limit=limit,
    )
    return AvailabilityListResponse(items=[AvailabilityResponse.model_validate(w) for w in items], total=total)


@router.get(
    "/{window_id}",
    response_model=AvailabilityResponse,
    summary="Get an availability window",
)
async def get_window(
    window_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
) -> AvailabilityResponse:
    window = await availability_service.get_window(db, ctx.tenant_id, window_id)
    return AvailabilityResponse.model_validate(window)


@router.put(
    "/{window_id}",
    response_model=AvailabilityResponse,
    summary="Update an availability window",
)
async def update_window(
    window_id: uuid.UUID,
    body: AvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
) -> AvailabilityResponse:
    """Partial update; rejected with 422 if the merged window is inconsistent."""
    window = await availability_service.update_window(db, ctx.tenant_id, ctx.actor_id, window_id, body, clock=clock)
    return AvailabilityResponse.model_validate(window)


@router.delete(
    "/{window_id}",
    response_model=MessageResponse,
    summary="Delete an availability window",
)
async def delete_window(
    window_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_context),
    clock: Clock = Depends(get_clock),
) -> MessageResponse:
    """Soft-delete; rejected with 409 while active bookings reference the window."""
    await availability_service.delete_window(db, ctx.tenant_id, ctx.actor_id, window_id, clock=clock)
    return MessageResponse(message="Availability window deleted")
