"""Response schemas for slot generation and availability checks."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class TimeSlotResponse(BaseModel):
    start: datetime
    end: datetime
    is_available: bool
    availability_window_id: uuid.UUID
    cost: Decimal | None = None
    currency: str | None = None
    reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SlotListResponse(BaseModel):
    """Every candidate slot for one resource, day and duration."""

    resource_id: uuid.UUID
    day: date
    duration_minutes: int
    slots: list[TimeSlotResponse]
    available_count: int


class AvailabilityCheckResponse(BaseModel):
    """Whether an exact interval could be booked right now, and if not, why."""

    available: bool
    reason: str | None = None
    message: str | None = None
    conflicting_booking_id: uuid.UUID | None = None
    availability_window_id: uuid.UUID | None = None
