"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from slotwise.schemas.common import TimezoneLabel, UTCDatetime

BOOKING_TYPE_PATTERN = "^(viewing|inspection|valuation|maintenance|other)$"
BOOKING_STATUS_PATTERN = "^(pending|confirmed|in_progress|completed|cancelled|no_show|rescheduled)$"

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for creating a new booking."""

    resource_id: uuid.UUID
    requester_id: uuid.UUID
    assignee_id: uuid.UUID | None = None
    start_at: UTCDatetime
    end_at: UTCDatetime
    timezone: TimezoneLabel | None = None
    booking_type: str = Field("viewing", pattern=BOOKING_TYPE_PATTERN)
    title: str | None = Field(None, max_length=255)
    notes: str | None = None

    @model_validator(mode="after")
    def check_interval(self) -> "BookingCreate":
        """Validate that end_at is strictly after start_at."""
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class BookingUpdate(BaseModel):
    """Descriptive fields only; the interval changes through reschedule."""

    assignee_id: uuid.UUID | None = None
    booking_type: str | None = Field(None, pattern=BOOKING_TYPE_PATTERN)
    title: str | None = Field(None, max_length=255)
    notes: str | None = None


class BookingCancel(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class BookingReschedule(BaseModel):
    """New interval for an existing booking."""

    start_at: UTCDatetime
    end_at: UTCDatetime
    timezone: TimezoneLabel | None = None

    @model_validator(mode="after")
    def check_interval(self) -> "BookingReschedule":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    """Booking record as returned from every lifecycle operation."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    reference: str
    resource_id: uuid.UUID
    requester_id: uuid.UUID
    assignee_id: uuid.UUID | None = None
    availability_window_id: uuid.UUID | None = None
    rescheduled_from_id: uuid.UUID | None = None
    booking_type: str
    title: str | None = None
    notes: str | None = None
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    timezone: str
    status: str
    total_cost: Decimal | None = None
    currency: str | None = None
    confirmed_at: datetime | None = None
    actual_start_at: datetime | None = None
    actual_end_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_by: uuid.UUID | None = None
    updated_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingListResponse(BaseModel):
    """Paginated list of bookings."""

    items: list[BookingResponse]
    total: int
