"""Pydantic v2 request/response schemas for availability window endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from slotwise.schemas.common import TimezoneLabel, UTCDatetime

RECURRENCE_PATTERN = "^(none|daily|weekly|monthly|yearly)$"


def _normalise_weekdays(value: list[int] | None) -> list[int] | None:
    """Weekdays are 0 (Monday) to 6 (Sunday)."""
    if value is None:
        return None
    if not value or any(day < 0 or day > 6 for day in value):
        raise ValueError("recurrence_days_of_week must hold values 0 (Monday) to 6 (Sunday)")
    return sorted(set(value))


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class AvailabilityCreate(BaseModel):
    """Schema for declaring a new availability window."""

    resource_id: uuid.UUID | None = None
    staff_id: uuid.UUID | None = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None

    start_at: UTCDatetime
    end_at: UTCDatetime
    timezone: TimezoneLabel | None = None
    is_all_day: bool = False

    recurrence_type: str = Field("none", pattern=RECURRENCE_PATTERN)
    recurrence_interval: int = Field(1, ge=1)
    recurrence_days_of_week: list[int] | None = None
    recurrence_day_of_month: int | None = Field(None, ge=1, le=31)
    recurrence_end_date: date | None = None
    recurrence_max_occurrences: int | None = Field(None, ge=1)

    min_booking_duration: int = Field(30, ge=1)
    max_booking_duration: int = Field(120, ge=1)
    slot_interval: int = Field(30, ge=1)
    strict_slot_alignment: bool | None = None
    buffer_before: int = Field(0, ge=0)
    buffer_after: int = Field(0, ge=0)
    min_advance_booking_hours: int = Field(1, ge=0)
    max_advance_booking_days: int = Field(30, ge=0)
    max_concurrent_bookings: int | None = Field(None, ge=1)
    max_bookings: int = Field(1, ge=1)

    base_price: Decimal | None = Field(None, ge=0)
    price_per_hour: Decimal | None = Field(None, ge=0)
    additional_fees: Decimal | None = Field(None, ge=0)
    currency: str = Field("GBP", min_length=3, max_length=3)

    is_active: bool = True
    is_published: bool = True
    requires_approval: bool = False

    @field_validator("recurrence_days_of_week")
    @classmethod
    def check_weekdays(cls, value: list[int] | None) -> list[int] | None:
        return _normalise_weekdays(value)

    @model_validator(mode="after")
    def check_window(self) -> "AvailabilityCreate":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        if self.min_booking_duration > self.max_booking_duration:
            raise ValueError("min_booking_duration must not exceed max_booking_duration")
        if self.recurrence_end_date is not None and self.recurrence_end_date < self.start_at.date():
            raise ValueError("recurrence_end_date must not be before start_at")
        return self


class AvailabilityUpdate(BaseModel):
    """Partial update. Combined invariants are re-checked against the stored window."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None

    start_at: UTCDatetime | None = None
    end_at: UTCDatetime | None = None
    timezone: TimezoneLabel | None = None
    is_all_day: bool | None = None

    recurrence_type: str | None = Field(None, pattern=RECURRENCE_PATTERN)
    recurrence_interval: int | None = Field(None, ge=1)
    recurrence_days_of_week: list[int] | None = None
    recurrence_day_of_month: int | None = Field(None, ge=1, le=31)
    recurrence_end_date: date | None = None
    recurrence_max_occurrences: int | None = Field(None, ge=1)

    min_booking_duration: int | None = Field(None, ge=1)
    max_booking_duration: int | None = Field(None, ge=1)
    slot_interval: int | None = Field(None, ge=1)
    strict_slot_alignment: bool | None = None
    buffer_before: int | None = Field(None, ge=0)
    buffer_after: int | None = Field(None, ge=0)
    min_advance_booking_hours: int | None = Field(None, ge=0)
    max_advance_booking_days: int | None = Field(None, ge=0)
    max_concurrent_bookings: int | None = Field(None, ge=1)
    max_bookings: int | None = Field(None, ge=1)

    base_price: Decimal | None = Field(None, ge=0)
    price_per_hour: Decimal | None = Field(None, ge=0)
    additional_fees: Decimal | None = Field(None, ge=0)
    currency: str | None = Field(None, min_length=3, max_length=3)

    is_active: bool | None = None
    is_published: bool | None = None
    requires_approval: bool | None = None

    @field_validator("recurrence_days_of_week")
    @classmethod
    def check_weekdays(cls, value: list[int] | None) -> list[int] | None:
        return _normalise_weekdays(value)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class AvailabilityResponse(BaseModel):
    """Availability window as stored, with derived utilization."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    resource_id: uuid.UUID | None = None
    staff_id: uuid.UUID | None = None
    title: str
    description: str | None = None
    start_at: datetime
    end_at: datetime
    timezone: str
    is_all_day: bool
    recurrence_type: str
    recurrence_interval: int
    recurrence_days_of_week: list[int] | None = None
    recurrence_day_of_month: int | None = None
    recurrence_end_date: date | None = None
    recurrence_max_occurrences: int | None = None
    min_booking_duration: int
    max_booking_duration: int
    slot_interval: int
    strict_slot_alignment: bool
    buffer_before: int
    buffer_after: int
    min_advance_booking_hours: int
    max_advance_booking_days: int
    max_concurrent_bookings: int | None = None
    current_bookings: int
    max_bookings: int
    utilization: float
    base_price: Decimal | None = None
    price_per_hour: Decimal | None = None
    additional_fees: Decimal | None = None
    currency: str
    is_active: bool
    is_published: bool
    requires_approval: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AvailabilityListResponse(BaseModel):
    """Paginated list of availability windows."""

    items: list[AvailabilityResponse]
    total: int
