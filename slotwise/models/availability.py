"""Availability window model — bookable spans declared by an operator."""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from slotwise.database import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin


class RecurrenceType(str, enum.Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AvailabilityWindow(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A span of time during which a resource (or any resource) may be booked.

    A window whose ``recurrence_type`` is not ``none`` is a template: its
    ``start_at``/``end_at`` describe the first occurrence and further
    occurrences are computed on demand, never stored.
    """

    __tablename__ = "availability_windows"

    tenant_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    resource_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )  # null: applies to any resource
    staff_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )  # null: applies to any assignee
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    # Interval
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="Europe/London")
    is_all_day: Mapped[bool] = mapped_column(Boolean, default=False)

    # Recurrence
    recurrence_type: Mapped[str] = mapped_column(String(20), default=RecurrenceType.NONE.value)
    recurrence_interval: Mapped[int] = mapped_column(Integer, default=1)
    recurrence_days_of_week: Mapped[list | None] = mapped_column(JSON, default=None)  # 0=Monday .. 6=Sunday
    recurrence_day_of_month: Mapped[int | None] = mapped_column(Integer, default=None)
    recurrence_end_date: Mapped[date | None] = mapped_column(Date, default=None)
    recurrence_max_occurrences: Mapped[int | None] = mapped_column(Integer, default=None)

    # Booking constraints (minutes unless stated)
    min_booking_duration: Mapped[int] = mapped_column(Integer, default=30)
    max_booking_duration: Mapped[int] = mapped_column(Integer, default=120)
    slot_interval: Mapped[int] = mapped_column(Integer, default=30)
    strict_slot_alignment: Mapped[bool] = mapped_column(Boolean, default=False)
    buffer_before: Mapped[int] = mapped_column(Integer, default=0)
    buffer_after: Mapped[int] = mapped_column(Integer, default=0)
    min_advance_booking_hours: Mapped[int] = mapped_column(Integer, default=1)
    max_advance_booking_days: Mapped[int] = mapped_column(Integer, default=30)
    max_concurrent_bookings: Mapped[int | None] = mapped_column(Integer, default=None)

    # Capacity
    current_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_bookings: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Pricing inputs
    base_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)
    price_per_hour: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)
    additional_fees: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)
    currency: Mapped[str] = mapped_column(String(3), default="GBP")

    # Flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)

    # Audit
    created_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    deleted_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_availability_windows_interval"),
        CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_bookings",
            name="ck_availability_windows_capacity",
        ),
        Index("ix_availability_windows_tenant_start", "tenant_id", "start_at"),
    )

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_type not in (None, RecurrenceType.NONE.value)

    @property
    def utilization(self) -> float:
        """Share of capacity in use, as a percentage."""
        if not self.max_bookings:
            return 0.0
        return round(self.current_bookings * 100 / self.max_bookings, 2)

    def __repr__(self) -> str:
        return (
            f"<AvailabilityWindow(id={self.id}, resource_id={self.resource_id}, "
            f"recurrence={self.recurrence_type}, usage={self.current_bookings}/{self.max_bookings})>"
        )
