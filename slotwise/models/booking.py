"""Booking model: a reserved interval on a resource."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from slotwise.database import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class BookingType(str, enum.Enum):
    VIEWING = "viewing"
    INSPECTION = "inspection"
    VALUATION = "valuation"
    MAINTENANCE = "maintenance"
    OTHER = "other"


# Bookings in these states hold their interval and block overlapping requests.
ACTIVE_STATUSES = frozenset(s.value for s in (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS))
TERMINAL_STATUSES = frozenset(s.value for s in (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW))


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A requester's reservation of a resource for ``[start_at, end_at)``."""

    __tablename__ = "bookings"

    tenant_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    reference: Mapped[str] = mapped_column(String(32), nullable=False)

    resource_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    requester_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignee_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    availability_window_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("availability_windows.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rescheduled_from_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
    )

    booking_type: Mapped[str] = mapped_column(String(50), default=BookingType.VIEWING.value)
    title: Mapped[str | None] = mapped_column(String(255), default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)

    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="Europe/London")

    status: Mapped[str] = mapped_column(String(50), default=BookingStatus.PENDING.value, index=True)
    total_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    # Audit
    created_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    actual_start_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    actual_end_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, default=None)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    deleted_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "reference", name="uq_bookings_tenant_reference"),
        Index("ix_bookings_resource_status_start", "resource_id", "status", "start_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, reference={self.reference!r}, resource_id={self.resource_id}, status={self.status})>"
