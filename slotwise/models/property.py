"""Property model — the bookable resource as seen by the directory."""

import uuid

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from slotwise.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Property(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A house, flat or commercial unit that viewings and visits are booked against."""

    __tablename__ = "properties"

    tenant_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, default=None)
    property_type: Mapped[str] = mapped_column(String(50), nullable=False, default="house")  # house, flat, commercial
    status: Mapped[str] = mapped_column(String(50), default="active")  # active, inactive

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name={self.name!r}, status={self.status!r})>"
