"""SQLAlchemy models for Slotwise.

All models are imported here so that ``Base.metadata`` sees every table
before ``create_all`` runs. If you add a new model, import it in this file.
"""

from slotwise.models.availability import AvailabilityWindow, RecurrenceType
from slotwise.models.booking import ACTIVE_STATUSES, TERMINAL_STATUSES, Booking, BookingStatus, BookingType
from slotwise.models.property import Property
from slotwise.models.user import User

__all__ = [
    "ACTIVE_STATUSES",
    "AvailabilityWindow",
    "Booking",
    "BookingStatus",
    "BookingType",
    "Property",
    "RecurrenceType",
    "TERMINAL_STATUSES",
    "User",
]
