"""Scheduling error taxonomy.

Every failure the engine can report has its own class with a stable
``kind`` string, so callers (and the HTTP layer) can tell a booking
conflict from an availability violation without parsing messages.
"""

import enum
import uuid
from typing import Any


class ViolationReason(str, enum.Enum):
    """Why a covering availability window rejected an interval."""

    NO_COVERING_WINDOW = "no_covering_window"
    DURATION_OUT_OF_BOUNDS = "duration_out_of_bounds"
    SLOT_MISALIGNED = "slot_misaligned"
    BUFFER_VIOLATION = "buffer_violation"
    INSUFFICIENT_ADVANCE_NOTICE = "insufficient_advance_notice"
    TOO_FAR_IN_ADVANCE = "too_far_in_advance"
    CAPACITY_EXCEEDED = "capacity_exceeded"


class SchedulingError(Exception):
    """Base class for all errors surfaced by the scheduling engine."""

    kind: str = "scheduling_error"
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Serialise for an API error body."""
        return {"detail": self.message, "error": self.kind}


class InputValidationError(SchedulingError):
    """Malformed input, rejected before any store access."""

    kind = "validation_error"
    status_code = 422


class NotFoundError(SchedulingError):
    """A referenced record does not exist or is soft-deleted."""

    kind = "not_found"
    status_code = 404


class ResourceNotFound(NotFoundError):
    kind = "resource_not_found"


class UserNotFound(NotFoundError):
    kind = "user_not_found"


class BookingNotFound(NotFoundError):
    kind = "booking_not_found"


class AvailabilityNotFound(NotFoundError):
    kind = "availability_not_found"


class BookingConflictError(SchedulingError):
    """The interval overlaps an existing non-terminal booking."""

    kind = "booking_conflict"
    status_code = 409

    def __init__(self, conflicting_booking_id: uuid.UUID) -> None:
        super().__init__(f"Booking conflict detected with booking {conflicting_booking_id}")
        self.conflicting_booking_id = conflicting_booking_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["conflicting_booking_id"] = str(self.conflicting_booking_id)
        return data


class AvailabilityViolation(SchedulingError):
    """No covering window, or the covering window's constraints are violated."""

    kind = "availability_violation"
    status_code = 409

    def __init__(self, reason: ViolationReason, message: str | None = None) -> None:
        super().__init__(message or f"Availability violation: {reason.value}")
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class InvalidTransitionError(SchedulingError):
    """The requested status change is illegal from the current state."""

    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current_status: str, action: str) -> None:
        super().__init__(f"Cannot {action.replace('_', ' ')} a booking in status '{current_status}'")
        self.current_status = current_status
        self.action = action

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["current_status"] = self.current_status
        data["action"] = self.action
        return data


class ActiveBookingsPreventDeletion(SchedulingError):
    """An availability window still has non-terminal bookings referencing it."""

    kind = "active_bookings_prevent_deletion"
    status_code = 409

    def __init__(self, window_id: uuid.UUID, active_count: int) -> None:
        super().__init__(
            f"Cannot delete availability window {window_id}: {active_count} active booking(s) reference it"
        )
        self.window_id = window_id
        self.active_count = active_count

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["active_bookings"] = self.active_count
        return data


class AllocationExhausted(SchedulingError):
    """Reference generation kept colliding after the bounded number of retries."""

    kind = "allocation_exhausted"
    status_code = 503
