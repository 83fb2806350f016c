"""Fire-and-forget dispatch of booking notifications.

The engine only names events and hands over the updated record. Delivery,
retries and formatting belong to whatever dispatcher is plugged in; a
dispatcher that raises is logged and otherwise ignored so a notification
outage never fails a booking.
"""

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_COMPLETED = "booking.completed"
BOOKING_RESCHEDULED = "booking.rescheduled"
BOOKING_NO_SHOW = "booking.no_show"
AVAILABILITY_CREATED = "availability.created"


class EventDispatcher(Protocol):
    def dispatch(self, event: str, payload: dict[str, Any]) -> None: ...


class LoggingEventDispatcher:
    """Default dispatcher: records each event in the application log."""

    def dispatch(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("Event %s id=%s", event, payload.get("id"))


default_dispatcher = LoggingEventDispatcher()


def emit(dispatcher: EventDispatcher | None, event: str, payload: dict[str, Any]) -> None:
    """Hand ``payload`` to the dispatcher without letting it fail the caller."""
    target = dispatcher if dispatcher is not None else default_dispatcher
    try:
        target.dispatch(event, payload)
    except Exception:
        logger.exception("Event dispatcher failed for %s", event)
