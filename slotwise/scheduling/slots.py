"""Slot generation: the offerable sub-intervals of a resource's availability for one day."""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.exceptions import InputValidationError
from slotwise.models.availability import AvailabilityWindow
from slotwise.scheduling.availability_store import windows_in_range
from slotwise.scheduling.conflicts import check_conflict
from slotwise.scheduling.intervals import Interval, clip, day_bounds

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    is_available: bool
    availability_window_id: uuid.UUID
    cost: Decimal | None = None
    currency: str | None = None
    reason: str | None = None  # why the slot is unavailable


def slot_cost(window: AvailabilityWindow, minutes: int) -> Decimal | None:
    """Price of ``minutes`` in ``window``, or None when the window carries no pricing."""
    if window.price_per_hour is None and window.base_price is None and window.additional_fees is None:
        return None
    if window.price_per_hour is not None:
        cost = Decimal(window.price_per_hour) * minutes / 60
    else:
        cost = Decimal(window.base_price or 0)
    cost += Decimal(window.additional_fees or 0)
    return cost.quantize(_CENTS)


async def generate_slots(
    db: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    day: date,
    duration_minutes: int,
    now: datetime,
    assignee_id: uuid.UUID | None = None,
) -> list[TimeSlot]:
    """Enumerate slots of ``duration_minutes`` on ``day`` (UTC), sorted by start.

    Each occurrence is clipped to the day and stepped through by its window's
    ``slot_interval``. Availability of every candidate comes from the
    conflict detector, so a slot marked available can be booked as-is.
    Slots from different windows may overlap.
    """
    if duration_minutes <= 0:
        raise InputValidationError("duration_minutes must be positive")

    bounds = day_bounds(day)
    length = timedelta(minutes=duration_minutes)
    slots: list[TimeSlot] = []

    for covering in await windows_in_range(
        db, tenant_id=tenant_id, resource_id=resource_id, span=bounds, assignee_id=assignee_id
    ):
        window = covering.window
        clipped = clip(covering.occurrence, bounds)
        if clipped is None:
            continue
        step = timedelta(minutes=window.slot_interval or duration_minutes)
        cost = slot_cost(window, duration_minutes)

        # Stay on the occurrence's own grid when it was clipped at midnight.
        start = clipped.start
        lag = clipped.start - covering.occurrence.start
        if lag % step:
            start += step - lag % step
        while start + length <= clipped.end:
            candidate = Interval(start, start + length)
            result = await check_conflict(
                db,
                tenant_id=tenant_id,
                resource_id=resource_id,
                interval=candidate,
                now=now,
                assignee_id=assignee_id,
                preferred_window_id=window.id,
            )
            slots.append(
                TimeSlot(
                    start=candidate.start,
                    end=candidate.end,
                    is_available=result.accepted,
                    availability_window_id=window.id,
                    cost=cost,
                    currency=window.currency if cost is not None else None,
                    reason=result.reason,
                )
            )
            start += step

    slots.sort(key=lambda s: (s.start, s.end))
    logger.debug("Generated %d slot(s) for resource %s on %s", len(slots), resource_id, day)
    return slots
