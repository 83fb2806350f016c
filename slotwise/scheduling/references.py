"""Reference allocator — ``BK<YYYYMMDD><seq>`` codes, unique per tenant.

The sequence restarts every day. Allocation reads the highest sequence
already issued for the tenant and day, then inserts with the next one
inside a savepoint; if a concurrent request got there first the unique
constraint fires and the next sequence is tried, up to a bounded number
of attempts.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.config import settings
from slotwise.exceptions import AllocationExhausted
from slotwise.models.booking import Booking

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 4


def format_reference(day: date, sequence: int, prefix: str | None = None) -> str:
    """Build a reference code; sequences past 9999 simply grow wider."""
    return f"{prefix or settings.reference_prefix}{day:%Y%m%d}{sequence:0{SEQUENCE_WIDTH}d}"


def _day_prefix(day: date, prefix: str | None = None) -> str:
    return f"{prefix or settings.reference_prefix}{day:%Y%m%d}"


async def highest_sequence(db: AsyncSession, tenant_id: uuid.UUID, day: date) -> int:
    """Return the highest sequence issued to ``tenant_id`` on ``day`` (0 if none)."""
    prefix = _day_prefix(day)
    result = await db.execute(
        select(Booking.reference)
        .where(Booking.tenant_id == tenant_id, Booking.reference.startswith(prefix, autoescape=True))
        .order_by(func.length(Booking.reference).desc(), Booking.reference.desc())
        .limit(1)
    )
    latest = result.scalar_one_or_none()
    if latest is None:
        return 0
    tail = latest[len(prefix):]
    return int(tail) if tail.isdigit() else 0


async def next_reference(db: AsyncSession, tenant_id: uuid.UUID, day: date) -> str:
    """Return the next unused-looking reference for ``tenant_id`` on ``day``.

    Only a hint under concurrency; :func:`insert_with_reference` is what
    guarantees uniqueness.
    """
    return format_reference(day, await highest_sequence(db, tenant_id, day) + 1)


async def insert_with_reference(
    db: AsyncSession,
    build: Callable[[str], Booking],
    *,
    tenant_id: uuid.UUID,
    day: date,
    max_attempts: int | None = None,
) -> Booking:
    """Insert the booking produced by ``build(reference)`` under a fresh reference.

    Raises:
        AllocationExhausted: If every attempt collided with an existing reference.
    """
    attempts = max_attempts or settings.reference_max_attempts
    sequence = await highest_sequence(db, tenant_id, day) + 1

    for attempt in range(1, attempts + 1):
        reference = format_reference(day, sequence)
        booking = build(reference)
        try:
            async with db.begin_nested():
                db.add(booking)
                await db.flush()
        except IntegrityError:
            logger.warning(
                "Reference %s already taken for tenant %s (attempt %d/%d)",
                reference,
                tenant_id,
                attempt,
                attempts,
            )
            sequence += 1
            continue
        return booking

    raise AllocationExhausted(f"Could not allocate a booking reference for {day:%Y-%m-%d} after {attempts} attempts")
