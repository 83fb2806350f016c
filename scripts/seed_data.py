"""Create the schema and seed a demo agency with properties, windows and bookings.

Run from the repository root:
    python -m scripts.seed_data

Idempotent: everything belonging to the demo tenant is deleted and
re-created on every run.
"""

import asyncio
import sys
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add the repository root to the path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete

from slotwise.database import Base, async_session_factory, engine
from slotwise.models import AvailabilityWindow, Booking, Property, User
from slotwise.schemas.availability import AvailabilityCreate
from slotwise.schemas.booking import BookingCreate
from slotwise.services import availability_service, booking_service

# Fixed so repeated runs reuse the same tenant.
DEMO_TENANT_ID = uuid.UUID("5b0c1a7e-2f43-4d6b-9a57-0d5f3c6e8a11")

PROPERTIES = [
    {"name": "14 Albion Road", "address": "14 Albion Road, London N16", "property_type": "house"},
    {"name": "Flat 3, Marlowe Court", "address": "Marlowe Court, Bristol BS1", "property_type": "flat"},
    {"name": "Unit 7, Canal Works", "address": "Canal Works, Manchester M4", "property_type": "commercial"},
]

USERS = [
    {"email": "agent@slotwise.dev", "name": "Priya Shah", "role": "agent"},
    {"email": "staff@slotwise.dev", "name": "Tom Ellis", "role": "staff"},
    {"email": "buyer@slotwise.dev", "name": "Alex Morgan", "role": "buyer"},
]


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


async def seed() -> None:
    """Populate the database with a demo tenant."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        for model in (Booking, AvailabilityWindow, Property, User):
            await session.execute(delete(model).where(model.tenant_id == DEMO_TENANT_ID))
        await session.flush()

        users = {}
        for data in USERS:
            user = User(tenant_id=DEMO_TENANT_ID, **data)
            session.add(user)
            users[data["role"]] = user
        properties = [Property(tenant_id=DEMO_TENANT_ID, **data) for data in PROPERTIES]
        session.add_all(properties)
        await session.flush()
        print(f"Created {len(users)} users and {len(properties)} properties")

        # Weekday viewing hours for every property, starting tomorrow.
        first_day = date.today() + timedelta(days=1)
        agent = users["agent"]
        windows = []
        for prop in properties:
            window = await availability_service.create_window(
                session,
                DEMO_TENANT_ID,
                agent.id,
                AvailabilityCreate(
                    resource_id=prop.id,
                    title=f"Viewings at {prop.name}",
                    start_at=_at(first_day, 9),
                    end_at=_at(first_day, 17),
                    recurrence_type="weekly",
                    recurrence_days_of_week=[0, 1, 2, 3, 4],
                    slot_interval=30,
                    min_booking_duration=30,
                    max_booking_duration=60,
                    buffer_after=15,
                    max_bookings=40,
                ),
            )
            windows.append(window)

        # Saturday inspections by the staff member on the first property only.
        saturday = first_day + timedelta(days=(5 - first_day.weekday()) % 7)
        await availability_service.create_window(
            session,
            DEMO_TENANT_ID,
            agent.id,
            AvailabilityCreate(
                resource_id=properties[0].id,
                staff_id=users["staff"].id,
                title="Saturday inspections",
                start_at=_at(saturday, 10),
                end_at=_at(saturday, 13),
                recurrence_type="weekly",
                min_booking_duration=60,
                max_booking_duration=120,
                slot_interval=60,
                max_bookings=12,
                base_price=Decimal("95.00"),
            ),
        )
        print(f"Created {len(windows) + 1} availability windows")

        # A few viewings on the next weekday.
        weekday = first_day
        while weekday.weekday() > 4:
            weekday += timedelta(days=1)
        buyer = users["buyer"]
        created = 0
        for prop, hour in zip(properties, (10, 11, 14)):
            await booking_service.create_booking(
                session,
                DEMO_TENANT_ID,
                buyer.id,
                BookingCreate(
                    resource_id=prop.id,
                    requester_id=buyer.id,
                    start_at=_at(weekday, hour),
                    end_at=_at(weekday, hour, 45),
                    title=f"Viewing: {prop.name}",
                ),
            )
            created += 1

        await session.commit()

    print(f"Created {created} bookings")
    print(f"Demo tenant: {DEMO_TENANT_ID}")


if __name__ == "__main__":
    asyncio.run(seed())
