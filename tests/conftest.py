"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test gets a fresh in-memory SQLite database (aiosqlite) with all
  tables created.
- The test session is bound to an outer transaction that always rolls back;
  SAVEPOINTs opened by the services nest inside it.
"""

import itertools
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from slotwise.api.deps import get_clock, get_event_dispatcher
from slotwise.clock import fixed_clock
from slotwise.database import Base, get_db
from slotwise.main import app
from slotwise.models import AvailabilityWindow, Booking, Property, User

# Tests run "now" on this instant unless they pick their own clock.
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def enable_sqlite_savepoints(engine: AsyncEngine, begin_statement: str = "BEGIN") -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so SAVEPOINT works as on PostgreSQL."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql(begin_statement)


class RecordingDispatcher:
    """Event dispatcher that keeps every event for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def dispatch(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory database shared by every connection of this engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed database for tests that need one connection per session.

    ``BEGIN IMMEDIATE`` takes SQLite's write lock at the start of every
    transaction, so concurrent sessions serialise the way row locks make
    them on PostgreSQL.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'slotwise.db'}",
        connect_args={"timeout": 30},
    )
    enable_sqlite_savepoints(engine, "BEGIN IMMEDIATE")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(
            bind=connection,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock(now: datetime):
    return fixed_clock(now)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    clock,
    dispatcher: RecordingDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test session, clock and dispatcher."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_event_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Directory records
# ---------------------------------------------------------------------------


@pytest.fixture
def tenant_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest_asyncio.fixture
async def test_property(db_session: AsyncSession, tenant_id: uuid.UUID) -> Property:
    prop = Property(tenant_id=tenant_id, name="14 Albion Road", address="London N16", property_type="house")
    db_session.add(prop)
    await db_session.flush()
    return prop


@pytest_asyncio.fixture
async def requester(db_session: AsyncSession, tenant_id: uuid.UUID) -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(tenant_id=tenant_id, email=f"buyer-{unique}@test.com", name="Alex Morgan", role="buyer")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def staff(db_session: AsyncSession, tenant_id: uuid.UUID) -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(tenant_id=tenant_id, email=f"staff-{unique}@test.com", name="Tom Ellis", role="staff")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
def headers(tenant_id: uuid.UUID, requester: User) -> dict[str, str]:
    return {"X-Tenant-ID": str(tenant_id), "X-Actor-ID": str(requester.id)}


# ---------------------------------------------------------------------------
# Availability windows
# ---------------------------------------------------------------------------


WINDOW_DEFAULTS: dict[str, Any] = {
    "title": "Viewings",
    "start_at": datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc),
    "end_at": datetime(2024, 1, 15, 17, 0, tzinfo=timezone.utc),
    "timezone": "Europe/London",
    "is_all_day": False,
    "recurrence_type": "none",
    "recurrence_interval": 1,
    "slot_interval": 30,
    "min_booking_duration": 30,
    "max_booking_duration": 60,
    "strict_slot_alignment": False,
    "buffer_before": 0,
    "buffer_after": 0,
    "min_advance_booking_hours": 1,
    "max_advance_booking_days": 30,
    "current_bookings": 0,
    "max_bookings": 10,
    "currency": "GBP",
    "is_active": True,
    "is_published": True,
    "requires_approval": False,
}


@pytest.fixture
def make_window(db_session: AsyncSession, tenant_id: uuid.UUID, test_property: Property):
    """Factory: insert an availability window for the test property (overridable)."""

    async def _make(**overrides: Any) -> AvailabilityWindow:
        fields = {**WINDOW_DEFAULTS, "tenant_id": tenant_id, "resource_id": test_property.id, **overrides}
        window = AvailabilityWindow(**fields)
        db_session.add(window)
        await db_session.flush()
        return window

    return _make


@pytest_asyncio.fixture
async def window(make_window) -> AvailabilityWindow:
    return await make_window()


# ---------------------------------------------------------------------------
# Bookings inserted directly, bypassing the lifecycle checks
# ---------------------------------------------------------------------------


@pytest.fixture
def make_booking(db_session: AsyncSession, tenant_id: uuid.UUID, test_property: Property, requester: User):
    """Factory: insert a booking row as-is, e.g. to set up a conflicting neighbour."""
    counter = itertools.count(1)

    async def _make(start_at: datetime, end_at: datetime, **overrides: Any) -> Booking:
        fields = {
            "tenant_id": tenant_id,
            "reference": f"TEST{next(counter):04d}",
            "resource_id": test_property.id,
            "requester_id": requester.id,
            "booking_type": "viewing",
            "start_at": start_at,
            "end_at": end_at,
            "duration_minutes": int((end_at - start_at).total_seconds() // 60),
            "timezone": "Europe/London",
            "status": "pending",
            **overrides,
        }
        booking = Booking(**fields)
        db_session.add(booking)
        await db_session.flush()
        return booking

    return _make
