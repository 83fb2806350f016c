"""Tests for slot generation and slot pricing."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.clock import fixed_clock
from slotwise.exceptions import BookingConflictError, InputValidationError
from slotwise.models.availability import AvailabilityWindow
from slotwise.scheduling.conflicts import check_conflict
from slotwise.scheduling.intervals import Interval
from slotwise.scheduling.slots import generate_slots, slot_cost
from slotwise.schemas.booking import BookingCreate
from slotwise.services import booking_service

MON = date(2024, 1, 15)


def _at(hour: int, minute: int = 0, day: int = 15) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    # Early on the viewing day, so the whole 09:00-17:00 window is bookable.
    return _at(7, 0)


@pytest.fixture
def slots_for(db_session: AsyncSession, tenant_id, test_property, now):
    async def _slots(day: date = MON, duration_minutes: int = 60, **kwargs):
        return await generate_slots(
            db_session,
            tenant_id=tenant_id,
            resource_id=test_property.id,
            day=day,
            duration_minutes=duration_minutes,
            now=now,
            **kwargs,
        )

    return _slots


def _by_start(slots) -> dict[datetime, object]:
    return {s.start: s for s in slots}


class TestViewingDay:
    async def test_empty_day_offers_every_step(self, slots_for, window):
        slots = await slots_for()

        assert len(slots) == 15
        assert slots[0].start == _at(9, 0)
        assert slots[-1].start == _at(16, 0)
        assert slots[-1].end == _at(17, 0)
        assert all(s.is_available for s in slots)
        assert all(s.availability_window_id == window.id for s in slots)

    async def test_booking_blocks_overlapping_slots(
        self, db_session: AsyncSession, slots_for, make_window, tenant_id, test_property, requester, now, dispatcher
    ):
        await make_window(max_bookings=2)
        data = BookingCreate(
            resource_id=test_property.id,
            requester_id=requester.id,
            start_at=_at(10, 0),
            end_at=_at(11, 0),
        )
        booking = await booking_service.create_booking(
            db_session, tenant_id, requester.id, data, clock=fixed_clock(now), dispatcher=dispatcher
        )
        assert booking.reference == "BK202401150001"

        slots = _by_start(await slots_for())
        for blocked in (_at(9, 30), _at(10, 0), _at(10, 30)):
            assert not slots[blocked].is_available
            assert slots[blocked].reason == "booking_conflict"
        assert slots[_at(9, 0)].is_available
        assert slots[_at(11, 0)].is_available

        clash = BookingCreate(
            resource_id=test_property.id,
            requester_id=requester.id,
            start_at=_at(10, 30),
            end_at=_at(11, 30),
        )
        with pytest.raises(BookingConflictError) as exc_info:
            await booking_service.create_booking(
                db_session, tenant_id, requester.id, clash, clock=fixed_clock(now), dispatcher=dispatcher
            )
        assert exc_info.value.conflicting_booking_id == booking.id

    async def test_single_capacity_window_is_full_after_one_booking(
        self, db_session: AsyncSession, slots_for, make_window, tenant_id, test_property, requester, now
    ):
        await make_window(max_bookings=1)
        data = BookingCreate(
            resource_id=test_property.id,
            requester_id=requester.id,
            start_at=_at(10, 0),
            end_at=_at(11, 0),
        )
        await booking_service.create_booking(db_session, tenant_id, requester.id, data, clock=fixed_clock(now))

        slots = _by_start(await slots_for())
        assert slots[_at(10, 0)].reason == "booking_conflict"
        assert slots[_at(13, 0)].reason == "capacity_exceeded"
        assert not any(s.is_available for s in slots.values())

    async def test_day_without_windows_is_empty(self, slots_for, window):
        assert await slots_for(day=date(2024, 1, 16)) == []


class TestNotice:
    @pytest.fixture
    def now(self) -> datetime:
        return _at(9, 45)

    async def test_slots_inside_notice_period_are_unavailable(self, slots_for, window):
        slots = _by_start(await slots_for())
        assert slots[_at(10, 30)].reason == "insufficient_advance_notice"
        assert slots[_at(11, 0)].is_available


class TestShape:
    async def test_slot_interval_sets_the_step(self, slots_for, make_window):
        await make_window(slot_interval=60)
        slots = await slots_for()
        assert [s.start.hour for s in slots] == list(range(9, 17))

    async def test_duration_longer_than_window_rule_is_marked(self, slots_for, window):
        slots = await slots_for(duration_minutes=90)
        assert slots
        assert {s.reason for s in slots} == {"duration_out_of_bounds"}

    async def test_recurring_window_on_later_week(self, slots_for, make_window):
        weekly = await make_window(recurrence_type="weekly")
        slots = await slots_for(day=date(2024, 1, 22))
        assert len(slots) == 15
        assert slots[0].start == _at(9, 0, day=22)
        assert all(s.availability_window_id == weekly.id for s in slots)

    async def test_overlapping_windows_merge_sorted(self, slots_for, make_window):
        morning = await make_window(title="Morning", end_at=_at(12, 0), slot_interval=60)
        midday = await make_window(title="Midday", start_at=_at(11, 0), end_at=_at(14, 0), slot_interval=60)
        slots = await slots_for()

        starts = [s.start for s in slots]
        assert starts == sorted(starts)
        assert [s.start.hour for s in slots] == [9, 10, 11, 11, 12, 13]
        assert {s.availability_window_id for s in slots} == {morning.id, midday.id}

    async def test_window_crossing_midnight_is_clipped_to_the_day(self, slots_for, make_window):
        await make_window(start_at=_at(22, 0), end_at=_at(2, 0, day=16), min_advance_booking_hours=0)
        slots = await slots_for(day=date(2024, 1, 16))
        assert [s.start for s in slots] == [_at(0, 0, day=16), _at(0, 30, day=16), _at(1, 0, day=16)]

    async def test_clipped_strict_window_keeps_its_own_grid(self, slots_for, make_window):
        await make_window(
            start_at=_at(22, 45),
            end_at=_at(3, 0, day=16),
            strict_slot_alignment=True,
            min_advance_booking_hours=0,
        )
        slots = await slots_for(day=date(2024, 1, 16), duration_minutes=30)
        assert [(s.start.hour, s.start.minute) for s in slots] == [(0, 15), (0, 45), (1, 15), (1, 45), (2, 15)]
        assert all(s.is_available for s in slots)

    @pytest.mark.parametrize("duration", [0, -30])
    async def test_non_positive_duration_is_rejected(self, slots_for, window, duration):
        with pytest.raises(InputValidationError):
            await slots_for(duration_minutes=duration)


class TestConsistency:
    async def test_slot_availability_matches_conflict_check(
        self, db_session: AsyncSession, slots_for, make_window, make_booking, tenant_id, test_property, now
    ):
        await make_window(buffer_after=15)
        await make_booking(_at(12, 0), _at(13, 0))
        slots = await slots_for()

        for slot in slots:
            result = await check_conflict(
                db_session,
                tenant_id=tenant_id,
                resource_id=test_property.id,
                interval=Interval(slot.start, slot.end),
                now=now,
            )
            assert result.accepted == slot.is_available, slot.start
            assert result.reason == slot.reason, slot.start

    async def test_available_slots_can_be_booked(
        self, db_session: AsyncSession, slots_for, make_window, tenant_id, test_property, requester, now
    ):
        await make_window(max_bookings=2)
        available = [s for s in await slots_for() if s.is_available]
        first, last = available[0], available[-1]

        for slot in (first, last):
            data = BookingCreate(
                resource_id=test_property.id,
                requester_id=requester.id,
                start_at=slot.start,
                end_at=slot.end,
            )
            booking = await booking_service.create_booking(
                db_session, tenant_id, requester.id, data, clock=fixed_clock(now)
            )
            assert booking.availability_window_id == slot.availability_window_id


class TestCost:
    def test_hourly_rate_plus_fees(self):
        window = AvailabilityWindow(price_per_hour=Decimal("60"), additional_fees=Decimal("5"))
        assert slot_cost(window, 60) == Decimal("65.00")
        assert slot_cost(window, 45) == Decimal("50.00")

    def test_flat_base_price(self):
        window = AvailabilityWindow(base_price=Decimal("95"))
        assert slot_cost(window, 30) == Decimal("95.00")
        assert slot_cost(window, 120) == Decimal("95.00")

    def test_unpriced_window(self):
        assert slot_cost(AvailabilityWindow(), 60) is None

    async def test_slots_carry_cost_and_currency(self, slots_for, make_window):
        await make_window(price_per_hour=Decimal("40.00"), currency="EUR")
        slots = await slots_for(duration_minutes=30)
        assert slots[0].cost == Decimal("20.00")
        assert slots[0].currency == "EUR"

    async def test_unpriced_slots_have_no_currency(self, slots_for, window):
        slots = await slots_for()
        assert slots[0].cost is None
        assert slots[0].currency is None

