"""Tests for the conflict detector and the window constraint checks behind it."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.exceptions import AvailabilityViolation, BookingConflictError, ViolationReason
from slotwise.models import Property
from slotwise.scheduling.conflicts import ConflictResult, check_conflict
from slotwise.scheduling.intervals import Interval


def _at(hour: int, minute: int = 0, day: int = 15) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def _iv(start: tuple[int, int], end: tuple[int, int]) -> Interval:
    return Interval(_at(*start), _at(*end))


@pytest.fixture
def check(db_session: AsyncSession, tenant_id, test_property, now):
    """Run check_conflict against the test property with sensible defaults."""

    async def _check(interval: Interval, **kwargs):
        kwargs.setdefault("resource_id", test_property.id)
        kwargs.setdefault("now", now)
        return await check_conflict(db_session, tenant_id=tenant_id, interval=interval, **kwargs)

    return _check


class TestBookingVsBooking:
    async def test_free_covered_interval_is_accepted(self, check, window):
        result = await check(_iv((10, 0), (11, 0)))
        assert result.accepted
        assert result.reason is None
        assert result.covering.window.id == window.id
        assert result.raise_for_rejection().window.id == window.id

    async def test_overlap_names_the_colliding_booking(self, check, window, make_booking):
        existing = await make_booking(_at(10, 0), _at(11, 0), availability_window_id=window.id)
        result = await check(_iv((10, 30), (11, 30)))
        assert not result.accepted
        assert result.conflicting_booking_id == existing.id
        assert result.reason == "booking_conflict"
        with pytest.raises(BookingConflictError) as exc_info:
            result.raise_for_rejection()
        assert exc_info.value.conflicting_booking_id == existing.id

    async def test_back_to_back_is_allowed(self, check, window, make_booking):
        await make_booking(_at(10, 0), _at(11, 0))
        assert (await check(_iv((11, 0), (12, 0)))).accepted
        assert (await check(_iv((9, 0), (10, 0)))).accepted

    @pytest.mark.parametrize("status", ["cancelled", "completed", "no_show", "rescheduled"])
    async def test_closed_bookings_do_not_block(self, check, window, make_booking, status):
        await make_booking(_at(10, 0), _at(11, 0), status=status)
        assert (await check(_iv((10, 0), (11, 0)))).accepted

    async def test_soft_deleted_bookings_do_not_block(self, check, window, make_booking, now):
        await make_booking(_at(10, 0), _at(11, 0), deleted_at=now)
        assert (await check(_iv((10, 0), (11, 0)))).accepted

    async def test_excluded_booking_is_ignored(self, check, window, make_booking):
        existing = await make_booking(_at(10, 0), _at(11, 0), availability_window_id=window.id)
        result = await check(_iv((10, 30), (11, 30)), exclude_booking=existing)
        assert result.accepted

    async def test_other_resources_do_not_block(
        self, db_session: AsyncSession, check, window, make_booking, tenant_id
    ):
        other = Property(tenant_id=tenant_id, name="Flat 3", property_type="flat")
        db_session.add(other)
        await db_session.flush()
        await make_booking(_at(10, 0), _at(11, 0), resource_id=other.id)
        assert (await check(_iv((10, 0), (11, 0)))).accepted


class TestBookingVsAvailability:
    async def test_no_covering_window(self, check, window):
        result = await check(_iv((16, 30), (17, 30)))
        assert result.violation == ViolationReason.NO_COVERING_WINDOW
        with pytest.raises(AvailabilityViolation) as exc_info:
            result.raise_for_rejection()
        assert exc_info.value.to_dict()["reason"] == "no_covering_window"

    @pytest.mark.parametrize(
        "overrides",
        [{"is_active": False}, {"is_published": False}, {"deleted_at": datetime(2024, 1, 1, tzinfo=timezone.utc)}],
    )
    async def test_unbookable_windows_are_ignored(self, check, make_window, overrides):
        await make_window(**overrides)
        result = await check(_iv((10, 0), (11, 0)))
        assert result.violation == ViolationReason.NO_COVERING_WINDOW

    async def test_window_for_any_resource_covers(self, check, make_window):
        await make_window(resource_id=None)
        assert (await check(_iv((10, 0), (11, 0)))).accepted

    async def test_duration_bounds(self, check, window):
        assert (await check(_iv((10, 0), (11, 30)))).violation == ViolationReason.DURATION_OUT_OF_BOUNDS
        assert (await check(_iv((10, 0), (10, 15)))).violation == ViolationReason.DURATION_OUT_OF_BOUNDS

    async def test_strict_slot_alignment(self, check, make_window):
        await make_window(strict_slot_alignment=True)
        assert (await check(_iv((10, 15), (11, 15)))).violation == ViolationReason.SLOT_MISALIGNED
        assert (await check(_iv((10, 30), (11, 30)))).accepted

    async def test_loose_alignment_accepts_any_start(self, check, window):
        assert (await check(_iv((10, 15), (11, 15)))).accepted

    async def test_insufficient_advance_notice(self, check, window):
        result = await check(_iv((10, 0), (11, 0)), now=_at(9, 30))
        assert result.violation == ViolationReason.INSUFFICIENT_ADVANCE_NOTICE

    async def test_too_far_in_advance(self, check, window):
        result = await check(_iv((10, 0), (11, 0)), now=_at(10, 0) - timedelta(days=31))
        assert result.violation == ViolationReason.TOO_FAR_IN_ADVANCE

    async def test_capacity_exceeded(self, check, make_window):
        await make_window(max_bookings=1, current_bookings=1)
        assert (await check(_iv((10, 0), (11, 0)))).violation == ViolationReason.CAPACITY_EXCEEDED

    async def test_capacity_held_by_rescheduled_booking_is_reused(self, check, make_window, make_booking):
        full = await make_window(max_bookings=1, current_bookings=1)
        existing = await make_booking(_at(10, 0), _at(11, 0), availability_window_id=full.id)
        result = await check(_iv((14, 0), (15, 0)), exclude_booking=existing)
        assert result.accepted

    async def test_buffer_before(self, check, make_window, make_booking):
        await make_window(buffer_before=15)
        await make_booking(_at(10, 0), _at(11, 0))
        assert (await check(_iv((11, 0), (12, 0)))).violation == ViolationReason.BUFFER_VIOLATION
        assert (await check(_iv((11, 15), (12, 15)))).accepted

    async def test_buffer_after(self, check, make_window, make_booking):
        await make_window(buffer_after=15)
        await make_booking(_at(12, 0), _at(13, 0))
        assert (await check(_iv((11, 0), (12, 0)))).violation == ViolationReason.BUFFER_VIOLATION
        assert (await check(_iv((10, 30), (11, 30)))).accepted

    async def test_max_concurrent_bookings_across_resources(
        self, db_session: AsyncSession, check, make_window, make_booking, tenant_id
    ):
        shared = await make_window(resource_id=None, max_concurrent_bookings=1)
        other = Property(tenant_id=tenant_id, name="Flat 3", property_type="flat")
        db_session.add(other)
        await db_session.flush()
        await make_booking(_at(10, 0), _at(11, 0), resource_id=other.id, availability_window_id=shared.id)

        assert (await check(_iv((10, 30), (11, 30)))).violation == ViolationReason.CAPACITY_EXCEEDED
        assert (await check(_iv((11, 0), (12, 0)))).accepted


class TestMultipleWindows:
    async def test_second_window_accepts_when_first_refuses(self, check, make_window):
        await make_window(title="Short visits", max_booking_duration=30)
        long_visits = await make_window(
            title="Long visits",
            start_at=_at(10, 0),
            max_booking_duration=120,
        )
        result = await check(_iv((10, 0), (11, 30)))
        assert result.accepted
        assert result.covering.window.id == long_visits.id

    async def test_first_failure_is_reported(self, check, make_window):
        await make_window(title="Short visits", max_booking_duration=30)
        await make_window(title="Full", start_at=_at(10, 0), max_bookings=1, current_bookings=1)
        result = await check(_iv((10, 0), (11, 0)))
        assert result.violation == ViolationReason.DURATION_OUT_OF_BOUNDS


class TestStaffScoping:
    async def test_staff_window_needs_matching_assignee(self, check, make_window, staff):
        await make_window(staff_id=staff.id)
        assert (await check(_iv((10, 0), (11, 0)))).violation == ViolationReason.NO_COVERING_WINDOW
        assert (await check(_iv((10, 0), (11, 0)), assignee_id=staff.id)).accepted

    async def test_open_window_covers_any_assignee(self, check, window, staff):
        assert (await check(_iv((10, 0), (11, 0)), assignee_id=staff.id)).accepted


class TestResult:
    def test_accepted_result_without_window_raises(self):
        with pytest.raises(RuntimeError):
            ConflictResult(accepted=True).raise_for_rejection()
