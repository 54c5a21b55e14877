import uuid
from unittest import mock

from triply.core.errors import CapacityExceeded, InvalidSeat, InvalidSeatSelection, ScheduleNotFound, SeatConflict
from triply.models.booking import BOOKING_CANCELLED
from triply.models.schedule import ScheduleSeat
from triply.services import seat_ledger

from support import DatabaseTestCase


class TestSeatValidation(DatabaseTestCase):
    """Seat numbers are checked against the schedule's own capacity"""

    def test_seat_out_of_range(self):
        """Test seats outside 1..capacity are rejected with InvalidSeat"""
        schedule = self.make_schedule(capacity=10)
        with self.assertRaises(InvalidSeat) as ctx:
            seat_ledger.reserve(self.db, schedule.id, [0, 5, 11])
        self.assertEqual(ctx.exception.seats, [0, 11])
        self.assertEqual(seat_ledger.held_seats(self.db, schedule.id), [])

    def test_capacity_above_forty(self):
        """Test a large bus accepts seat numbers beyond 40"""
        schedule = self.make_schedule(capacity=52)
        seat_ledger.reserve(self.db, schedule.id, [41, 52])
        self.db.commit()
        self.assertEqual(seat_ledger.held_seats(self.db, schedule.id), [41, 52])

    def test_empty_and_duplicate_selection(self):
        """Test empty or repeated seat numbers are rejected"""
        schedule = self.make_schedule(capacity=10)
        with self.assertRaises(InvalidSeatSelection):
            seat_ledger.reserve(self.db, schedule.id, [])
        with self.assertRaises(InvalidSeatSelection):
            seat_ledger.reserve(self.db, schedule.id, [3, 3])

    def test_unknown_schedule(self):
        """Test reserving on a missing schedule"""
        with self.assertRaises(ScheduleNotFound):
            seat_ledger.reserve(self.db, str(uuid.uuid4()), [1])


class TestReserveRelease(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.schedule = self.make_schedule(capacity=4)

    def test_reserve_updates_derived_availability(self):
        """Test available seats are capacity minus held seats"""
        result = seat_ledger.reserve(self.db, self.schedule.id, [2, 1])
        self.db.commit()
        self.assertEqual(result.booked_seats, [1, 2])
        self.assertEqual(result.available_seats, 2)
        self.assertEqual(seat_ledger.available_seats(self.db, self.schedule), 2)

    def test_conflict_names_overlapping_seats(self):
        """Test conflict reports exactly the seats already held"""
        seat_ledger.reserve(self.db, self.schedule.id, [1, 2])
        self.db.commit()
        with self.assertRaises(SeatConflict) as ctx:
            seat_ledger.reserve(self.db, self.schedule.id, [2, 3, 1])
        self.assertEqual(ctx.exception.seats, [1, 2])
        self.db.rollback()
        self.assertEqual(seat_ledger.held_seats(self.db, self.schedule.id), [1, 2])

    def test_capacity_exceeded_when_ledger_has_drifted(self):
        """Test free count is enforced even if the ledger holds stray seats"""
        # A stray row outside capacity, as left behind by old data
        self.db.add(ScheduleSeat(id=str(uuid.uuid4()), schedule_id=self.schedule.id, seat_number=9))
        seat_ledger.reserve(self.db, self.schedule.id, [1, 2])
        self.db.commit()
        with self.assertRaises(CapacityExceeded) as ctx:
            seat_ledger.reserve(self.db, self.schedule.id, [3, 4])
        self.assertEqual(ctx.exception.available, 1)

    def test_unique_constraint_turns_race_into_conflict(self):
        """Test a seat taken between the check and the insert is reported as a conflict"""
        self.db.add(ScheduleSeat(id=str(uuid.uuid4()), schedule_id=self.schedule.id, seat_number=1))
        self.db.commit()
        # First read misses the concurrent writer, second read (after rollback) sees it
        with mock.patch.object(seat_ledger, "held_seats", side_effect=[[], [1]]):
            with self.assertRaises(SeatConflict) as ctx:
                seat_ledger.reserve(self.db, self.schedule.id, [1, 2])
        self.assertEqual(ctx.exception.seats, [1])
        self.assertEqual(seat_ledger.held_seats(self.db, self.schedule.id), [1])

    def test_release_ignores_seats_not_held(self):
        """Test releasing free seats is a no-op"""
        seat_ledger.reserve(self.db, self.schedule.id, [1, 2])
        self.db.commit()
        result = seat_ledger.release(self.db, self.schedule.id, [2, 3])
        self.db.commit()
        self.assertEqual(result.booked_seats, [1])
        self.assertEqual(result.available_seats, 3)

        result = seat_ledger.release(self.db, self.schedule.id, [2])
        self.assertEqual(result.booked_seats, [1])

    def test_release_by_booking_keeps_other_bookings_seats(self):
        """Test a booking only releases the seats it holds"""
        seat_ledger.reserve(self.db, self.schedule.id, [1], booking_id="b1")
        seat_ledger.reserve(self.db, self.schedule.id, [2], booking_id="b2")
        self.db.commit()
        seat_ledger.release(self.db, self.schedule.id, [1, 2], booking_id="b1")
        self.db.commit()
        self.assertEqual(seat_ledger.held_seats(self.db, self.schedule.id), [2])

    def test_reserve_after_release(self):
        """Test released seats can be reserved again"""
        seat_ledger.reserve(self.db, self.schedule.id, [3])
        self.db.commit()
        seat_ledger.release(self.db, self.schedule.id, [3])
        self.db.commit()
        result = seat_ledger.reserve(self.db, self.schedule.id, [3])
        self.assertEqual(result.booked_seats, [3])


class TestDriftRepair(DatabaseTestCase):
    """Ledger audit against confirmed bookings"""

    def setUp(self):
        super().setUp()
        self.schedule = self.make_schedule(capacity=6)

    def test_consistent_ledger(self):
        """Test no drift when the ledger matches confirmed bookings"""
        b = self.insert_legacy_booking(self.schedule, self.user_a, [1, 2])
        seat_ledger.reserve(self.db, self.schedule.id, [1, 2], booking_id=b.id)
        self.db.commit()
        self.assertTrue(seat_ledger.find_drift(self.db, self.schedule.id).is_consistent)

    def test_drift_and_rebuild(self):
        """Test rebuild restores the ledger from confirmed bookings"""
        first = self.insert_legacy_booking(self.schedule, self.user_a, [1, 2])
        self.insert_legacy_booking(self.schedule, self.user_b, [2, 3])
        self.insert_legacy_booking(self.schedule, self.user_b, [5], status=BOOKING_CANCELLED)
        # ledger only knows seat 4, which nobody booked
        seat_ledger.reserve(self.db, self.schedule.id, [4])
        self.db.commit()

        drift = seat_ledger.find_drift(self.db, self.schedule.id)
        self.assertEqual(drift.held_without_booking, [4])
        self.assertEqual(drift.missing_from_ledger, [1, 2, 3])
        self.assertEqual(list(drift.double_booked), [2])
        self.assertFalse(drift.is_consistent)

        before = seat_ledger.rebuild_ledger(self.db, self.schedule.id)
        self.db.commit()
        self.assertEqual(before.held_without_booking, [4])
        self.assertEqual(seat_ledger.held_seats(self.db, self.schedule.id), [1, 2, 3])
        seat_two = self.db.query(ScheduleSeat).filter_by(schedule_id=self.schedule.id, seat_number=2).one()
        self.assertEqual(seat_two.booking_id, first.id)

    def test_availability_merges_ledger_and_bookings(self):
        """Test the seat map shows seats from both the ledger and confirmed bookings"""
        self.insert_legacy_booking(self.schedule, self.user_a, [5])
        seat_ledger.reserve(self.db, self.schedule.id, [1])
        self.db.commit()
        availability = seat_ledger.seat_availability(self.db, self.schedule.id)
        self.assertEqual(availability.booked_seats, [1, 5])
        self.assertEqual(availability.available_seats, 4)
