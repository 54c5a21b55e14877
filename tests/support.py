"""Shared fixtures for the test suite."""
import unittest
import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from triply.db.session import create_all
from triply.models.booking import Booking, BOOKING_CONFIRMED
from triply.services.route_service import create_route
from triply.services.schedule_service import create_schedule
from triply.services.user_service import create_user


class DatabaseTestCase(unittest.TestCase):
    """Fresh in-memory database per test, with e-mail and realtime delivery patched out."""

    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        create_all(bind=self.engine)
        self.Session = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.db = self.Session()
        self.addCleanup(self.engine.dispose)
        self.addCleanup(self.db.close)

        email_patch = mock.patch("triply.services.email_service.send_email")
        self.send_email = email_patch.start()
        self.addCleanup(email_patch.stop)

        publish_patch = mock.patch("triply.services.realtime.publish")
        self.publish = publish_patch.start()
        self.addCleanup(publish_patch.stop)

        self.user_a = self.make_user("alice@example.com", "Alice", "+91 91111 11111")
        self.user_b = self.make_user("bob@example.com", "Bob", "+91 92222 22222")
        self.route = create_route(self.db, "TR-101", "Pune", "Mumbai", fare=Decimal("450.00"))

    def make_user(self, email, name, phone=""):
        return create_user(self.db, email, full_name=name, phone=phone)

    def make_schedule(self, capacity=None, days_ahead=30, departure_time="08:00", is_active=True, route=None):
        return create_schedule(
            self.db,
            (route or self.route).id,
            date.today() + timedelta(days=days_ahead),
            departure_time,
            "11:00",
            "MH12-AB-1234",
            driver_name="Ravi",
            capacity=capacity,
            is_active=is_active,
        )

    def insert_legacy_booking(self, schedule, user, seat_numbers, seats=None, status=BOOKING_CONFIRMED):
        """Write a booking row directly, as old bookings without passenger details were stored."""
        b = Booking(
            id=str(uuid.uuid4()),
            booking_ref="BK-" + uuid.uuid4().hex[:6].upper(),
            schedule_id=schedule.id,
            user_id=user.id,
            seats=len(seat_numbers) if seats is None else seats,
            seat_numbers=list(seat_numbers),
            status=status,
        )
        self.db.add(b)
        self.db.commit()
        return b
