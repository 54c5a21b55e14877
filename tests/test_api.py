from datetime import date, timedelta

from fastapi.testclient import TestClient

from triply.db.session import get_db
from triply.main import app

from support import DatabaseTestCase


class TestHttpApi(DatabaseTestCase):

    def setUp(self):
        super().setUp()

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.addCleanup(app.dependency_overrides.clear)
        self.client = TestClient(app)

        r = self.client.post("/api/v1/schedules", json={
            "routeId": self.route.id,
            "journeyDate": (date.today() + timedelta(days=10)).isoformat(),
            "departureTime": "07:30",
            "arrivalTime": "10:30",
            "busNumber": "MH12-XY-0001",
            "capacity": 3,
        })
        self.assertEqual(r.status_code, 201, r.text)
        self.schedule = r.json()

    def book(self, user_id, seats, **extra):
        return self.client.post(f"/api/v1/users/{user_id}/bookings",
                                json={"scheduleId": self.schedule["id"], "seatNumbers": seats, **extra})

    def test_health(self):
        """Test health endpoint"""
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_schedule_created_with_capacity(self):
        """Test schedule creation returns derived availability"""
        self.assertTrue(self.schedule["scheduleCode"].startswith("SCH"))
        self.assertEqual(self.schedule["capacity"], 3)
        self.assertEqual(self.schedule["availableSeats"], 3)

    def test_booking_round_trip(self):
        """Test create, fetch, seat map and cancel over HTTP"""
        r = self.book(self.user_a.id, [1, 2], passengers=[
            {"name": "Alice", "age": 34, "gender": "Female"},
            {"name": "Arun", "age": 8, "gender": "Male"},
        ], paymentMethod="card")
        self.assertEqual(r.status_code, 201, r.text)
        booking = r.json()
        self.assertEqual(booking["totalPrice"], 900.0)
        self.assertEqual(booking["paymentStatus"], "completed")
        self.assertEqual([p["seatNumber"] for p in booking["passengers"]], [1, 2])

        seats = self.client.get(f"/api/v1/schedules/{self.schedule['id']}/seats").json()
        self.assertEqual(seats["bookedSeats"], [1, 2])
        self.assertEqual(seats["availableSeats"], 1)

        r = self.client.get(f"/api/v1/bookings/ref/{booking['bookingReference']}")
        self.assertEqual(r.json()["id"], booking["id"])

        r = self.client.post(f"/api/v1/bookings/{booking['id']}/cancel", json={"userId": self.user_a.id})
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["status"], "cancelled")
        r = self.client.post(f"/api/v1/bookings/{booking['id']}/cancel")
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["detail"]["message"], "Booking is already cancelled")

    def test_error_mapping(self):
        """Test domain errors come back with their HTTP status and details"""
        self.assertEqual(self.book(self.user_a.id, [1]).status_code, 201)

        r = self.book(self.user_b.id, [1, 2])
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["detail"]["conflictingSeats"], [1])

        r = self.book(self.user_b.id, [4])
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["detail"]["invalidSeats"], [4])

        r = self.client.get("/api/v1/bookings/does-not-exist")
        self.assertEqual(r.status_code, 404)

        r = self.client.delete(f"/api/v1/schedules/{self.schedule['id']}")
        self.assertEqual(r.status_code, 409)

    def test_manifest_endpoints(self):
        """Test manifest read, boarding update and finalize"""
        self.book(self.user_a.id, [3])
        r = self.client.get(f"/api/v1/schedules/{self.schedule['id']}/manifest")
        self.assertEqual(r.status_code, 200, r.text)
        manifest = r.json()
        self.assertEqual(manifest["totalPassengers"], 1)
        pid = manifest["passengers"][0]["id"]

        r = self.client.patch(f"/api/v1/manifests/{manifest['id']}/passengers/{pid}", json={"boardingStatus": "boarded"})
        self.assertEqual(r.json()["boardingStatus"], "boarded")
        r = self.client.patch(f"/api/v1/manifests/{manifest['id']}/passengers/{pid}", json={"boardingStatus": "gone"})
        self.assertEqual(r.status_code, 422)

        r = self.client.post(f"/api/v1/manifests/{manifest['id']}/finalize")
        self.assertEqual(r.json()["manifestStatus"], "finalized")
        r = self.client.post(f"/api/v1/manifests/{manifest['id']}/complete")
        self.assertEqual(r.status_code, 400)

        r = self.client.post("/api/v1/manifests/sync")
        self.assertEqual(r.json()["updated"], 1)

    def test_ledger_audit_endpoints(self):
        """Test drift report and rebuild"""
        self.book(self.user_a.id, [2])
        drift = self.client.get(f"/api/v1/schedules/{self.schedule['id']}/ledger/drift").json()
        self.assertTrue(drift["isConsistent"])
        r = self.client.post(f"/api/v1/schedules/{self.schedule['id']}/ledger/rebuild")
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["availability"]["bookedSeats"], [2])

    def test_outbox_endpoints(self):
        """Test outbox status and manual processing"""
        self.book(self.user_a.id, [1])
        self.assertEqual(self.client.get("/api/v1/outbox").json()["sent"], 5)
        self.assertEqual(self.client.post("/api/v1/outbox/process").json()["processed"], 0)
