import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from triply.db.session import SessionLocal
from triply.models.route import Route
from triply.models.schedule import Schedule
from triply.services.route_service import create_route
from triply.services.schedule_service import create_schedule
from triply.services.user_service import create_user, get_user_by_email

logger = logging.getLogger(__name__)

ROUTES = [
    # route_number, origin, destination, fare, distance_km, duration_minutes, stops
    ("TR-101", "Pune", "Mumbai", Decimal("450.00"), 150, 180, ["Lonavala", "Panvel"]),
    ("TR-102", "Mumbai", "Pune", Decimal("450.00"), 150, 180, ["Panvel", "Lonavala"]),
    ("TR-201", "Pune", "Nashik", Decimal("520.00"), 210, 270, ["Sangamner"]),
]

# departure, arrival, bus
DAILY_TIMES = [("06:30", "09:30", "MH12-TR-1001"), ("18:00", "21:00", "MH12-TR-1002")]


def ensure_user(db: Session, email: str, role: str, name: str, phone: str = ""):
    if get_user_by_email(db, email):
        return
    create_user(db, email, full_name=name, phone=phone, role=role)


def run(db=None, days_ahead: int = 7):
    if db is None:
        db = SessionLocal()
    try:
        # If tables haven't been created yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("users table not found yet, skipping seed")
            return

        ensure_user(db, "admin@triply.local", "admin", "Admin")
        ensure_user(db, "rider@triply.local", "user", "Demo Rider", "+91 90000 00000")

        for number, origin, dest, fare, km, minutes, stops in ROUTES:
            route = db.query(Route).filter(Route.route_number == number).first()
            if not route:
                route = create_route(db, number, origin, dest, fare=fare, distance_km=km,
                                     duration_minutes=minutes, stops=stops)
            today = date.today()
            for i in range(days_ahead):
                d = today + timedelta(days=i)
                for dep, arr, bus in DAILY_TIMES:
                    exists = db.query(Schedule).filter_by(route_id=route.id, journey_date=d, departure_time=dep).first()
                    if exists:
                        continue
                    create_schedule(db, route.id, d, dep, arr, f"{bus}-{number[-3:]}")
        logger.info("seed complete")
    finally:
        db.close()


if __name__ == "__main__":
    from triply.core.logging import configure_logging
    configure_logging()
    run()
