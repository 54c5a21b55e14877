import logging
import random
import string
import time
import uuid
from datetime import date, datetime, time as dtime
from sqlalchemy.orm import Session
from triply.core.config import settings
from triply.core.errors import ScheduleInUse, ScheduleNotFound
from triply.models.booking import Booking
from triply.models.manifest import ManifestPassenger, PassengerManifest
from triply.models.schedule import Schedule, ScheduleSeat
from triply.services.route_service import get_route

logger = logging.getLogger(__name__)

_B36 = string.digits + string.ascii_uppercase

def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _B36[r] + out
    return out or "0"

def make_schedule_code() -> str:
    return "SCH" + _base36(int(time.time() * 1000)) + "".join(random.choices(_B36, k=4))

def parse_hhmm(value: str) -> dtime | None:
    """'07:30' -> time(7, 30); empty or malformed -> None."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        hh, mm = value.split(":")[:2]
        return dtime(int(hh), int(mm))
    except ValueError:
        logger.warning("unparseable departure time %r", value)
        return None

def departure_datetime(schedule: Schedule) -> datetime:
    """Local departure moment; end of the journey day when no usable departure time is set."""
    dep = parse_hhmm(schedule.departure_time)
    if dep is None:
        return datetime.combine(schedule.journey_date, dtime(23, 59, 59, 999000))
    return datetime.combine(schedule.journey_date, dep)

def has_departed(schedule: Schedule, now: datetime | None = None) -> bool:
    return (now or datetime.now()) > departure_datetime(schedule)

def create_schedule(db: Session, route_id: str, journey_date: date, departure_time: str, arrival_time: str,
                    bus_number: str, driver_name: str = "", capacity: int | None = None, is_active: bool = True) -> Schedule:
    get_route(db, route_id)
    capacity = settings.DEFAULT_BUS_CAPACITY if capacity is None else int(capacity)
    if capacity < 1:
        raise ValueError("capacity must be >= 1")
    if departure_time and parse_hhmm(departure_time) is None:
        raise ValueError("departure_time must be HH:MM")

    # schedule_code must be unique
    for _ in range(6):
        code = make_schedule_code()
        if not db.query(Schedule).filter(Schedule.schedule_code == code).first():
            break
    else:
        raise ValueError("could not allocate schedule code")

    schedule = Schedule(
        id=str(uuid.uuid4()),
        schedule_code=code,
        route_id=route_id,
        journey_date=journey_date,
        departure_time=departure_time or "",
        arrival_time=arrival_time or "",
        bus_number=bus_number,
        driver_name=driver_name or "",
        capacity=capacity,
        is_active=is_active,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule

def get_schedule(db: Session, schedule_id: str) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if not schedule:
        raise ScheduleNotFound(schedule_id)
    return schedule

def list_schedules(db: Session, route_id: str = "", journey_date: date | None = None, active_only: bool = False) -> list[Schedule]:
    q = db.query(Schedule)
    if route_id:
        q = q.filter(Schedule.route_id == route_id)
    if journey_date:
        q = q.filter(Schedule.journey_date == journey_date)
    if active_only:
        q = q.filter(Schedule.is_active == True)  # noqa: E712
    return q.order_by(Schedule.journey_date.asc(), Schedule.departure_time.asc()).all()

def update_schedule(db: Session, schedule_id: str, **changes) -> Schedule:
    """Edit timetable fields. Capacity is fixed at creation and cannot be changed here."""
    schedule = get_schedule(db, schedule_id)
    allowed = {"journey_date", "departure_time", "arrival_time", "bus_number", "driver_name", "is_active"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"cannot update: {', '.join(sorted(unknown))}")
    if changes.get("departure_time") and parse_hhmm(changes["departure_time"]) is None:
        raise ValueError("departure_time must be HH:MM")
    for k, v in changes.items():
        if v is not None:
            setattr(schedule, k, v)
    db.commit()
    db.refresh(schedule)
    return schedule

def delete_schedule(db: Session, schedule_id: str) -> None:
    schedule = get_schedule(db, schedule_id)
    referenced = db.query(Booking).filter(Booking.schedule_id == schedule_id).count()
    if referenced:
        raise ScheduleInUse(f"Schedule has {referenced} booking(s) and cannot be deleted; deactivate it instead")
    db.query(ScheduleSeat).filter(ScheduleSeat.schedule_id == schedule_id).delete(synchronize_session=False)
    manifest = db.query(PassengerManifest).filter(PassengerManifest.schedule_id == schedule_id).first()
    if manifest:
        db.query(ManifestPassenger).filter(ManifestPassenger.manifest_id == manifest.id).delete(synchronize_session=False)
        db.delete(manifest)
    db.delete(schedule)
    db.commit()
