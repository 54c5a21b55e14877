"""Seat ledger: which seat numbers of a schedule are held.

The ledger is the only place seat state lives. One ``ScheduleSeat`` row per held
seat; free seats are derived as ``capacity - held``. Reservations lock the
schedule row and the ``(schedule_id, seat_number)`` unique constraint rejects
anything that slips past the lock.
"""
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from triply.core.errors import (
    CapacityExceeded,
    InvalidSeat,
    InvalidSeatSelection,
    ScheduleNotFound,
    SeatConflict,
)
from triply.models.booking import Booking, BOOKING_CONFIRMED
from triply.models.schedule import Schedule, ScheduleSeat

logger = logging.getLogger(__name__)


@dataclass
class SeatAvailability:
    schedule_id: str
    capacity: int
    booked_seats: list[int]

    @property
    def booked_count(self) -> int:
        return len(self.booked_seats)

    @property
    def available_seats(self) -> int:
        return max(self.capacity - len(self.booked_seats), 0)


@dataclass
class LedgerDrift:
    schedule_id: str
    held_without_booking: list[int] = field(default_factory=list)
    missing_from_ledger: list[int] = field(default_factory=list)
    double_booked: dict[int, list[str]] = field(default_factory=dict)  # seat -> booking refs

    @property
    def is_consistent(self) -> bool:
        return not (self.held_without_booking or self.missing_from_ledger or self.double_booked)


def held_seats(db: Session, schedule_id: str) -> list[int]:
    rows = db.execute(
        select(ScheduleSeat.seat_number).where(ScheduleSeat.schedule_id == schedule_id)
    ).scalars().all()
    return sorted(rows)


def available_seats(db: Session, schedule: Schedule) -> int:
    return max(schedule.capacity - len(held_seats(db, schedule.id)), 0)


def validate_seat_numbers(seat_numbers: list[int], capacity: int) -> list[int]:
    seats = [int(s) for s in seat_numbers]
    if not seats:
        raise InvalidSeatSelection("Please select at least one seat")
    if len(set(seats)) != len(seats):
        dupes = sorted({s for s in seats if seats.count(s) > 1})
        raise InvalidSeatSelection(f"Duplicate seat numbers: {', '.join(str(s) for s in dupes)}")
    invalid = [s for s in seats if s < 1 or s > capacity]
    if invalid:
        raise InvalidSeat(invalid, capacity)
    return seats


def _lock_schedule(db: Session, schedule_id: str) -> Schedule:
    # Row lock serializes concurrent reservations on the same schedule (no-op on SQLite)
    schedule = db.execute(
        select(Schedule).where(Schedule.id == schedule_id).with_for_update()
    ).scalar_one_or_none()
    if not schedule:
        raise ScheduleNotFound(schedule_id)
    return schedule


def reserve(db: Session, schedule_id: str, seat_numbers: list[int], booking_id: str | None = None) -> SeatAvailability:
    """Hold ``seat_numbers`` on the schedule. Flushes but does not commit.

    Raises InvalidSeat, SeatConflict or CapacityExceeded without writing anything.
    """
    schedule = _lock_schedule(db, schedule_id)
    seats = validate_seat_numbers(seat_numbers, schedule.capacity)

    current = held_seats(db, schedule_id)
    overlap = sorted(set(current) & set(seats))
    if overlap:
        raise SeatConflict(overlap)
    free = max(schedule.capacity - len(current), 0)
    if free < len(seats):
        raise CapacityExceeded(free, len(seats))

    for n in seats:
        db.add(ScheduleSeat(
            id=str(uuid.uuid4()),
            schedule_id=schedule_id,
            seat_number=n,
            booking_id=booking_id,
        ))
    try:
        db.flush()
    except IntegrityError:
        # Another writer took one of the seats between our check and the insert
        db.rollback()
        taken = sorted(set(held_seats(db, schedule_id)) & set(seats))
        logger.warning("seat race on schedule %s for seats %s", schedule_id, seats)
        raise SeatConflict(taken or seats)

    return SeatAvailability(schedule_id, schedule.capacity, sorted(current + seats))


def release(db: Session, schedule_id: str, seat_numbers: list[int], booking_id: str | None = None) -> SeatAvailability:
    """Free ``seat_numbers``. Seats that are not held are ignored. Flushes but does not commit.

    With ``booking_id`` only seats held by that booking are released.
    """
    schedule = _lock_schedule(db, schedule_id)
    wanted = {int(s) for s in seat_numbers}
    q = db.query(ScheduleSeat).filter(
        ScheduleSeat.schedule_id == schedule_id,
        ScheduleSeat.seat_number.in_(sorted(wanted)),
    )
    if booking_id:
        q = q.filter((ScheduleSeat.booking_id == booking_id) | (ScheduleSeat.booking_id.is_(None)))
    rows = q.all()
    for row in rows:
        db.delete(row)
    db.flush()

    missing = wanted - {r.seat_number for r in rows}
    if missing:
        logger.info("release on schedule %s ignored seats not held: %s", schedule_id, sorted(missing))
    return SeatAvailability(schedule_id, schedule.capacity, held_seats(db, schedule_id))


def _confirmed_seat_claims(db: Session, schedule_id: str) -> dict[int, list[Booking]]:
    claims: dict[int, list[Booking]] = defaultdict(list)
    bookings = (
        db.query(Booking)
        .filter(Booking.schedule_id == schedule_id, Booking.status == BOOKING_CONFIRMED)
        .order_by(Booking.created_at.asc(), Booking.id.asc())
        .all()
    )
    for b in bookings:
        for s in b.seat_numbers or []:
            try:
                claims[int(s)].append(b)
            except (TypeError, ValueError):
                logger.warning("booking %s has a non-numeric seat %r", b.booking_ref, s)
    return claims


def seat_availability(db: Session, schedule_id: str) -> SeatAvailability:
    """Seat map for display: ledger seats merged with seats of confirmed bookings."""
    schedule = db.get(Schedule, schedule_id)
    if not schedule:
        raise ScheduleNotFound(schedule_id)
    booked = set(held_seats(db, schedule_id)) | set(_confirmed_seat_claims(db, schedule_id))
    return SeatAvailability(schedule_id, schedule.capacity, sorted(booked))


def find_drift(db: Session, schedule_id: str) -> LedgerDrift:
    if not db.get(Schedule, schedule_id):
        raise ScheduleNotFound(schedule_id)
    ledger = set(held_seats(db, schedule_id))
    claims = _confirmed_seat_claims(db, schedule_id)
    return LedgerDrift(
        schedule_id=schedule_id,
        held_without_booking=sorted(ledger - set(claims)),
        missing_from_ledger=sorted(set(claims) - ledger),
        double_booked={s: [b.booking_ref for b in bs] for s, bs in sorted(claims.items()) if len(bs) > 1},
    )


def rebuild_ledger(db: Session, schedule_id: str) -> LedgerDrift:
    """Reset the ledger from confirmed bookings. Returns the drift found before the rebuild.

    A seat claimed twice stays with the earliest booking. Does not commit.
    """
    drift = find_drift(db, schedule_id)
    schedule = _lock_schedule(db, schedule_id)
    db.query(ScheduleSeat).filter(ScheduleSeat.schedule_id == schedule_id).delete(synchronize_session=False)
    db.flush()
    for seat, bookings in sorted(_confirmed_seat_claims(db, schedule_id).items()):
        if seat < 1 or seat > schedule.capacity:
            logger.warning("schedule %s: seat %s of booking %s is outside capacity %s, not restored",
                           schedule_id, seat, bookings[0].booking_ref, schedule.capacity)
            continue
        db.add(ScheduleSeat(
            id=str(uuid.uuid4()),
            schedule_id=schedule_id,
            seat_number=seat,
            booking_id=bookings[0].id,
        ))
    db.flush()
    if not drift.is_consistent:
        logger.warning("rebuilt seat ledger of schedule %s: %s", schedule_id, drift)
    return drift
