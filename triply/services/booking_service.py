"""Booking orchestration.

Seat ledger rows, the booking record and its outbox events are committed in one
transaction; that is the only strictly consistent part of a booking. The
manifest refresh and the side effects (e-mail, realtime) run after the commit
and never undo it.
"""
import logging
import random
import string
import uuid
from collections import OrderedDict
from datetime import date, datetime, timezone
from sqlalchemy.orm import Session

from triply.core.errors import (
    AlreadyCancelled,
    BookingNotFound,
    InvalidSeatSelection,
    ScheduleUnavailable,
    UserNotFound,
)
from triply.models.booking import Booking, BOOKING_CANCELLED, BOOKING_CONFIRMED, PAYMENT_METHODS
from triply.models.passenger import Passenger
from triply.models.user import User
from triply.services import outbox_service, seat_ledger
from triply.services.audit_service import log_audit
from triply.services.manifest_service import generate_for_schedule
from triply.services.realtime import ADMINS_TOPIC, schedule_topic, user_topic
from triply.services.route_service import get_fare
from triply.services.schedule_service import get_schedule

logger = logging.getLogger(__name__)

GENDERS = ("Male", "Female", "Other")


def make_booking_ref() -> str:
    return "BK-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


def _clean_passengers(passengers: list[dict]) -> list[dict]:
    out = []
    for i, p in enumerate(passengers):
        name = str(p.get("name") or "").strip()
        if not name:
            raise InvalidSeatSelection(f"Passenger {i + 1}: name is required")
        try:
            age = int(p.get("age"))
        except (TypeError, ValueError):
            raise InvalidSeatSelection(f"Passenger {i + 1}: age must be a number")
        if age < 0 or age > 120:
            raise InvalidSeatSelection(f"Passenger {i + 1}: age must be between 0 and 120")
        gender = p.get("gender") or "Other"
        if gender not in GENDERS:
            raise InvalidSeatSelection(f"Passenger {i + 1}: gender must be one of {', '.join(GENDERS)}")
        out.append({"name": name, "age": age, "gender": gender})
    return out


def _booking_event_data(booking: Booking) -> dict:
    return {
        "bookingId": booking.id,
        "bookingReference": booking.booking_ref,
        "scheduleId": booking.schedule_id,
        "userId": booking.user_id,
        "seats": booking.seats,
        "seatNumbers": list(booking.seat_numbers or []),
        "status": booking.status,
        "totalPrice": booking.total_price,
    }


def _enqueue_side_effects(db: Session, booking: Booking, availability: seat_ledger.SeatAvailability,
                          kind: str) -> list[str]:
    """kind is "created" or "cancelled"."""
    ref = booking.booking_ref
    email_kind = (
        outbox_service.EMAIL_BOOKING_CONFIRMATION if kind == "created"
        else outbox_service.EMAIL_BOOKING_CANCELLATION
    )
    event_name = "bookingCreated" if kind == "created" else "bookingCancelled"
    seats_data = {
        "scheduleId": booking.schedule_id,
        "bookedSeats": availability.booked_seats,
        "availableSeats": availability.available_seats,
    }
    events = [
        outbox_service.enqueue(db, email_kind, {"booking_id": booking.id}, ref),
        outbox_service.enqueue(db, outbox_service.EMAIL_OPERATOR_NOTICE, {"booking_id": booking.id, "kind": kind}, ref),
        outbox_service.enqueue(db, outbox_service.REALTIME_PUBLISH,
                               {"topic": schedule_topic(booking.schedule_id), "event": "seatsUpdated", "data": seats_data}, ref),
        outbox_service.enqueue(db, outbox_service.REALTIME_PUBLISH,
                               {"topic": ADMINS_TOPIC, "event": event_name, "data": _booking_event_data(booking)}, ref),
        outbox_service.enqueue(db, outbox_service.REALTIME_PUBLISH,
                               {"topic": user_topic(booking.user_id), "event": event_name, "data": _booking_event_data(booking)}, ref),
    ]
    return [e.id for e in events]


def _refresh_manifest(db: Session, schedule_id: str, booking_ref: str) -> None:
    """Regenerate the schedule's manifest; on failure leave a retry in the outbox."""
    try:
        generate_for_schedule(db, schedule_id)
        return
    except Exception:
        db.rollback()
        logger.exception("manifest refresh failed for schedule %s after %s", schedule_id, booking_ref)
    try:
        outbox_service.enqueue(db, outbox_service.MANIFEST_REGENERATE, {"schedule_id": schedule_id}, booking_ref)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("could not queue manifest refresh for schedule %s", schedule_id)


def _dispatch(db: Session, event_ids: list[str], booking_ref: str) -> None:
    try:
        result = outbox_service.dispatch(db, event_ids)
    except Exception:
        db.rollback()
        logger.exception("side effects for %s left to the outbox worker", booking_ref)
        return
    if result["failed"]:
        logger.warning("%s of %s side effects for %s failed, will retry", result["failed"], len(event_ids), booking_ref)


def create_booking(db: Session, user_id: str, schedule_id: str, seat_numbers: list[int],
                   passengers: list[dict] | None = None, seats: int | None = None, contact_phone: str = "",
                   payment_method: str | None = None, legacy_passenger_names: str = "") -> Booking:
    schedule = get_schedule(db, schedule_id)
    if not schedule.is_active:
        raise ScheduleUnavailable("Schedule is not available for booking")
    user = db.get(User, user_id)
    if not user:
        raise UserNotFound(user_id)

    seat_numbers = [int(s) for s in seat_numbers or []]
    seat_count = len(seat_numbers) if seats is None else int(seats)
    if seat_count < 1:
        raise InvalidSeatSelection("Please select at least one seat")
    if len(seat_numbers) != seat_count:
        raise InvalidSeatSelection(f"Please select exactly {seat_count} seat(s)")
    cleaned = _clean_passengers(passengers) if passengers else []
    if cleaned and len(cleaned) != seat_count:
        raise InvalidSeatSelection(f"Passenger details must be given for all {seat_count} seat(s)")
    if payment_method and payment_method not in PAYMENT_METHODS:
        raise InvalidSeatSelection(f"payment method must be one of {', '.join(PAYMENT_METHODS)}")

    booking_id = str(uuid.uuid4())
    availability = seat_ledger.reserve(db, schedule_id, seat_numbers, booking_id=booking_id)

    fare = get_fare(db, schedule.route_id)
    total_price = fare * seat_count if fare is not None else None

    # booking_ref must be unique
    for _ in range(10):
        ref = make_booking_ref()
        if not db.query(Booking).filter(Booking.booking_ref == ref).first():
            break
    else:
        db.rollback()
        raise ValueError("could not allocate booking reference")

    booking = Booking(
        id=booking_id,
        booking_ref=ref,
        schedule_id=schedule_id,
        user_id=user_id,
        seats=seat_count,
        seat_numbers=seat_numbers,
        status=BOOKING_CONFIRMED,
        contact_phone=contact_phone or user.phone or "",
        total_price=total_price,
        payment_method=payment_method,
        # Simulated payment: a chosen method counts as paid
        payment_status="completed" if payment_method else "pending",
        legacy_passenger_names=legacy_passenger_names or "",
    )
    db.add(booking)
    for i, p in enumerate(cleaned):
        db.add(Passenger(
            id=str(uuid.uuid4()),
            booking_id=booking_id,
            position=i,
            name=p["name"],
            age=p["age"],
            gender=p["gender"],
        ))
    log_audit(db, "booking.create", "booking", booking_id,
              {"bookingReference": ref, "scheduleId": schedule_id, "seatNumbers": seat_numbers}, user_id)
    event_ids = _enqueue_side_effects(db, booking, availability, "created")
    db.commit()
    db.refresh(booking)
    logger.info("booking %s confirmed: schedule %s seats %s", ref, schedule_id, seat_numbers)

    _refresh_manifest(db, schedule_id, ref)
    _dispatch(db, event_ids, ref)
    db.refresh(booking)
    return booking


def cancel_booking(db: Session, booking_id: str, user_id: str | None = None, actor_user_id: str = "") -> Booking:
    """Cancel a booking and release its seats. With ``user_id`` the booking must belong to that user."""
    booking = db.get(Booking, booking_id)
    if not booking or (user_id and booking.user_id != user_id):
        raise BookingNotFound(booking_id)
    if booking.status == BOOKING_CANCELLED:
        raise AlreadyCancelled(booking.booking_ref)

    booking.status = BOOKING_CANCELLED
    booking.cancelled_at = datetime.now(timezone.utc)
    availability = seat_ledger.release(db, booking.schedule_id, list(booking.seat_numbers or []), booking_id=booking.id)
    log_audit(db, "booking.cancel", "booking", booking.id,
              {"bookingReference": booking.booking_ref, "seatNumbers": booking.seat_numbers},
              actor_user_id or user_id or "")
    event_ids = _enqueue_side_effects(db, booking, availability, "cancelled")
    db.commit()
    db.refresh(booking)
    ref, schedule_id = booking.booking_ref, booking.schedule_id
    logger.info("booking %s cancelled, seats %s released", ref, booking.seat_numbers)

    _refresh_manifest(db, schedule_id, ref)
    _dispatch(db, event_ids, ref)
    db.refresh(booking)
    return booking


def get_booking(db: Session, booking_id: str) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound(booking_id)
    return booking


def get_booking_by_reference(db: Session, booking_ref: str) -> Booking:
    booking = db.query(Booking).filter(Booking.booking_ref == booking_ref.strip().upper()).first()
    if not booking:
        raise BookingNotFound(booking_ref)
    return booking


def get_passengers(db: Session, booking_id: str) -> list[Passenger]:
    return (
        db.query(Passenger)
        .filter(Passenger.booking_id == booking_id)
        .order_by(Passenger.position.asc())
        .all()
    )


def list_user_bookings(db: Session, user_id: str) -> list[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc())
        .all()
    )


def list_bookings(db: Session, schedule_id: str = "", status: str = "") -> list[Booking]:
    q = db.query(Booking)
    if schedule_id:
        q = q.filter(Booking.schedule_id == schedule_id)
    if status:
        q = q.filter(Booking.status == status)
    return q.order_by(Booking.created_at.desc()).all()


def _month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def booking_statistics(db: Session, today: date | None = None) -> dict:
    """Totals by status plus bookings per month for the last 12 months (oldest first)."""
    today = today or date.today()
    months: OrderedDict[str, int] = OrderedDict()
    y, m = today.year, today.month
    keys = []
    for _ in range(12):
        keys.append(f"{y:04d}-{m:02d}")
        m -= 1
        if m == 0:
            y, m = y - 1, 12
    for k in reversed(keys):
        months[k] = 0

    total = confirmed = cancelled = 0
    for status, created_at in db.query(Booking.status, Booking.created_at).all():
        total += 1
        if status == BOOKING_CONFIRMED:
            confirmed += 1
        elif status == BOOKING_CANCELLED:
            cancelled += 1
        if created_at:
            key = _month_key(created_at)
            if key in months:
                months[key] += 1
    return {
        "totalBookings": total,
        "confirmedBookings": confirmed,
        "cancelledBookings": cancelled,
        "monthlyBookings": [{"month": k, "count": v} for k, v in months.items()],
    }
