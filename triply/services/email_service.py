import logging
import smtplib
from email.message import EmailMessage
import requests
from sqlalchemy.orm import Session

from triply.core.config import settings
from triply.models.booking import Booking
from triply.models.passenger import Passenger
from triply.models.route import Route
from triply.models.schedule import Schedule
from triply.models.user import User

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, body: str):
    """Send email via SendGrid if configured, otherwise SMTP (MailHog recommended for local)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str):
    from_email = settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": from_email},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }

    r = requests.post(
        "https://api.sendgrid.com/v3/mail/send",
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def _context(db: Session, booking: Booking) -> tuple[User | None, Schedule | None, Route | None]:
    user = db.get(User, booking.user_id)
    schedule = db.get(Schedule, booking.schedule_id)
    route = db.get(Route, schedule.route_id) if schedule else None
    return user, schedule, route


def _trip_lines(schedule: Schedule | None, route: Route | None) -> list[str]:
    lines = []
    if route:
        lines.append(f"Route: {route.origin} -> {route.destination} ({route.route_number})")
    if schedule:
        lines.append(f"Date: {schedule.journey_date.isoformat()}")
        lines.append(f"Departure: {schedule.departure_time or 'TBA'}  Arrival: {schedule.arrival_time or 'TBA'}")
        lines.append(f"Bus: {schedule.bus_number}")
    return lines


def _passenger_lines(db: Session, booking: Booking) -> list[str]:
    passengers = (
        db.query(Passenger)
        .filter(Passenger.booking_id == booking.id)
        .order_by(Passenger.position.asc())
        .all()
    )
    seats = list(booking.seat_numbers or [])
    if not passengers:
        return [f"Seats: {', '.join(str(s) for s in seats)}"]
    out = ["Passengers:"]
    for i, p in enumerate(passengers):
        seat = seats[i] if i < len(seats) else "-"
        out.append(f"  {i + 1}. {p.name} ({p.age}, {p.gender}) - seat {seat}")
    return out


def build_confirmation(db: Session, booking: Booking) -> tuple[str, str, str] | None:
    """(to, subject, body) for the booker, or None when the booker has no email."""
    user, schedule, route = _context(db, booking)
    if not user or not user.email:
        return None
    total = f"Rs. {booking.total_price}" if booking.total_price is not None else "to be confirmed"
    body = "\n".join([
        f"Dear {user.full_name or 'Customer'},",
        "",
        "Your bus booking is confirmed.",
        "",
        f"Booking reference: {booking.booking_ref}",
        *_trip_lines(schedule, route),
        *_passenger_lines(db, booking),
        f"Total: {total}",
        f"Payment: {booking.payment_status}" + (f" ({booking.payment_method})" if booking.payment_method else ""),
        "",
        "Please arrive at the boarding point 15 minutes before departure.",
        f"{settings.APP_NAME}",
    ])
    return user.email, f"Booking confirmed - {booking.booking_ref}", body


def build_cancellation(db: Session, booking: Booking) -> tuple[str, str, str] | None:
    user, schedule, route = _context(db, booking)
    if not user or not user.email:
        return None
    body = "\n".join([
        f"Dear {user.full_name or 'Customer'},",
        "",
        f"Your booking {booking.booking_ref} has been cancelled and the seats released.",
        *_trip_lines(schedule, route),
        f"Seats: {', '.join(str(s) for s in booking.seat_numbers or [])}",
        "",
        f"{settings.APP_NAME}",
    ])
    return user.email, f"Booking cancelled - {booking.booking_ref}", body


def build_operator_notice(db: Session, booking: Booking, kind: str) -> tuple[str, str, str] | None:
    if not settings.OPERATOR_EMAIL:
        return None
    user, schedule, route = _context(db, booking)
    verb = "cancelled" if kind == "cancelled" else "booked"
    body = "\n".join([
        f"Booking {booking.booking_ref} was {verb}.",
        f"Customer: {user.full_name if user else booking.user_id} <{user.email if user else ''}>",
        f"Phone: {booking.contact_phone or (user.phone if user else '')}",
        *_trip_lines(schedule, route),
        *_passenger_lines(db, booking),
        f"Seats: {booking.seats}",
    ])
    return settings.OPERATOR_EMAIL, f"[{settings.APP_NAME}] Booking {verb}: {booking.booking_ref}", body


def _deliver(message: tuple[str, str, str] | None) -> bool:
    if message is None:
        return False
    to_email, subject, body = message
    send_email(to_email, subject, body)
    logger.info("sent %r to %s", subject, to_email)
    return True


def send_booking_confirmation(db: Session, booking: Booking) -> bool:
    return _deliver(build_confirmation(db, booking))


def send_booking_cancellation(db: Session, booking: Booking) -> bool:
    return _deliver(build_cancellation(db, booking))


def send_operator_notification(db: Session, booking: Booking, kind: str) -> bool:
    return _deliver(build_operator_notice(db, booking, kind))
