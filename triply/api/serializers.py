from datetime import datetime
from sqlalchemy.orm import Session
from triply.models.booking import Booking
from triply.models.manifest import ManifestPassenger, PassengerManifest
from triply.models.route import Route
from triply.models.schedule import Schedule
from triply.models.user import User
from triply.services import booking_service, manifest_service
from triply.services.seat_ledger import SeatAvailability, available_seats


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def user_out(u: User) -> dict:
    return {"id": u.id, "email": u.email, "fullName": u.full_name, "phone": u.phone, "role": u.role,
            "isActive": u.is_active, "createdAt": _iso(u.created_at)}


def route_out(r: Route) -> dict:
    return {
        "id": r.id,
        "routeNumber": r.route_number,
        "origin": r.origin,
        "destination": r.destination,
        "distanceKm": r.distance_km,
        "durationMinutes": r.duration_minutes,
        "fare": float(r.fare) if r.fare is not None else None,
        "stops": list(r.stops or []),
        "description": r.description,
        "active": r.active,
    }


def schedule_out(db: Session, s: Schedule) -> dict:
    return {
        "id": s.id,
        "scheduleCode": s.schedule_code,
        "routeId": s.route_id,
        "journeyDate": s.journey_date.isoformat(),
        "departureTime": s.departure_time,
        "arrivalTime": s.arrival_time,
        "busNumber": s.bus_number,
        "driverName": s.driver_name,
        "capacity": s.capacity,
        "availableSeats": available_seats(db, s),
        "isActive": s.is_active,
    }


def availability_out(a: SeatAvailability) -> dict:
    return {
        "scheduleId": a.schedule_id,
        "capacity": a.capacity,
        "bookedSeats": a.booked_seats,
        "bookedCount": a.booked_count,
        "availableSeats": a.available_seats,
    }


def booking_out(db: Session, b: Booking) -> dict:
    seats = list(b.seat_numbers or [])
    pax = booking_service.get_passengers(db, b.id)
    return {
        "id": b.id,
        "bookingReference": b.booking_ref,
        "scheduleId": b.schedule_id,
        "userId": b.user_id,
        "seats": b.seats,
        "seatNumbers": seats,
        "status": b.status,
        "contactPhone": b.contact_phone,
        "totalPrice": float(b.total_price) if b.total_price is not None else None,
        "paymentMethod": b.payment_method,
        "paymentStatus": b.payment_status,
        "passengers": [
            {"name": p.name, "age": p.age, "gender": p.gender, "seatNumber": seats[i] if i < len(seats) else None}
            for i, p in enumerate(pax)
        ],
        "createdAt": _iso(b.created_at),
        "cancelledAt": _iso(b.cancelled_at),
    }


def manifest_passenger_out(p: ManifestPassenger) -> dict:
    return {
        "id": p.id,
        "bookingId": p.booking_id,
        "bookingReference": p.booking_ref,
        "userId": p.user_id,
        "passengerIndex": p.passenger_index,
        "name": p.name,
        "age": p.age,
        "gender": p.gender,
        "seatNumber": p.seat_number,
        "contactPhone": p.contact_phone,
        "boardingStatus": p.boarding_status,
    }


def manifest_out(db: Session, m: PassengerManifest, with_passengers: bool = True) -> dict:
    out = {
        "id": m.id,
        "scheduleId": m.schedule_id,
        "manifestStatus": m.manifest_status,
        "totalPassengers": m.total_passengers,
        "totalSeatsBooked": m.total_seats_booked,
        "finalizedAt": _iso(m.finalized_at),
        "departedAt": _iso(m.departed_at),
        "completedAt": _iso(m.completed_at),
        "regeneratedAt": _iso(m.regenerated_at),
        "passengers": [],
    }
    if with_passengers:
        out["passengers"] = [manifest_passenger_out(p) for p in manifest_service.get_passengers(db, m.id)]
    return out
