"""Passenger manifests.

A manifest is a projection of the confirmed bookings of one schedule. It is
rebuilt on every booking change; the only state it owns is each passenger's
boarding status (and the manifest's own status), which survives a rebuild
because passenger slots are matched on ``(booking_id, passenger_index)``.
"""
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from sqlalchemy import update
from sqlalchemy.orm import Session
from triply.core.errors import InvalidManifestState, ManifestNotFound, PassengerNotFound, ScheduleNotFound
from triply.models.booking import Booking, BOOKING_CONFIRMED
from triply.models.manifest import BOARDING_STATUSES, ManifestPassenger, PassengerManifest
from triply.models.passenger import Passenger
from triply.models.schedule import Schedule
from triply.models.user import User
from triply.services.audit_service import log_audit
from triply.services.schedule_service import has_departed

logger = logging.getLogger(__name__)

LEGACY_AGE = 0
LEGACY_GENDER = "Other"


@dataclass
class _Slot:
    booking: Booking
    index: int
    name: str
    age: int
    gender: str
    seat_number: int | None
    contact_phone: str


def _slots_for_booking(booking: Booking, passengers: list[Passenger], owner: User | None) -> list[_Slot]:
    seat_numbers = list(booking.seat_numbers or [])
    phone = booking.contact_phone or (owner.phone if owner else "")

    def seat(i: int) -> int | None:
        return int(seat_numbers[i]) if i < len(seat_numbers) else None

    if passengers:
        return [
            _Slot(booking, i, p.name, p.age, p.gender, seat(i), phone)
            for i, p in enumerate(passengers)
        ]
    # Legacy booking: only a seat count, one slot per seat under the booker's name
    name = (owner.full_name if owner and owner.full_name else "") or booking.legacy_passenger_names or "Passenger"
    return [
        _Slot(booking, i, name, LEGACY_AGE, LEGACY_GENDER, seat(i), phone)
        for i in range(booking.seats or 0)
    ]


def get_passengers(db: Session, manifest_id: str) -> list[ManifestPassenger]:
    return (
        db.query(ManifestPassenger)
        .filter(ManifestPassenger.manifest_id == manifest_id)
        .order_by(ManifestPassenger.position.asc())
        .all()
    )


def generate_for_schedule(db: Session, schedule_id: str, created_by: str = "") -> PassengerManifest:
    """Rebuild (or create) the manifest of a schedule from its confirmed bookings and commit."""
    if not db.get(Schedule, schedule_id):
        raise ScheduleNotFound(schedule_id)

    bookings = (
        db.query(Booking)
        .filter(Booking.schedule_id == schedule_id, Booking.status == BOOKING_CONFIRMED)
        .order_by(Booking.created_at.asc(), Booking.id.asc())
        .all()
    )
    booking_ids = [b.id for b in bookings]
    pax_by_booking: dict[str, list[Passenger]] = defaultdict(list)
    if booking_ids:
        for p in (
            db.query(Passenger)
            .filter(Passenger.booking_id.in_(booking_ids))
            .order_by(Passenger.booking_id, Passenger.position.asc())
            .all()
        ):
            pax_by_booking[p.booking_id].append(p)
    owner_ids = {b.user_id for b in bookings}
    owners = {u.id: u for u in db.query(User).filter(User.id.in_(sorted(owner_ids))).all()} if owner_ids else {}

    manifest = db.query(PassengerManifest).filter(PassengerManifest.schedule_id == schedule_id).first()
    created = manifest is None
    if created:
        manifest = PassengerManifest(
            id=str(uuid.uuid4()),
            schedule_id=schedule_id,
            manifest_status="draft",
            created_by=created_by,
        )
        db.add(manifest)
        existing: dict[tuple[str, int], ManifestPassenger] = {}
    else:
        existing = {(p.booking_id, p.passenger_index): p for p in get_passengers(db, manifest.id)}

    kept: set[tuple[str, int]] = set()
    position = 0
    total_seats = 0
    for booking in bookings:
        total_seats += booking.seats or 0
        owner = owners.get(booking.user_id)
        if owner is None:
            logger.warning("booking %s references missing user %s", booking.booking_ref, booking.user_id)
        for slot in _slots_for_booking(booking, pax_by_booking.get(booking.id, []), owner):
            key = (booking.id, slot.index)
            row = existing.get(key)
            if row is None:
                row = ManifestPassenger(
                    id=str(uuid.uuid4()),
                    manifest_id=manifest.id,
                    booking_id=booking.id,
                    passenger_index=slot.index,
                    boarding_status="not-boarded",
                )
                db.add(row)
            row.position = position
            row.user_id = booking.user_id
            row.booking_ref = booking.booking_ref
            row.name = slot.name
            row.age = slot.age
            row.gender = slot.gender
            row.seat_number = slot.seat_number
            row.contact_phone = slot.contact_phone
            kept.add(key)
            position += 1

    for key, row in existing.items():
        if key not in kept:
            db.delete(row)

    manifest.total_passengers = position
    manifest.total_seats_booked = total_seats
    manifest.regenerated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(manifest)
    logger.info("manifest %s for schedule %s %s: %s passengers, %s seats",
                manifest.id, schedule_id, "created" if created else "regenerated",
                manifest.total_passengers, manifest.total_seats_booked)
    return manifest


def get_manifest(db: Session, manifest_id: str) -> PassengerManifest:
    manifest = db.get(PassengerManifest, manifest_id)
    if not manifest:
        raise ManifestNotFound(manifest_id)
    return manifest


def find_manifest_for_schedule(db: Session, schedule_id: str) -> PassengerManifest | None:
    return db.query(PassengerManifest).filter(PassengerManifest.schedule_id == schedule_id).first()


def list_manifests(db: Session, status: str = "") -> list[PassengerManifest]:
    q = db.query(PassengerManifest)
    if status:
        q = q.filter(PassengerManifest.manifest_status == status)
    return q.order_by(PassengerManifest.created_at.desc()).all()


def _schedule_of(db: Session, manifest: PassengerManifest) -> Schedule | None:
    return db.get(Schedule, manifest.schedule_id)


def _ensure_not_departed(db: Session, manifest: PassengerManifest, action: str, now: datetime | None) -> None:
    schedule = _schedule_of(db, manifest)
    if schedule and has_departed(schedule, now):
        raise InvalidManifestState(
            f"Cannot {action} a manifest that has already departed or whose journey date is in the past."
        )


def finalize_manifest(db: Session, manifest_id: str, actor_user_id: str = "", now: datetime | None = None) -> PassengerManifest:
    manifest = get_manifest(db, manifest_id)
    _ensure_not_departed(db, manifest, "finalize", now)
    if manifest.manifest_status != "draft":
        raise InvalidManifestState(f"Only a draft manifest can be finalized (status is {manifest.manifest_status})")
    manifest.manifest_status = "finalized"
    manifest.finalized_at = datetime.now(timezone.utc)
    log_audit(db, "manifest.finalize", "manifest", manifest.id, {"scheduleId": manifest.schedule_id}, actor_user_id)
    db.commit()
    db.refresh(manifest)
    return manifest


def mark_departed(db: Session, manifest_id: str, actor_user_id: str = "", now: datetime | None = None) -> PassengerManifest:
    manifest = get_manifest(db, manifest_id)
    _ensure_not_departed(db, manifest, "mark as departed", now)
    if manifest.manifest_status != "finalized":
        raise InvalidManifestState(f"Only a finalized manifest can be marked departed (status is {manifest.manifest_status})")
    manifest.manifest_status = "departed"
    manifest.departed_at = datetime.now(timezone.utc)
    log_audit(db, "manifest.depart", "manifest", manifest.id, {"scheduleId": manifest.schedule_id}, actor_user_id)
    db.commit()
    db.refresh(manifest)
    return manifest


def mark_completed(db: Session, manifest_id: str, actor_user_id: str = "") -> PassengerManifest:
    """Administrative close of a departed run. Nothing in the booking flow calls this."""
    manifest = get_manifest(db, manifest_id)
    if manifest.manifest_status != "departed":
        raise InvalidManifestState(f"Only a departed manifest can be completed (status is {manifest.manifest_status})")
    manifest.manifest_status = "completed"
    manifest.completed_at = datetime.now(timezone.utc)
    log_audit(db, "manifest.complete", "manifest", manifest.id, {"scheduleId": manifest.schedule_id}, actor_user_id)
    db.commit()
    db.refresh(manifest)
    return manifest


def update_passenger_boarding_status(db: Session, manifest_id: str, passenger_id: str, boarding_status: str,
                                     now: datetime | None = None) -> ManifestPassenger:
    if boarding_status not in BOARDING_STATUSES:
        raise ValueError(f"boarding status must be one of {', '.join(BOARDING_STATUSES)}")
    manifest = get_manifest(db, manifest_id)
    passenger = db.get(ManifestPassenger, passenger_id)
    if not passenger or passenger.manifest_id != manifest.id:
        raise PassengerNotFound(passenger_id)
    _ensure_not_departed(db, manifest, "modify", now)

    # Targeted row update so a concurrent regeneration does not overwrite the whole roster
    db.execute(
        update(ManifestPassenger)
        .where(ManifestPassenger.id == passenger_id, ManifestPassenger.manifest_id == manifest_id)
        .values(boarding_status=boarding_status)
    )
    db.commit()
    db.refresh(passenger)
    logger.info("passenger %s (%s) on manifest %s is now %s", passenger.id, passenger.name, manifest_id, boarding_status)
    return passenger


def sync_all_manifests(db: Session) -> dict:
    """Regenerate the manifest of every schedule that has confirmed bookings."""
    schedule_ids = [
        sid for (sid,) in db.query(Booking.schedule_id)
        .filter(Booking.status == BOOKING_CONFIRMED)
        .distinct()
        .all()
    ]
    created = updated = failed = 0
    for sid in schedule_ids:
        existed = find_manifest_for_schedule(db, sid) is not None
        try:
            generate_for_schedule(db, sid)
        except Exception:
            db.rollback()
            failed += 1
            logger.exception("manifest sync failed for schedule %s", sid)
            continue
        if existed:
            updated += 1
        else:
            created += 1
    summary = {"schedules": len(schedule_ids), "created": created, "updated": updated, "failed": failed}
    logger.info("manifest sync finished: %s", summary)
    return summary
