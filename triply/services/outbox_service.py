"""Transactional outbox for booking side effects.

Emails and realtime notifications are written as ``OutboxEvent`` rows in the
same transaction as the booking change. After the commit the caller tries to
deliver them right away. Each delivery first claims its row (``sending``) so the
request and the worker never send the same event twice. Anything that fails
stays ``failed`` and the Celery
beat task ``process_outbox`` retries it until ``OUTBOX_MAX_ATTEMPTS`` is hit,
after which the event is parked as ``dead``.
"""
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable
from sqlalchemy import and_, func, or_, update
from sqlalchemy.orm import Session

from triply.core.config import settings
from triply.models.booking import Booking
from triply.models.outbox import OutboxEvent
from triply.services import email_service, realtime

logger = logging.getLogger(__name__)

EMAIL_BOOKING_CONFIRMATION = "email.booking_confirmation"
EMAIL_BOOKING_CANCELLATION = "email.booking_cancellation"
EMAIL_OPERATOR_NOTICE = "email.operator_notice"
REALTIME_PUBLISH = "realtime.publish"
MANIFEST_REGENERATE = "manifest.regenerate"

RETRYABLE = ("queued", "failed")


def enqueue(db: Session, kind: str, payload: dict, related_booking_ref: str = "") -> OutboxEvent:
    """Add an event to the caller's transaction (no commit)."""
    if kind not in HANDLERS:
        raise ValueError(f"unknown outbox event kind: {kind}")
    event = OutboxEvent(
        id=str(uuid.uuid4()),
        kind=kind,
        payload_json=json.dumps(payload, default=str),
        status="queued",
        attempts=0,
        last_error="",
        related_booking_ref=related_booking_ref,
    )
    db.add(event)
    return event


def _booking(db: Session, payload: dict) -> Booking:
    booking = db.get(Booking, payload["booking_id"])
    if not booking:
        raise LookupError(f"booking {payload['booking_id']} no longer exists")
    return booking


def _handle_confirmation(db: Session, payload: dict):
    email_service.send_booking_confirmation(db, _booking(db, payload))


def _handle_cancellation(db: Session, payload: dict):
    email_service.send_booking_cancellation(db, _booking(db, payload))


def _handle_operator_notice(db: Session, payload: dict):
    email_service.send_operator_notification(db, _booking(db, payload), payload.get("kind", "created"))


def _handle_realtime(db: Session, payload: dict):
    realtime.publish(payload["topic"], payload["event"], payload.get("data") or {})


def _handle_manifest_regenerate(db: Session, payload: dict):
    from triply.services.manifest_service import generate_for_schedule
    generate_for_schedule(db, payload["schedule_id"])


HANDLERS: dict[str, Callable[[Session, dict], None]] = {
    EMAIL_BOOKING_CONFIRMATION: _handle_confirmation,
    EMAIL_BOOKING_CANCELLATION: _handle_cancellation,
    EMAIL_OPERATOR_NOTICE: _handle_operator_notice,
    REALTIME_PUBLISH: _handle_realtime,
    MANIFEST_REGENERATE: _handle_manifest_regenerate,
}


def _deliver(db: Session, event: OutboxEvent) -> bool:
    try:
        HANDLERS[event.kind](db, json.loads(event.payload_json or "{}"))
    except Exception as e:
        # a handler may have left the session mid-transaction
        db.rollback()
        event = db.get(OutboxEvent, event.id)
        event.attempts = (event.attempts or 0) + 1
        event.last_error = f"{type(e).__name__}: {e}"[:2000]
        event.status = "dead" if event.attempts >= settings.OUTBOX_MAX_ATTEMPTS else "failed"
        db.commit()
        logger.warning("outbox %s %s attempt %s failed: %s", event.kind, event.id, event.attempts, event.last_error)
        return False
    event.attempts = (event.attempts or 0) + 1
    event.status = "sent"
    event.last_error = ""
    event.processed_at = datetime.now(timezone.utc)
    db.commit()
    return True


def _claimable(cutoff_sending: datetime):
    return or_(
        OutboxEvent.status.in_(RETRYABLE),
        and_(OutboxEvent.status == "sending", OutboxEvent.claimed_at < cutoff_sending),
    )


def _claim(db: Session, event_id: str) -> bool:
    """Mark one event as ``sending``. Only the caller whose update hits the row may deliver it."""
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=settings.OUTBOX_CLAIM_TIMEOUT_SECONDS)
    result = db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id, _claimable(cutoff))
        .values(status="sending", claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def dispatch(db: Session, event_ids: list[str]) -> dict:
    """Try to deliver the given events now. Never raises for a delivery failure.

    Events another worker has already claimed or delivered are skipped.
    """
    sent = failed = 0
    for eid in event_ids:
        if not _claim(db, eid):
            continue
        event = db.get(OutboxEvent, eid)
        db.refresh(event)
        if _deliver(db, event):
            sent += 1
        else:
            failed += 1
    return {"sent": sent, "failed": failed}


def process_pending(db: Session, limit: int | None = None, grace_seconds: int | None = None) -> dict:
    """Retry up to ``limit`` undelivered events, oldest first. Returns counts.

    Queued events younger than ``grace_seconds`` are left to the request that queued them.
    """
    limit = limit or settings.OUTBOX_BATCH_SIZE
    grace = settings.OUTBOX_QUEUED_GRACE_SECONDS if grace_seconds is None else grace_seconds
    now = datetime.now(timezone.utc)
    queued_before = now - timedelta(seconds=grace)
    pending_ids = [
        eid for (eid,) in db.query(OutboxEvent.id)
        .filter(
            or_(
                OutboxEvent.status == "failed",
                and_(OutboxEvent.status == "queued", OutboxEvent.created_at <= queued_before),
                and_(OutboxEvent.status == "sending",
                     OutboxEvent.claimed_at < now - timedelta(seconds=settings.OUTBOX_CLAIM_TIMEOUT_SECONDS)),
            )
        )
        .order_by(OutboxEvent.created_at.asc())
        .limit(limit)
        .all()
    ]
    result = dispatch(db, pending_ids)
    result["processed"] = len(pending_ids)
    if pending_ids:
        logger.info("outbox run: %s", result)
    return result


def outbox_status(db: Session) -> dict:
    counts = {s: 0 for s in ("queued", "sending", "sent", "failed", "dead")}
    for status, n in db.query(OutboxEvent.status, func.count(OutboxEvent.id)).group_by(OutboxEvent.status).all():
        counts[status] = n
    return counts


def list_events(db: Session, status: str = "", booking_ref: str = "", limit: int = 100) -> list[OutboxEvent]:
    q = db.query(OutboxEvent)
    if status:
        q = q.filter(OutboxEvent.status == status)
    if booking_ref:
        q = q.filter(OutboxEvent.related_booking_ref == booking_ref)
    return q.order_by(OutboxEvent.created_at.desc()).limit(limit).all()
