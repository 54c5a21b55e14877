from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triply.api.deps import get_db
from triply.services import outbox_service

router = APIRouter(tags=["outbox"])

@router.get("/outbox")
def outbox_status(db: Session = Depends(get_db)):
    return outbox_service.outbox_status(db)

@router.get("/outbox/events")
def list_outbox_events(status: str = "", bookingReference: str = "", limit: int = 100, db: Session = Depends(get_db)):
    events = outbox_service.list_events(db, status=status, booking_ref=bookingReference, limit=min(limit, 500))
    return {
        "items": [
            {
                "id": e.id,
                "kind": e.kind,
                "status": e.status,
                "attempts": e.attempts,
                "lastError": e.last_error,
                "bookingReference": e.related_booking_ref,
                "createdAt": e.created_at.isoformat() if e.created_at else None,
                "claimedAt": e.claimed_at.isoformat() if e.claimed_at else None,
                "processedAt": e.processed_at.isoformat() if e.processed_at else None,
            }
            for e in events
        ]
    }

@router.post("/outbox/process")
def process_outbox(limit: int = 50, db: Session = Depends(get_db)):
    return outbox_service.process_pending(db, limit=limit)
