import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, ProgrammingError
from triply.db.session import SessionLocal
from triply.services.manifest_service import sync_all_manifests
from triply.services.outbox_service import process_pending

logger = logging.getLogger(__name__)

# Postgres reports a missing table as ProgrammingError, SQLite as OperationalError
_MISSING_TABLES = (ProgrammingError, OperationalError)


def process_outbox(limit: int = 50) -> dict:
    """Deliver queued/failed outbox events (retry). Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_pending(db, limit=limit)
        except _MISSING_TABLES:
            db.rollback()
            logger.warning("outbox tables missing, skipping run")
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def sync_manifests() -> dict:
    """Regenerate every manifest that has confirmed bookings."""
    db: Session = SessionLocal()
    try:
        try:
            return sync_all_manifests(db)
        except _MISSING_TABLES:
            db.rollback()
            logger.warning("manifest tables missing, skipping sync")
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()
