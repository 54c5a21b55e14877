import uuid, json
from sqlalchemy.orm import Session
from triply.models.audit_log import AuditLog

def log_audit(db: Session, action: str, entity_type: str, entity_id: str, details: dict | None = None, actor_user_id: str = ""):
    """Record an audit entry in the caller's transaction (no commit)."""
    entry = AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id or "",
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    )
    db.add(entry)
    return entry

def list_audit(db: Session, entity_type: str, entity_id: str) -> list[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.asc())
        .all()
    )
