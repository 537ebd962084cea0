import uuid, json
from sqlalchemy import select
from sqlalchemy.orm import Session
from haulage.models.audit_log import AuditLog


def log_audit(db: Session, actor_id: str, action: str, entity_type: str, entity_id: str,
              details: dict | None = None) -> AuditLog:
    """Stage an audit entry in the caller's transaction; it lands with the caller's commit."""
    entry = AuditLog(
        id=str(uuid.uuid4()),
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        # Decimals and datetimes in details are stored as their string form
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    )
    db.add(entry)
    return entry


def audit_trail(db: Session, entity_type: str, entity_id: str) -> list[dict]:
    """Everything recorded against one entity, oldest first."""
    rows = db.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.asc())
    ).scalars()
    return [{
        "at": a.created_at.isoformat() if a.created_at else None,
        "action": a.action,
        "actor": a.actor_id,
        "details": json.loads(a.details_json or "{}"),
    } for a in rows]
