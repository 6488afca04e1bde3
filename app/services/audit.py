# app/services/audit.py
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app import models, schemas
from app.services import _common
from app.services._common import Result


def audit_entry_for(
    obj: models.Base,
    action: models.AuditAction,
    *,
    old_values: Optional[Any] = None,
    new_values: Optional[Any] = None,
    user_id: Optional[int] = None,
) -> schemas.AuditLogCreate:
    """Builds an entry pointing at a persisted row via (table_name, record_id)."""
    return schemas.AuditLogCreate(
        table_name=obj.__table__.name,
        record_id=_common.primary_key_of(obj),
        action_type=models.AuditAction(action),
        user_id=user_id,
        old_values=old_values,
        new_values=new_values,
    )


def record_audit(db: Session, entry: schemas.AuditLogCreate) -> Result:
    # Append-only; no update or delete counterpart
    return _common.create(db, models.AuditLog, entry.model_dump())


def list_audit(
    db: Session,
    *,
    table_name: Optional[str] = None,
    record_id: Optional[int] = None,
    action: Optional[models.AuditAction] = None,
) -> List[models.AuditLog]:
    stmt = select(models.AuditLog)
    if table_name is not None:
        stmt = stmt.where(models.AuditLog.table_name == table_name)
    if record_id is not None:
        stmt = stmt.where(models.AuditLog.record_id == record_id)
    if action is not None:
        stmt = stmt.where(models.AuditLog.action_type == action)
    return list(db.scalars(stmt.order_by(models.AuditLog.log_id)))
