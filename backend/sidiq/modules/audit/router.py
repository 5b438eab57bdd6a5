from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sidiq.core.database import get_db
from sidiq.modules.audit.models import AuditLog
from sidiq.modules.auth.deps import get_current_superadmin
from sidiq.modules.auth.session import SessionContext

router = APIRouter(prefix="/audit-logs", tags=["Audit Logs"])


@router.get("/")
def read_audit_logs(table_name: Optional[str] = None, skip: int = 0, limit: int = 100,
                    db: Session = Depends(get_db), ctx: SessionContext = Depends(get_current_superadmin)):
    q = db.query(AuditLog)
    if table_name:
        q = q.filter(AuditLog.table_name == table_name)
    logs = q.order_by(AuditLog.timestamp.desc()).offset(skip).limit(limit).all()
    return [
        {
            "id": log.id,
            "user_id": log.user_id,
            "action": log.action,
            "table_name": log.table_name,
            "record_id": log.record_id,
            "old_values": log.old_values,
            "new_values": log.new_values,
            "timestamp": log.timestamp,
        }
        for log in logs
    ]
