from datetime import date, datetime
from decimal import Decimal
from sqlalchemy.orm import Session
from sidiq.modules.audit.models import AuditLog


def _json_safe(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value)
    return value


def snapshot(obj, fields) -> dict:
    """Ambil nilai kolom tertentu dari object ORM dalam bentuk yang aman untuk kolom JSON."""
    if obj is None:
        return None
    return {f: _json_safe(getattr(obj, f, None)) for f in fields}


def record(db: Session, actor_id, action: str, table_name: str, record_id=None,
           old_values=None, new_values=None):
    # Tidak commit di sini, ikut transaksi pemanggil
    entry = AuditLog(
        user_id=actor_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_values={k: _json_safe(v) for k, v in old_values.items()} if old_values else None,
        new_values={k: _json_safe(v) for k, v in new_values.items()} if new_values else None,
    )
    db.add(entry)
    return entry
