"""
Backup / restore / reset database (khusus superadmin).

Format backup: satu file zip berisi meta.json + satu file json per tabel.
"""
import os
import json
import logging
import zipfile
from datetime import date, datetime

from sqlalchemy import Date, DateTime
from sqlalchemy.orm import Session
from dotenv import load_dotenv

from sidiq.modules.users.models import User
from sidiq.modules.iuran.models import IuranSubmission, compute_total
from sidiq.modules.audit.models import AuditLog
from sidiq.modules.auth.session import clear_other_sessions

load_dotenv()

logger = logging.getLogger(__name__)

BACKUP_ROOT = os.getenv("BACKUP_ROOT", os.path.join(os.getcwd(), "backups"))
BACKUP_VERSION = 1

# Urutan penting: parent dulu waktu insert, anak dulu waktu delete
TABLES = [
    ("users", User),
    ("iuran_submissions", IuranSubmission),
    ("audit_logs", AuditLog),
]


class BackupError(Exception):
    pass


def ensure_backup_root():
    os.makedirs(BACKUP_ROOT, exist_ok=True)
    return BACKUP_ROOT


def backup_path(filename: str) -> str:
    # Tolak path traversal, file backup harus langsung di BACKUP_ROOT
    if not filename or os.path.basename(filename) != filename or not filename.endswith(".zip"):
        raise BackupError(f"Nama file backup tidak valid: {filename}")
    return os.path.join(ensure_backup_root(), filename)


def new_backup_filename(now: datetime = None) -> str:
    now = now or datetime.now()
    return f"sidiq_{now.strftime('%Y%m%d_%H%M%S')}.zip"


def _dump_value(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _load_value(column, value):
    if value is None:
        return None
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value)
    if isinstance(column.type, Date):
        return date.fromisoformat(value)
    return value


def dump_table(db: Session, model) -> list:
    columns = model.__table__.columns
    return [
        {c.name: _dump_value(getattr(obj, c.key)) for c in columns}
        for obj in db.query(model).all()
    ]


def create_backup(db: Session, filepath: str = None) -> str:
    filepath = filepath or backup_path(new_backup_filename())
    counts = {}

    with zipfile.ZipFile(filepath, 'w', zipfile.ZIP_DEFLATED) as zipf:
        for name, model in TABLES:
            rows = dump_table(db, model)
            counts[name] = len(rows)
            zipf.writestr(f"{name}.json", json.dumps(rows, ensure_ascii=False, indent=2))

        zipf.writestr("meta.json", json.dumps({
            "version": BACKUP_VERSION,
            "created_at": datetime.utcnow().isoformat(),
            "counts": counts,
        }, indent=2))

    logger.info("Backup complete: %s %s", filepath, counts)
    return filepath


def read_backup(source) -> dict:
    """source: path file atau file-like (upload). Return {nama_tabel: [rows]}."""
    try:
        with zipfile.ZipFile(source) as zipf:
            names = set(zipf.namelist())
            if "meta.json" not in names:
                raise BackupError("File backup tidak valid: meta.json tidak ditemukan")
            data = {"meta": json.loads(zipf.read("meta.json"))}
            for name, _ in TABLES:
                data[name] = json.loads(zipf.read(f"{name}.json")) if f"{name}.json" in names else []
    except zipfile.BadZipFile:
        raise BackupError("File backup bukan zip yang valid")
    return data


def _wipe(db: Session, keep_session_id: str = None):
    db.query(AuditLog).delete(synchronize_session=False)
    db.query(IuranSubmission).delete(synchronize_session=False)
    clear_other_sessions(db, keep_session_id)


def restore_backup(db: Session, data: dict) -> dict:
    """
    Ganti seluruh isi tabel dengan isi backup dalam satu transaksi.
    Semua sesi login ikut dihapus, jadi semua user harus login ulang.
    """
    counts = {}
    try:
        _wipe(db)
        db.query(User).delete(synchronize_session=False)

        for name, model in TABLES:
            columns = {c.name: c for c in model.__table__.columns}
            rows = []
            for raw in data.get(name, []):
                row = {k: _load_value(columns[k], v) for k, v in raw.items() if k in columns}
                if model is IuranSubmission:
                    row["total_iuran"] = compute_total(row)
                rows.append(row)
            if rows:
                db.execute(model.__table__.insert(), rows)
            counts[name] = len(rows)

        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Restore failed, rolled back")
        raise

    logger.info("Restore complete %s", counts)
    return counts


def reset_database(db: Session, keep_session_id: str = None) -> dict:
    """Hapus semua iuran, audit log, dan user non-superadmin."""
    counts = {
        "iuran_submissions": db.query(IuranSubmission).count(),
        "users": db.query(User).filter(User.role != "superadmin").count(),
    }
    try:
        _wipe(db, keep_session_id)
        db.query(User).filter(User.role != "superadmin").delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Reset failed, rolled back")
        raise

    logger.warning("Database reset: %s", counts)
    return counts


def list_backups() -> list:
    files = []
    root = ensure_backup_root()
    for f in os.listdir(root):
        if f.endswith(".zip"):
            stat = os.stat(os.path.join(root, f))
            files.append({
                "filename": f,
                "size": stat.st_size,
                "created_at": datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
            })
    # Sort by terbaru
    files.sort(key=lambda x: (x['created_at'], x['filename']), reverse=True)
    return files


def delete_backup(filename: str) -> bool:
    path = backup_path(filename)
    if os.path.exists(path):
        os.remove(path)
        return True
    return False
