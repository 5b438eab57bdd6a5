"""
Prosedur database yang dipanggil access layer berdasarkan nama.

Jalan di proses yang sama, dipanggil lewat rpc(db, nama, **params). Kontraknya:
hasil berupa list baris (dict) atau boolean, dan gagal dengan ProcedureError
yang pesannya di-pattern-match oleh service.
"""
import re
import logging
from datetime import date, datetime
from sqlalchemy import func
from sqlalchemy.orm import Session

from sidiq.core.exceptions import ProcedureError
from sidiq.core.security import get_password_hash, verify_password
from sidiq.core.utils import month_start
from sidiq.modules.users.models import User
from sidiq.modules.iuran.models import IuranSubmission
from sidiq.modules.auth.models import AuthSession
from sidiq.modules.audit.models import AuditLog  # noqa: F401  (registrasi mapper)

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9._]+$")

MSG_USERNAME_ACTIVE = "Username sudah digunakan oleh user aktif"
MSG_USERNAME_CHARS = "Username hanya boleh berisi huruf, angka, titik (.), dan underscore (_)"


def _user_row(user: User, **extra) -> dict:
    row = {
        "user_id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "role": user.role,
    }
    row.update(extra)
    return row


def authenticate_user(db: Session, username: str, password: str) -> list:
    user = db.query(User).filter(User.username == username, User.is_active == True).first()  # noqa: E712
    if not user or not verify_password(password, user.hashed_password):
        return []
    return [_user_row(user)]


def add_new_user(db: Session, username: str, full_name: str, password: str, role: str) -> list:
    """
    Buat user baru. Kalau username sudah ada tapi nonaktif (soft delete),
    user lama diaktifkan lagi, jadi iuran lamanya ikut muncul kembali.
    """
    if not username or not USERNAME_PATTERN.match(username):
        raise ProcedureError(MSG_USERNAME_CHARS)

    existing = db.query(User).filter(User.username == username).first()
    if existing and existing.is_active:
        raise ProcedureError(MSG_USERNAME_ACTIVE)

    hashed = get_password_hash(password)

    if existing:
        existing.full_name = full_name
        existing.role = role
        existing.hashed_password = hashed
        existing.is_active = True
        db.commit()
        db.refresh(existing)
        logger.info("User '%s' reactivated", username)
        return [_user_row(existing, is_reactivated=True)]

    user = User(username=username, full_name=full_name, hashed_password=hashed, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User '%s' created with role %s", username, role)
    return [_user_row(user, is_reactivated=False)]


def soft_delete_user(db: Session, user_id: str) -> bool:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active or user.role == "superadmin":
        return False

    user.is_active = False
    # Sesi login user ini langsung mati
    db.query(AuthSession).filter(AuthSession.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    logger.info("User '%s' soft-deleted", user.username)
    return True


def get_active_users(db: Session) -> list:
    return (
        db.query(User)
        .filter(User.is_active == True)  # noqa: E712
        .order_by(User.created_at.asc())
        .all()
    )


def get_dashboard_stats_active(db: Session, today: date = None) -> list:
    current_month = month_start(today)

    total_jamaah = (
        db.query(func.count(User.id))
        .filter(User.is_active == True, User.role == "jamaah")  # noqa: E712
        .scalar()
    ) or 0

    month_q = (
        db.query(IuranSubmission)
        .join(User, IuranSubmission.user_id == User.id)
        .filter(User.is_active == True, IuranSubmission.bulan_tahun == current_month)  # noqa: E712
    )
    total_iuran = month_q.with_entities(func.coalesce(func.sum(IuranSubmission.total_iuran), 0)).scalar() or 0
    submission_count = month_q.with_entities(func.count(IuranSubmission.id)).scalar() or 0

    jamaah_submitted = (
        month_q.filter(User.role == "jamaah")
        .with_entities(func.count(func.distinct(IuranSubmission.user_id)))
        .scalar()
    ) or 0

    return [{
        "total_jamaah": total_jamaah,
        "total_iuran_this_month": int(total_iuran),
        "submission_this_month": submission_count,
        "pending_submissions": max(total_jamaah - jamaah_submitted, 0),
    }]


def delete_iuran_submission(db: Session, submission_id: str) -> bool:
    deleted = db.query(IuranSubmission).filter(IuranSubmission.id == submission_id).delete(synchronize_session=False)
    db.commit()
    return deleted > 0


def update_user_with_password(db: Session, user_id: str, username: str, full_name: str,
                              role: str, password: str) -> bool:
    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
    if not user:
        return False

    # Username immutable, parameter cuma dicek biar gak salah target
    if username and username != user.username:
        raise ProcedureError("Username tidak cocok dengan user yang diupdate")

    user.full_name = full_name
    user.role = role
    user.hashed_password = get_password_hash(password)
    user.updated_at = datetime.utcnow()
    db.commit()
    logger.info("Password rotated for user '%s'", user.username)
    return True


PROCEDURES = {
    "authenticate_user": authenticate_user,
    "add_new_user": add_new_user,
    "soft_delete_user": soft_delete_user,
    "get_active_users": get_active_users,
    "get_dashboard_stats_active": get_dashboard_stats_active,
    "delete_iuran_submission": delete_iuran_submission,
    "update_user_with_password": update_user_with_password,
}


def rpc(db: Session, name: str, **params):
    """Panggil prosedur berdasarkan nama, sama seperti panggilan RPC ke database."""
    fn = PROCEDURES.get(name)
    if fn is None:
        raise ProcedureError(f"Could not find the function public.{name} in the schema cache")
    return fn(db, **params)
