"""
User access layer.

Semua create / update / soft delete user lewat sini. Aturan role
(superadmin kebal, tidak bisa hapus diri sendiri, admin tidak bisa sentuh admin)
dicek di sini juga, bukan cuma disembunyikan di UI.
"""
import logging
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sidiq.core.cache import query_cache
from sidiq.core.exceptions import (
    ConflictError, DatabaseError, NotFoundError, PermissionDenied, ProcedureError, ValidationError,
)
from sidiq.modules.audit import service as audit
from sidiq.modules.auth.session import SessionContext
from sidiq.modules.users import models, schemas
from sidiq.system.procedures import rpc

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("superadmin", "admin")
USER_FIELDS = ("username", "full_name", "role", "is_active")


def can_delete_user(actor: SessionContext, target) -> bool:
    if not actor.has_role(*ADMIN_ROLES):
        return False
    if target.role == "superadmin":
        return False
    if target.id == actor.user_id:
        return False
    if actor.role == "admin" and target.role == "admin":
        return False
    return True


def can_edit_user(actor: SessionContext, target) -> bool:
    if actor.role == "superadmin":
        return True
    if actor.role == "admin":
        return target.role == "jamaah"
    return False


def _require_admin(ctx: SessionContext):
    if not ctx.has_role(*ADMIN_ROLES):
        raise PermissionDenied("Hanya admin dan superadmin yang dapat mengelola user")


def _invalidate(*groups):
    for group in groups:
        query_cache.invalidate(group)


def list_active_users(db: Session, ctx: SessionContext):
    _require_admin(ctx)

    def load():
        return [schemas.UserResponse.model_validate(u) for u in rpc(db, "get_active_users")]

    users = query_cache.get_or_load(("users",), load)
    return [
        schemas.UserListItem(**u.model_dump(), can_edit=can_edit_user(ctx, u), can_delete=can_delete_user(ctx, u))
        for u in users
    ]


def create_user(db: Session, ctx: SessionContext, data: dict) -> dict:
    _require_admin(ctx)
    if data.get("role") not in ("admin", "jamaah"):
        raise ValidationError("Role harus dipilih (admin atau jamaah)")

    try:
        rows = rpc(
            db, "add_new_user",
            username=data.get("username"),
            full_name=data.get("full_name"),
            password=data.get("password"),
            role=data.get("role"),
        )
    except ProcedureError as e:
        msg = e.message or "Unknown error"
        if "Username sudah digunakan oleh user aktif" in msg:
            raise ConflictError("Username sudah digunakan oleh user aktif, silakan pilih username lain")
        if "Username hanya boleh berisi" in msg:
            raise ValidationError("Username hanya boleh berisi huruf, angka, titik (.), dan underscore (_)")
        if "Could not find the function" in msg:
            raise DatabaseError("Fungsi add_new_user tidak ditemukan. Pastikan database sudah di-setup dengan benar.")
        raise DatabaseError(f"Gagal membuat user: {msg}")

    if not rows:
        raise DatabaseError("User berhasil dibuat tetapi tidak ada data yang dikembalikan")

    row = rows[0]
    audit.record(
        db, ctx.user_id,
        "UPDATE" if row.get("is_reactivated") else "INSERT",
        "users", row["user_id"],
        new_values={"username": row["username"], "full_name": row["full_name"], "role": row["role"], "is_active": True},
    )
    db.commit()

    _invalidate("users", "dashboard-stats", "iuran")
    return row


def update_user(db: Session, ctx: SessionContext, user_id: str, data: dict) -> schemas.UserResponse:
    _require_admin(ctx)

    try:
        target = db.query(models.User).filter(models.User.id == user_id).first()
    except SQLAlchemyError as e:
        raise DatabaseError(f"Gagal mengambil data user: {e}")
    if not target or not target.is_active:
        raise NotFoundError("User tidak ditemukan")

    if not can_edit_user(ctx, target):
        raise PermissionDenied("Anda tidak memiliki akses untuk mengedit user ini")

    new_role = data.get("role")
    if target.role == "superadmin" and new_role and new_role != "superadmin":
        raise PermissionDenied("Role superadmin tidak dapat diubah")

    old = audit.snapshot(target, USER_FIELDS)
    password = data.get("password")

    if password:
        # Ganti password lewat prosedur khusus, username tetap
        try:
            ok = rpc(
                db, "update_user_with_password",
                user_id=target.id,
                username=target.username,
                full_name=data.get("full_name") or target.full_name,
                role=new_role or target.role,
                password=password,
            )
        except ProcedureError as e:
            raise DatabaseError(f"Gagal mengupdate password: {e.message or 'Unknown error'}")
        if not ok:
            raise DatabaseError("Gagal mengupdate password: user tidak ditemukan atau sudah nonaktif")
    else:
        changes = {k: data[k] for k in ("full_name", "role") if data.get(k) is not None}
        if not changes:
            raise ValidationError("Tidak ada data yang valid untuk diupdate")
        try:
            for key, value in changes.items():
                setattr(target, key, value)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Username sudah digunakan oleh user lain")
        except SQLAlchemyError as e:
            db.rollback()
            raise DatabaseError(f"Database error: {e}")

    db.refresh(target)
    audit.record(db, ctx.user_id, "UPDATE", "users", target.id,
                 old_values=old, new_values=audit.snapshot(target, USER_FIELDS))
    db.commit()
    logger.info("User '%s' updated by '%s'%s", target.username, ctx.username,
                " (password changed)" if password else "")

    _invalidate("users", "dashboard-stats")
    return schemas.UserResponse.model_validate(target)


def delete_user(db: Session, ctx: SessionContext, user_id: str) -> bool:
    if not user_id:
        raise ValidationError("User ID tidak valid")
    _require_admin(ctx)

    target = db.query(models.User).filter(models.User.id == user_id).first()
    if target is not None:
        if target.role == "superadmin":
            raise PermissionDenied("Superadmin tidak dapat dihapus")
        if target.id == ctx.user_id:
            raise PermissionDenied("Tidak dapat menghapus akun sendiri")
        if not can_delete_user(ctx, target):
            raise PermissionDenied("Admin tidak dapat menghapus admin lain")

    try:
        ok = rpc(db, "soft_delete_user", user_id=user_id)
    except ProcedureError as e:
        if "Could not find the function" in e.message:
            raise DatabaseError("Fungsi soft_delete_user tidak ditemukan. Pastikan database sudah di-setup dengan benar.")
        raise DatabaseError(f"Database error: {e.message or 'Unknown error'}")

    if not ok:
        raise NotFoundError(
            "Gagal menghapus user - user mungkin tidak ada atau adalah superadmin yang tidak dapat dihapus"
        )

    audit.record(db, ctx.user_id, "DELETE", "users", user_id,
                 old_values={"is_active": True}, new_values={"is_active": False})
    db.commit()

    _invalidate("users", "dashboard-stats", "iuran")
    return True
