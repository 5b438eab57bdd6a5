"""
Submission access layer.

Satu jamaah = satu baris per bulan. Jaminan itu datang dari unique constraint
(user_id, bulan_tahun) di database: submit kedua untuk bulan yang sama jadi update
(upsert), bukan baris ganda. Cek-cek lain di sini cuma validasi sebelum query.

Setiap mutasi meng-invalidate grup cache yang bergantung padanya:
"iuran", "dashboard-stats", dan ("user-submission", user_id, bulan).
"""
import re
import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from sidiq.core.cache import query_cache
from sidiq.core.exceptions import (
    ConflictError, DatabaseError, NotFoundError, PermissionDenied, ProcedureError, ValidationError,
)
from sidiq.core.utils import month_start
from sidiq.modules.audit import service as audit
from sidiq.modules.auth.session import SessionContext
from sidiq.modules.iuran import schemas
from sidiq.modules.iuran.models import IuranSubmission, IURAN_FIELDS, compute_total
from sidiq.system.procedures import rpc

logger = logging.getLogger(__name__)

UUID_REGEX = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

ADMIN_ROLES = ("superadmin", "admin")
CONFLICT_COLUMNS = ("user_id", "bulan_tahun")
UPDATABLE_COLUMNS = set(IURAN_FIELDS)
AUDIT_FIELDS = ("user_id", "bulan_tahun", "nama_jamaah") + IURAN_FIELDS + ("total_iuran",)

HIGH_AMOUNT = 500_000_000
VERY_HIGH_AMOUNT = 1_000_000_000

MSG_ALREADY_SUBMITTED = (
    "Iuran untuk bulan ini sudah pernah dikirim. "
    "Halaman akan dimuat ulang untuk menampilkan data terbaru."
)

EMPTY_STATS = schemas.DashboardStats(
    totalJamaah=0, totalIuranThisMonth=0, submissionThisMonth=0, pendingSubmissions=0
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _submission_key(user_id, bulan_tahun) -> tuple:
    if isinstance(bulan_tahun, (date, datetime)):
        bulan_tahun = month_start(bulan_tahun).isoformat()
    return ("user-submission", user_id, bulan_tahun)


def _invalidate_after_write(user_id=None, bulan_tahun=None):
    query_cache.invalidate("iuran")
    query_cache.invalidate("dashboard-stats")
    if user_id and bulan_tahun:
        query_cache.invalidate(*_submission_key(user_id, bulan_tahun))


def _to_month(value) -> date:
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            raise ValidationError("Bulan tahun tidak valid")
    return month_start(value)


def _clean_id(submission_id) -> str:
    if not isinstance(submission_id, str):
        return ""
    return submission_id.strip()


def is_valid_uuid(value: str) -> bool:
    return bool(UUID_REGEX.match(value or ""))


def amount_level(total: int) -> str:
    if total >= VERY_HIGH_AMOUNT:
        return "very_high"
    if total >= HIGH_AMOUNT:
        return "high"
    return "normal"


def _insert_construct(db: Session):
    # Upsert butuh insert khusus dialect
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect in ("mysql", "mariadb"):
        from sqlalchemy.dialects.mysql import insert
    else:
        raise DatabaseError(f"Database '{dialect}' belum didukung untuk penyimpanan iuran")
    return dialect, insert


def _prepare_values(data: dict) -> dict:
    """Validasi field wajib lalu susun nilai baris yang akan ditulis."""
    if not data.get("user_id"):
        raise ValidationError("User ID tidak valid")
    if not data.get("username"):
        raise ValidationError("Username tidak valid")
    if not data.get("nama_jamaah"):
        raise ValidationError("Nama jamaah tidak valid")
    if not data.get("bulan_tahun"):
        raise ValidationError("Bulan tahun tidak valid")

    values = {
        "user_id": data["user_id"],
        "username": data["username"],
        "nama_jamaah": data["nama_jamaah"],
        "bulan_tahun": _to_month(data["bulan_tahun"]),
    }
    for field in IURAN_FIELDS:
        amount = int(data.get(field) or 0)
        if amount < 0:
            raise ValidationError("Nominal tidak boleh negatif")
        values[field] = amount

    now = datetime.utcnow()
    values["total_iuran"] = compute_total(values)
    values["timestamp_submitted"] = now
    values["updated_at"] = now
    return values


def _fetch_by_key(db: Session, user_id, bulan_tahun) -> Optional[IuranSubmission]:
    return (
        db.query(IuranSubmission)
        .options(joinedload(IuranSubmission.user))
        .filter(IuranSubmission.user_id == user_id, IuranSubmission.bulan_tahun == bulan_tahun)
        .first()
    )


def _check_owner_or_admin(ctx: SessionContext, user_id):
    if ctx is not None and not ctx.has_role(*ADMIN_ROLES) and ctx.user_id != user_id:
        raise PermissionDenied("Anda hanya dapat mengubah data iuran milik sendiri")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_active_submissions(db: Session) -> List[schemas.IuranResponse]:
    """Semua iuran, terbaru dulu, tanpa iuran milik user yang sudah dinonaktifkan."""
    def load():
        rows = (
            db.query(IuranSubmission)
            .options(joinedload(IuranSubmission.user))
            .order_by(IuranSubmission.created_at.desc())
            .all()
        )
        # Baris user nonaktif tetap ada di DB, cuma tidak ditampilkan
        active = [r for r in rows if r.user is not None and r.user.is_active]
        return [schemas.IuranResponse.model_validate(r) for r in active]

    return query_cache.get_or_load(("iuran",), load)


def get_dashboard_stats(db: Session) -> schemas.DashboardStats:
    def load():
        rows = rpc(db, "get_dashboard_stats_active")
        if not rows:
            return EMPTY_STATS.model_copy()

        row = rows[0]
        return schemas.DashboardStats(
            totalJamaah=int(row.get("total_jamaah") or 0),
            totalIuranThisMonth=int(float(row.get("total_iuran_this_month") or 0)),
            submissionThisMonth=int(row.get("submission_this_month") or 0),
            pendingSubmissions=int(row.get("pending_submissions") or 0),
        )

    return query_cache.get_or_load(("dashboard-stats",), load)


def get_user_submission_for_month(db: Session, user_id: str, bulan_tahun) -> Optional[schemas.IuranResponse]:
    """None = belum submit bulan ini, bukan error."""
    if not user_id or not bulan_tahun:
        return None
    month = _to_month(bulan_tahun)

    def load():
        row = _fetch_by_key(db, user_id, month)
        return schemas.IuranResponse.model_validate(row) if row else None

    return query_cache.get_or_load(_submission_key(user_id, month), load)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def submit_iuran(db: Session, ctx: Optional[SessionContext], data: dict) -> schemas.IuranResponse:
    """
    Create-or-update iuran satu bulan. Kalau (user_id, bulan_tahun) sudah ada,
    nilai lama ditimpa (last write wins), jumlah baris tetap satu.
    """
    values = _prepare_values(data)
    _check_owner_or_admin(ctx, values["user_id"])

    dialect, insert = _insert_construct(db)
    update_cols = {k: values[k] for k in values if k not in CONFLICT_COLUMNS}

    stmt = insert(IuranSubmission.__table__).values(**values)
    if dialect in ("mysql", "mariadb"):
        stmt = stmt.on_duplicate_key_update(**update_cols)
    else:
        stmt = stmt.on_conflict_do_update(index_elements=list(CONFLICT_COLUMNS), set_=update_cols)

    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Upsert iuran failed for user %s: %s", values["user_id"], e)
        raise DatabaseError(f"Database error: {e}. Check database setup.")

    row = _fetch_by_key(db, values["user_id"], values["bulan_tahun"])
    audit.record(db, ctx.user_id if ctx else values["user_id"], "UPSERT", "iuran_submissions", row.id,
                 new_values=audit.snapshot(row, AUDIT_FIELDS))
    db.commit()

    logger.info("Iuran %s for user %s saved (total %s)", values["bulan_tahun"], values["username"], values["total_iuran"])
    _invalidate_after_write(row.user_id, row.bulan_tahun)
    return schemas.IuranResponse.model_validate(row)


def create_iuran_once(db: Session, ctx: Optional[SessionContext], data: dict) -> schemas.IuranResponse:
    """
    Insert sekali saja: satu statement INSERT ... ON CONFLICT DO NOTHING.
    Kalau baris bulan ini sudah ada (misal dua tab submit barengan) -> ConflictError.
    """
    values = _prepare_values(data)
    _check_owner_or_admin(ctx, values["user_id"])

    dialect, insert = _insert_construct(db)
    stmt = insert(IuranSubmission.__table__).values(**values)
    if dialect in ("mysql", "mariadb"):
        stmt = stmt.prefix_with("IGNORE")
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(CONFLICT_COLUMNS))

    try:
        result = db.execute(stmt)
        inserted = result.rowcount
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError(f"Database error: {e}. Check database setup.")

    if not inserted:
        logger.warning("Duplicate iuran submission for user %s month %s", values["user_id"], values["bulan_tahun"])
        _invalidate_after_write(values["user_id"], values["bulan_tahun"])
        raise ConflictError(MSG_ALREADY_SUBMITTED)

    row = _fetch_by_key(db, values["user_id"], values["bulan_tahun"])
    audit.record(db, ctx.user_id if ctx else values["user_id"], "INSERT", "iuran_submissions", row.id,
                 new_values=audit.snapshot(row, AUDIT_FIELDS))
    db.commit()

    _invalidate_after_write(row.user_id, row.bulan_tahun)
    return schemas.IuranResponse.model_validate(row)


def update_iuran(db: Session, ctx: SessionContext, submission_id, data: dict) -> schemas.IuranResponse:
    clean_id = _clean_id(submission_id)
    if not clean_id or clean_id in ("undefined", "null"):
        raise ValidationError("ID iuran tidak valid atau kosong. Data mungkin belum dimuat dengan benar.")
    if not is_valid_uuid(clean_id):
        raise ValidationError(f'Format ID iuran tidak valid: "{clean_id}". ID harus berupa UUID yang valid.')
    # UUID disimpan huruf kecil
    clean_id = clean_id.lower()

    # total_iuran selalu dihitung ulang, jadi dibuang dari payload
    clean = {k: v for k, v in data.items() if k != "total_iuran" and v is not None}
    if not clean:
        raise ValidationError("Tidak ada data yang valid untuk diupdate")
    if set(clean) - UPDATABLE_COLUMNS:
        raise ValidationError("Database error: Kolom tidak ditemukan. Periksa struktur database.")
    if any(int(v) < 0 for v in clean.values()):
        raise ValidationError("Nominal tidak boleh negatif")

    row = db.query(IuranSubmission).filter(IuranSubmission.id == clean_id).first()
    if row is None:
        raise NotFoundError("Data iuran tidak ditemukan. Mungkin sudah dihapus atau tidak ada akses.")
    _check_owner_or_admin(ctx, row.user_id)
    # Batas 1 Milyar tetap berlaku kalau yang edit bukan admin
    if not ctx.has_role(*ADMIN_ROLES) and any(int(v) > schemas.MAX_IURAN for v in clean.values()):
        raise ValidationError(schemas.MSG_MAX_IURAN)

    old = audit.snapshot(row, AUDIT_FIELDS)
    try:
        for key, value in clean.items():
            setattr(row, key, int(value))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError(f"Database error: {e}. Periksa koneksi database atau refresh halaman.")

    db.refresh(row)
    audit.record(db, ctx.user_id, "UPDATE", "iuran_submissions", row.id,
                 old_values=old, new_values=audit.snapshot(row, AUDIT_FIELDS))
    db.commit()

    logger.info("Iuran %s updated by '%s' (total %s)", row.id, ctx.username, row.total_iuran)
    _invalidate_after_write(row.user_id, row.bulan_tahun)
    return schemas.IuranResponse.model_validate(row)


def delete_iuran(db: Session, ctx: SessionContext, submission_id) -> bool:
    clean_id = _clean_id(submission_id)
    if not clean_id:
        raise ValidationError("ID iuran tidak valid atau kosong")
    if not is_valid_uuid(clean_id):
        raise ValidationError("Format ID iuran tidak valid. ID harus berupa UUID yang valid.")
    clean_id = clean_id.lower()
    if not ctx.has_role(*ADMIN_ROLES):
        raise PermissionDenied("Hanya admin dan superadmin yang dapat menghapus data iuran")

    row = db.query(IuranSubmission).filter(IuranSubmission.id == clean_id).first()
    old = audit.snapshot(row, AUDIT_FIELDS)

    try:
        ok = rpc(db, "delete_iuran_submission", submission_id=clean_id)
    except ProcedureError as e:
        raise DatabaseError(f"Database error: {e.message}. Check database setup.")

    if not ok:
        raise NotFoundError("Gagal menghapus data iuran - data mungkin tidak ada")

    audit.record(db, ctx.user_id, "DELETE", "iuran_submissions", clean_id, old_values=old)
    db.commit()

    logger.info("Iuran %s deleted by '%s'", clean_id, ctx.username)
    if old:
        _invalidate_after_write(old["user_id"], old["bulan_tahun"])
    else:
        _invalidate_after_write()
    return True


# ---------------------------------------------------------------------------
# Form jamaah, riwayat, daftar admin
# ---------------------------------------------------------------------------

def form_status(db: Session, ctx: SessionContext) -> schemas.FormStatus:
    current = month_start()
    existing = get_user_submission_for_month(db, ctx.user_id, current)
    return schemas.FormStatus(
        bulan_tahun=current,
        has_submitted=existing is not None,
        locked=existing is not None,
        submission=existing,
    )


def submit_member_form(db: Session, ctx: SessionContext, amounts: dict, edit: bool = False) -> schemas.SubmitResult:
    """
    Form jamaah untuk bulan berjalan. Submit pertama pakai insert sekali (konflik = 409),
    mode edit (setelah buka kunci) pakai upsert.
    """
    if not ctx.full_name:
        raise ValidationError("Nama lengkap tidak valid. Silakan logout dan login kembali.")

    data = dict(amounts)
    data.update({
        "bulan_tahun": month_start(),
        "user_id": ctx.user_id,
        "username": ctx.username,
        "nama_jamaah": ctx.full_name,
    })

    if edit:
        submission = submit_iuran(db, ctx, data)
    else:
        submission = create_iuran_once(db, ctx, data)

    return schemas.SubmitResult(
        submission=submission,
        total=submission.total_iuran,
        amount_level=amount_level(submission.total_iuran),
    )


def member_history(db: Session, ctx: SessionContext) -> schemas.HistoryResponse:
    items = [s for s in list_active_submissions(db) if s.user_id == ctx.user_id]
    total = sum(s.total_iuran for s in items)
    return schemas.HistoryResponse(
        items=items,
        count=len(items),
        total=total,
        average=(total / len(items)) if items else 0,
    )


def filter_and_sort(items, search: str = "", month: str = "", sort_by: str = "date"):
    """
    Filter daftar admin: search di nama jamaah / username, month format "YYYY-MM".
    sort_by: date (terbaru), amount (terbesar), name (A-Z).
    """
    term = (search or "").strip().lower()

    def matches(item):
        if term:
            username = (item.user.username if item.user else item.username) or ""
            if term not in item.nama_jamaah.lower() and term not in username.lower():
                return False
        if month and item.bulan_tahun.isoformat()[:7] != month:
            return False
        return True

    result = [i for i in items if matches(i)]

    if sort_by == "amount":
        result.sort(key=lambda i: i.total_iuran or 0, reverse=True)
    elif sort_by == "name":
        result.sort(key=lambda i: i.nama_jamaah.lower())
    else:
        result.sort(key=lambda i: i.created_at or datetime.min, reverse=True)
    return result


def summarize(items) -> schemas.IuranSummary:
    return schemas.IuranSummary(
        total_iuran=sum(i.total_iuran or 0 for i in items),
        total_submissions=len(items),
        unique_contributors=len({i.user_id for i in items}),
    )
