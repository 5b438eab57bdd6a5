import pytest

from sidiq.core.cache import query_cache
from sidiq.core.exceptions import (
    ConflictError, DatabaseError, NotFoundError, PermissionDenied, ProcedureError, ValidationError,
)
from sidiq.modules.audit.models import AuditLog
from sidiq.modules.users import service
from sidiq.modules.users.models import User
from sidiq.system import procedures


def _new(username, role="jamaah", password="abc123"):
    return {"username": username, "full_name": username.title(), "role": role, "password": password}


@pytest.fixture
def su_ctx(superadmin, session_for):
    return session_for(superadmin)


@pytest.fixture
def admin(make_user):
    return make_user("admin.satu", role="admin")


@pytest.fixture
def admin_ctx(admin, session_for):
    return session_for(admin)


def test_permission_matrix(su_ctx, admin_ctx, admin, superadmin, make_user, session_for):
    other_admin = make_user("admin.dua", role="admin")
    jamaah = make_user("budi")
    jamaah_ctx = session_for(jamaah)

    assert service.can_delete_user(su_ctx, admin) is True
    assert service.can_delete_user(su_ctx, superadmin) is False
    assert service.can_delete_user(admin_ctx, jamaah) is True
    assert service.can_delete_user(admin_ctx, other_admin) is False
    assert service.can_delete_user(admin_ctx, admin) is False
    assert service.can_delete_user(jamaah_ctx, jamaah) is False

    assert service.can_edit_user(su_ctx, superadmin) is True
    assert service.can_edit_user(admin_ctx, jamaah) is True
    assert service.can_edit_user(admin_ctx, other_admin) is False
    assert service.can_edit_user(jamaah_ctx, jamaah) is False


def test_list_active_users_marks_permissions(db, admin_ctx, make_user):
    make_user("budi")
    users = {u.username: u for u in service.list_active_users(db, admin_ctx)}

    assert set(users) == {"superadmin", "admin.satu", "budi"}
    assert users["budi"].can_edit and users["budi"].can_delete
    assert not users["superadmin"].can_delete
    assert not users["admin.satu"].can_delete


def test_jamaah_cannot_manage_users(db, make_user, session_for):
    ctx = session_for(make_user("budi"))
    with pytest.raises(PermissionDenied):
        service.list_active_users(db, ctx)
    with pytest.raises(PermissionDenied):
        service.create_user(db, ctx, _new("andi"))


def test_create_user_and_audit(db, su_ctx):
    row = service.create_user(db, su_ctx, _new("budi"))
    assert row["username"] == "budi"
    assert row["is_reactivated"] is False

    log = db.query(AuditLog).filter(AuditLog.table_name == "users").one()
    assert log.action == "INSERT"
    assert log.user_id == su_ctx.user_id


def test_create_user_maps_duplicate_error(db, su_ctx, make_user):
    make_user("budi")
    with pytest.raises(ConflictError) as exc:
        service.create_user(db, su_ctx, _new("budi"))
    assert exc.value.message == "Username sudah digunakan oleh user aktif, silakan pilih username lain"


def test_create_user_maps_charset_error(db, su_ctx):
    with pytest.raises(ValidationError) as exc:
        service.create_user(db, su_ctx, _new("budi santoso"))
    assert exc.value.message == "Username hanya boleh berisi huruf, angka, titik (.), dan underscore (_)"


def test_create_user_maps_missing_procedure_and_unknown_errors(db, su_ctx, monkeypatch):
    def missing(db, name, **kw):
        raise ProcedureError(f"Could not find the function public.{name} in the schema cache")

    monkeypatch.setattr(service, "rpc", missing)
    with pytest.raises(DatabaseError) as exc:
        service.create_user(db, su_ctx, _new("budi"))
    assert "Fungsi add_new_user tidak ditemukan" in exc.value.message

    def broken(db, name, **kw):
        raise ProcedureError("connection reset")

    monkeypatch.setattr(service, "rpc", broken)
    with pytest.raises(DatabaseError) as exc:
        service.create_user(db, su_ctx, _new("budi"))
    assert exc.value.message == "Gagal membuat user: connection reset"

    monkeypatch.setattr(service, "rpc", lambda db, name, **kw: [])
    with pytest.raises(DatabaseError) as exc:
        service.create_user(db, su_ctx, _new("budi"))
    assert exc.value.message == "User berhasil dibuat tetapi tidak ada data yang dikembalikan"


def test_create_user_rejects_superadmin_role(db, su_ctx):
    with pytest.raises(ValidationError):
        service.create_user(db, su_ctx, _new("bos", role="superadmin"))


def test_create_after_delete_reactivates(db, admin_ctx, make_user):
    budi = make_user("budi")
    service.delete_user(db, admin_ctx, budi.id)

    row = service.create_user(db, admin_ctx, _new("budi", password="lagi123"))
    assert row["is_reactivated"] is True
    assert row["user_id"] == budi.id


def test_update_without_password(db, admin_ctx, make_user):
    budi = make_user("budi")
    res = service.update_user(db, admin_ctx, budi.id, {"full_name": "Budi Santoso", "role": None, "password": None})
    assert res.full_name == "Budi Santoso"
    assert res.role == "jamaah"

    with pytest.raises(ValidationError):
        service.update_user(db, admin_ctx, budi.id, {"full_name": None, "role": None, "password": None})


def test_update_with_password_uses_dedicated_procedure(db, su_ctx, make_user):
    budi = make_user("budi", password="lama123")
    res = service.update_user(db, su_ctx, budi.id, {"full_name": "Budi S", "role": "admin", "password": "baru123"})

    assert res.username == "budi"
    assert res.role == "admin"
    assert procedures.authenticate_user(db, "budi", "baru123")
    assert procedures.authenticate_user(db, "budi", "lama123") == []


def test_update_with_password_failure_is_not_success(db, su_ctx, make_user, monkeypatch):
    budi = make_user("budi")

    def duplicate(db, name, **kw):
        raise ProcedureError("Username sudah digunakan oleh user aktif")

    monkeypatch.setattr(service, "rpc", duplicate)
    with pytest.raises(DatabaseError) as exc:
        service.update_user(db, su_ctx, budi.id, {"full_name": None, "role": None, "password": "baru123"})
    assert exc.value.message == "Gagal mengupdate password: Username sudah digunakan oleh user aktif"


def test_update_user_authorization(db, admin_ctx, su_ctx, superadmin, make_user):
    other_admin = make_user("admin.dua", role="admin")

    with pytest.raises(PermissionDenied):
        service.update_user(db, admin_ctx, other_admin.id, {"full_name": "X Y"})
    with pytest.raises(PermissionDenied):
        service.update_user(db, admin_ctx, superadmin.id, {"full_name": "X Y"})
    with pytest.raises(PermissionDenied) as exc:
        service.update_user(db, su_ctx, superadmin.id, {"role": "admin"})
    assert exc.value.message == "Role superadmin tidak dapat diubah"
    with pytest.raises(NotFoundError):
        service.update_user(db, su_ctx, "tidak-ada", {"full_name": "X Y"})


def test_delete_user_rules(db, admin_ctx, su_ctx, admin, superadmin, make_user):
    other_admin = make_user("admin.dua", role="admin")

    with pytest.raises(ValidationError) as exc:
        service.delete_user(db, admin_ctx, "")
    assert exc.value.message == "User ID tidak valid"
    with pytest.raises(PermissionDenied):
        service.delete_user(db, su_ctx, superadmin.id)
    with pytest.raises(PermissionDenied):
        service.delete_user(db, admin_ctx, admin.id)
    with pytest.raises(PermissionDenied):
        service.delete_user(db, admin_ctx, other_admin.id)
    with pytest.raises(NotFoundError) as exc:
        service.delete_user(db, su_ctx, "tidak-ada")
    assert exc.value.message.startswith("Gagal menghapus user")

    assert service.delete_user(db, su_ctx, other_admin.id) is True
    db.refresh(other_admin)
    assert other_admin.is_active is False


def test_mutations_invalidate_user_cache(db, su_ctx, make_user):
    budi = make_user("budi")
    assert len(service.list_active_users(db, su_ctx)) == 2

    service.create_user(db, su_ctx, _new("andi"))
    assert len(service.list_active_users(db, su_ctx)) == 3

    service.delete_user(db, su_ctx, budi.id)
    assert len(service.list_active_users(db, su_ctx)) == 2
    # Soft delete: barisnya tetap ada
    assert db.query(User).count() == 3


def test_list_users_served_from_cache(db, su_ctx, make_user):
    service.list_active_users(db, su_ctx)
    # Tulis langsung lewat prosedur, tanpa invalidasi
    make_user("budi")
    assert len(service.list_active_users(db, su_ctx)) == 1

    query_cache.invalidate("users")
    assert len(service.list_active_users(db, su_ctx)) == 2
