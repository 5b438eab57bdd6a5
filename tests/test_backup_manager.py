import io
import json
import os
import zipfile
from datetime import date, datetime

import pytest

from sidiq.modules.audit.models import AuditLog
from sidiq.modules.auth.models import AuthSession
from sidiq.modules.auth.session import open_session
from sidiq.modules.iuran import service as iuran_service
from sidiq.modules.iuran.models import IuranSubmission
from sidiq.modules.users.models import User
from sidiq.system import backup_manager
from sidiq.system.backup_manager import BackupError


@pytest.fixture
def seeded(db, make_user):
    budi = make_user("budi", full_name="Budi Santoso")
    make_user("admin.satu", role="admin")
    iuran_service.submit_iuran(db, None, {
        "user_id": budi.id, "username": "budi", "nama_jamaah": "Budi Santoso",
        "bulan_tahun": date(2024, 6, 1), "iuran_1": 100_000, "iuran_3": 25_000,
    })
    return budi


def test_backup_path_rejects_traversal():
    for bad in ["", "../etc/passwd.zip", "sub/x.zip", "backup.tar"]:
        with pytest.raises(BackupError):
            backup_manager.backup_path(bad)
    assert backup_manager.backup_path("ok.zip").endswith(os.path.join("backups", "ok.zip"))


def test_new_backup_filename():
    assert backup_manager.new_backup_filename(datetime(2024, 6, 5, 1, 2, 3)) == "sidiq_20240605_010203.zip"


def test_create_backup_writes_all_tables(db, seeded):
    path = backup_manager.create_backup(db)

    with zipfile.ZipFile(path) as zipf:
        names = set(zipf.namelist())
        meta = json.loads(zipf.read("meta.json"))
        users = json.loads(zipf.read("users.json"))

    assert names == {"meta.json", "users.json", "iuran_submissions.json", "audit_logs.json"}
    assert meta["counts"]["users"] == 3
    assert meta["counts"]["iuran_submissions"] == 1
    assert {u["username"] for u in users} == {"superadmin", "budi", "admin.satu"}


def test_restore_roundtrip_after_reset(db, seeded, superadmin):
    path = backup_manager.create_backup(db)

    counts = backup_manager.reset_database(db)
    assert counts == {"iuran_submissions": 1, "users": 2}
    assert db.query(IuranSubmission).count() == 0
    assert [u.username for u in db.query(User).all()] == ["superadmin"]

    restored = backup_manager.restore_backup(db, backup_manager.read_backup(path))
    assert restored["users"] == 3
    row = db.query(IuranSubmission).one()
    assert row.total_iuran == 125_000
    assert row.bulan_tahun == date(2024, 6, 1)
    assert db.query(User).filter(User.username == "budi").one().is_active is True


def test_restore_recomputes_total(db, seeded):
    data = backup_manager.read_backup(backup_manager.create_backup(db))
    data["iuran_submissions"][0]["total_iuran"] = 1

    backup_manager.restore_backup(db, data)
    assert db.query(IuranSubmission).one().total_iuran == 125_000


def test_restore_clears_every_session(db, seeded, superadmin):
    open_session(db, superadmin)
    open_session(db, seeded)
    data = backup_manager.read_backup(backup_manager.create_backup(db))

    backup_manager.restore_backup(db, data)
    assert db.query(AuthSession).count() == 0


def test_reset_keeps_current_session_only(db, seeded, superadmin):
    _, keep = open_session(db, superadmin)
    open_session(db, seeded)

    backup_manager.reset_database(db, keep_session_id=keep.session_id)
    assert [s.id for s in db.query(AuthSession).all()] == [keep.session_id]
    assert db.query(AuditLog).count() == 0


def test_read_backup_rejects_bad_files():
    with pytest.raises(BackupError):
        backup_manager.read_backup(io.BytesIO(b"bukan zip"))

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zipf:
        zipf.writestr("users.json", "[]")
    buf.seek(0)
    with pytest.raises(BackupError) as exc:
        backup_manager.read_backup(buf)
    assert "meta.json" in str(exc.value)


def test_list_and_delete_backups(db, seeded):
    path = backup_manager.create_backup(db, backup_manager.backup_path("sidiq_20240101_000000.zip"))
    assert os.path.exists(path)

    listed = backup_manager.list_backups()
    assert [b["filename"] for b in listed] == ["sidiq_20240101_000000.zip"]
    assert listed[0]["size"] > 0

    assert backup_manager.delete_backup("sidiq_20240101_000000.zip") is True
    assert backup_manager.delete_backup("sidiq_20240101_000000.zip") is False
    assert backup_manager.list_backups() == []
