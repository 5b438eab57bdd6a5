import os
import tempfile

# Env harus diset sebelum modul sidiq di-import (engine & limiter dibaca saat import)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTO_BACKUP_SCHEDULE"] = ""
os.environ["BACKUP_ROOT"] = tempfile.mkdtemp(prefix="sidiq-backups-")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient

from sidiq.main import app
from sidiq.core.cache import query_cache
from sidiq.core.database import Base, SessionLocal, engine
from sidiq.core.init_db import init_db
from sidiq.modules.auth.session import open_session
from sidiq.system import backup_manager
from sidiq.system.procedures import add_new_user
from sidiq.modules.users.models import User

SUPERADMIN = ("superadmin", "superadmin123")


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    query_cache.clear()
    monkeypatch.setattr(backup_manager, "BACKUP_ROOT", str(tmp_path / "backups"))

    db = SessionLocal()
    try:
        init_db(db)
    finally:
        db.close()
    yield
    query_cache.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    """Buat user aktif lewat prosedur add_new_user, return object User."""
    def _make(username, role="jamaah", full_name=None, password="rahasia123"):
        rows = add_new_user(db, username=username, full_name=full_name or username.title(),
                            password=password, role=role)
        return db.query(User).filter(User.id == rows[0]["user_id"]).first()
    return _make


@pytest.fixture
def superadmin(db):
    return db.query(User).filter(User.username == SUPERADMIN[0]).first()


@pytest.fixture
def session_for(db):
    """Buka sesi langsung (tanpa HTTP), return SessionContext."""
    def _open(user):
        _, ctx = open_session(db, user)
        return ctx
    return _open


@pytest.fixture
def login(client):
    """Login lewat /auth/token, return header Authorization."""
    def _login(username, password="rahasia123"):
        res = client.post("/auth/token", data={"username": username, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['access_token']}"}
    return _login


@pytest.fixture
def su_headers(login):
    return login(*SUPERADMIN)
