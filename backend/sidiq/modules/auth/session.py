"""
Sesi login yang eksplisit.

Sesi adalah object SessionContext yang dioper ke access layer, dengan siklus:
open_session (login) -> load_session (tiap request) -> clear_session (logout).
Barisnya disimpan di tabel auth_sessions, jadi logout benar-benar mematikan token.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from jose import JWTError
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sidiq.core.security import create_access_token, decode_access_token
from sidiq.modules.auth.models import AuthSession
from sidiq.modules.users.models import User

logger = logging.getLogger(__name__)


class SessionContext(BaseModel):
    session_id: str
    user_id: str
    username: str
    full_name: str
    role: str

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def has_role(self, *roles) -> bool:
        return self.role in roles

    @classmethod
    def from_user(cls, user: User, session_id: str):
        return cls(
            session_id=session_id,
            user_id=user.id,
            username=user.username,
            full_name=user.full_name,
            role=user.role,
        )


def open_session(db: Session, user: User) -> Tuple[str, SessionContext]:
    token, jti, expire = create_access_token(data={"sub": user.username, "role": user.role})

    db.add(AuthSession(id=jti, user_id=user.id, expires_at=expire))
    db.commit()

    logger.info("Session opened for '%s'", user.username)
    return token, SessionContext.from_user(user, jti)


def load_session(db: Session, token: str) -> Optional[SessionContext]:
    """None kalau token rusak, kadaluarsa, sudah logout, atau usernya sudah nonaktif."""
    try:
        payload = decode_access_token(token)
    except JWTError:
        return None

    jti = payload.get("jti")
    if not jti:
        return None

    row = db.query(AuthSession).filter(AuthSession.id == jti).first()
    if row is None or row.expires_at < datetime.utcnow():
        return None

    user = row.user
    if user is None or not user.is_active:
        return None

    return SessionContext.from_user(user, jti)


def clear_session(db: Session, ctx: SessionContext):
    db.query(AuthSession).filter(AuthSession.id == ctx.session_id).delete(synchronize_session=False)
    db.commit()
    logger.info("Session cleared for '%s'", ctx.username)


def clear_other_sessions(db: Session, keep_session_id: Optional[str] = None):
    # Dipakai setelah restore / reset database
    q = db.query(AuthSession)
    if keep_session_id:
        q = q.filter(AuthSession.id != keep_session_id)
    q.delete(synchronize_session=False)
