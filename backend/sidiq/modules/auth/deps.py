from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from sidiq.core.database import get_db
from sidiq.modules.auth.session import SessionContext, load_session

# Ini ngasih tau FastAPI kalau token dikirim lewat header "Authorization: Bearer ..."
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


def get_current_session(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> SessionContext:
    ctx = load_session(db, token)
    if ctx is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sesi tidak valid, silakan login kembali",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ctx


def require_roles(*roles):
    def checker(ctx: SessionContext = Depends(get_current_session)) -> SessionContext:
        if not ctx.has_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Akses hanya untuk {', '.join(r.upper() for r in roles)}"
            )
        return ctx
    return checker


get_current_admin = require_roles("superadmin", "admin")
get_current_superadmin = require_roles("superadmin")
