import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from sidiq.core.database import get_db
from sidiq.core.limiter import limiter, LOGIN_RATE_LIMIT
from sidiq.modules.users import models
from sidiq.modules.auth.deps import get_current_session
from sidiq.modules.auth.session import SessionContext, open_session, clear_session
from sidiq.system.procedures import authenticate_user

router = APIRouter(tags=["Authentication"])
logger = logging.getLogger(__name__)


@router.post("/auth/token")
@limiter.limit(LOGIN_RATE_LIMIT)
def login_for_access_token(request: Request, form_data: OAuth2PasswordRequestForm = Depends(),
                           db: Session = Depends(get_db)):
    # 1. Cek kredensial lewat prosedur authenticate_user
    rows = authenticate_user(db, form_data.username, form_data.password)

    # 2. Kosong = username/password salah (atau user sudah nonaktif)
    if not rows:
        logger.warning("Failed login for '%s'", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Username atau password salah",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 3. Kalau lolos, buka sesi + access token
    user = db.query(models.User).filter(models.User.id == rows[0]["user_id"]).first()
    token, ctx = open_session(db, user)

    return {"access_token": token, "token_type": "bearer", "user": ctx.model_dump(exclude={"session_id"})}


@router.post("/auth/logout")
def logout(ctx: SessionContext = Depends(get_current_session), db: Session = Depends(get_db)):
    clear_session(db, ctx)
    return {"message": "Logout berhasil"}


@router.get("/auth/me")
def read_me(ctx: SessionContext = Depends(get_current_session)):
    return {**ctx.model_dump(exclude={"session_id"}), "is_authenticated": ctx.is_authenticated}
