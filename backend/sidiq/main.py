import os
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from dotenv import load_dotenv

from sidiq.core.init_db import init_db
from sidiq.core.exceptions import AppError
from sidiq.core.limiter import limiter

# Import Database & Models
from sidiq.core.database import engine, Base, SessionLocal
from sidiq.modules.users import models as user_models  # noqa: F401
from sidiq.modules.iuran import models as iuran_models  # noqa: F401
from sidiq.modules.auth import models as auth_models  # noqa: F401
from sidiq.modules.audit import models as audit_models  # noqa: F401
from sidiq.modules.users.router import router as user_router
from sidiq.modules.auth.router import router as auth_router
from sidiq.modules.iuran.router import router as iuran_router
from sidiq.modules.export.router import router as export_router
from sidiq.modules.backups.router import router as backup_router
from sidiq.modules.audit.router import router as audit_router
from sidiq.system.scheduler import start_scheduler, shutdown_scheduler

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("sidiq")

# --- AUTO MIGRATE (Buat tabel kalau belum ada) ---
Base.metadata.create_all(bind=engine)

app = FastAPI(title="SIDIQ Iuran API", version="1.0.0")

# --- Rate limit (login) ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- CORS ---
origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # Jangan pernah pakai ["*"] di production
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# Error dari access layer -> {"detail": "..."} dengan status yang sesuai
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- Register Router ---
app.include_router(auth_router)
app.include_router(user_router)
app.include_router(iuran_router)
app.include_router(export_router)
app.include_router(backup_router)
app.include_router(audit_router)


@app.on_event("startup")
def startup_event():
    db = SessionLocal()

    try:
        # 1. CREATE SUPERUSER (Auto Generate)
        init_db(db)

        # 2. START SCHEDULER (kalau AUTO_BACKUP_SCHEDULE diisi)
        start_scheduler()

    finally:
        db.close()


@app.on_event("shutdown")
def shutdown_event():
    shutdown_scheduler()


@app.get("/")
def read_root():
    return {"message": "SIDIQ Iuran API is Ready!"}
