import os
import logging
from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks, UploadFile, File
from fastapi.responses import FileResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session
from sidiq.core.cache import query_cache
from sidiq.core.database import get_db, SessionLocal
from sidiq.core.init_db import init_db
from sidiq.modules.audit import service as audit
from sidiq.modules.auth.deps import get_current_superadmin
from sidiq.modules.auth.session import SessionContext
from sidiq.system import backup_manager
from sidiq.system.backup_manager import BackupError

router = APIRouter(tags=["Backups"])
logger = logging.getLogger(__name__)


class ResetRequest(BaseModel):
    confirm: str  # harus persis "RESET"


def perform_backup(filepath):
    # Jalan di background, jadi pakai session sendiri (session request sudah ditutup)
    db = SessionLocal()
    try:
        backup_manager.create_backup(db, filepath)
    except Exception as e:
        logger.error("Backup failed: %s", e)
    finally:
        db.close()


def _after_bulk_change(db: Session, ctx: SessionContext, action: str, counts: dict):
    # Superadmin bawaan harus selalu ada, lalu semua cache dibuang
    init_db(db)
    audit.record(db, ctx.user_id, action, "*", new_values=counts)
    db.commit()
    query_cache.clear()


@router.post("/backups/create")
async def create_backup(background_tasks: BackgroundTasks, ctx: SessionContext = Depends(get_current_superadmin)):
    filename = backup_manager.new_backup_filename()
    filepath = backup_manager.backup_path(filename)

    # Jalankan di Background biar UI gak lemot
    background_tasks.add_task(perform_backup, filepath)
    logger.info("Backup %s requested by '%s'", filename, ctx.username)

    return {"message": "Backup started in background", "filename": filename}


@router.get("/backups/list")
def list_backups(ctx: SessionContext = Depends(get_current_superadmin)):
    return backup_manager.list_backups()


@router.get("/backups/download/{filename}")
def download_backup(filename: str, ctx: SessionContext = Depends(get_current_superadmin)):
    try:
        file_path = backup_manager.backup_path(filename)
    except BackupError as e:
        raise HTTPException(400, str(e))
    if not os.path.exists(file_path):
        raise HTTPException(404, "File not found")

    return FileResponse(file_path, filename=filename, media_type="application/zip")


@router.delete("/backups/delete/{filename}")
def delete_backup(filename: str, ctx: SessionContext = Depends(get_current_superadmin)):
    try:
        deleted = backup_manager.delete_backup(filename)
    except BackupError as e:
        raise HTTPException(400, str(e))
    if not deleted:
        raise HTTPException(404, "File not found")
    return {"message": "Backup deleted"}


@router.post("/backups/restore/{filename}")
def restore_backup(filename: str, db: Session = Depends(get_db),
                   ctx: SessionContext = Depends(get_current_superadmin)):
    try:
        file_path = backup_manager.backup_path(filename)
        if not os.path.exists(file_path):
            raise HTTPException(404, "File not found")
        data = backup_manager.read_backup(file_path)
    except BackupError as e:
        raise HTTPException(400, str(e))

    counts = backup_manager.restore_backup(db, data)
    _after_bulk_change(db, ctx, "RESTORE", counts)
    return {"message": "Restore berhasil, silakan login ulang", "restored": counts}


@router.post("/backups/restore-upload")
def restore_uploaded_backup(file: UploadFile = File(...), db: Session = Depends(get_db),
                            ctx: SessionContext = Depends(get_current_superadmin)):
    try:
        data = backup_manager.read_backup(file.file)
    except BackupError as e:
        raise HTTPException(400, str(e))

    counts = backup_manager.restore_backup(db, data)
    _after_bulk_change(db, ctx, "RESTORE", counts)
    return {"message": "Restore berhasil, silakan login ulang", "restored": counts}


@router.post("/backups/reset")
def reset_database(payload: ResetRequest, db: Session = Depends(get_db),
                   ctx: SessionContext = Depends(get_current_superadmin)):
    if payload.confirm != "RESET":
        raise HTTPException(400, 'Ketik "RESET" untuk konfirmasi. Tindakan ini tidak dapat dibatalkan!')

    counts = backup_manager.reset_database(db, keep_session_id=ctx.session_id)
    _after_bulk_change(db, ctx, "RESET", counts)
    return {"message": "Database berhasil direset", "deleted": counts}
