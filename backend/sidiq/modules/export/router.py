import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session
from sidiq.core.database import get_db
from sidiq.core.utils import format_currency
from sidiq.modules.auth.deps import get_current_admin
from sidiq.modules.auth.session import SessionContext
from sidiq.modules.iuran import service as iuran_service
from sidiq.system import exporter

router = APIRouter(prefix="/export", tags=["Export"])
logger = logging.getLogger(__name__)


def _filtered(db, start_date, end_date, jamaah_name):
    items = iuran_service.list_active_submissions(db)
    return items, exporter.filter_submissions(items, start_date, end_date, jamaah_name)


# Preview sebelum download: jumlah, total, dan 10 baris pertama
@router.get("/preview")
def preview_export(
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        jamaah_name: str = "",
        db: Session = Depends(get_db),
        ctx: SessionContext = Depends(get_current_admin)
):
    items, filtered = _filtered(db, start_date, end_date, jamaah_name)
    total = sum(i.total_iuran for i in filtered)
    return {
        "total_records": len(items),
        "filtered_records": len(filtered),
        "total_iuran": total,
        "total_iuran_formatted": format_currency(total),
        "rows": filtered[:10],
    }


@router.get("/{fmt}")
def download_export(
        fmt: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        jamaah_name: str = "",
        db: Session = Depends(get_db),
        ctx: SessionContext = Depends(get_current_admin)
):
    if fmt not in exporter.FORMATS:
        raise HTTPException(400, f"Format tidak didukung: {fmt}")

    _, filtered = _filtered(db, start_date, end_date, jamaah_name)
    if not filtered:
        raise HTTPException(404, "Tidak ada data untuk di-export dengan filter yang dipilih")

    content = exporter.export(filtered, fmt)
    filename = exporter.export_filename(fmt)
    logger.info("Export %s (%d rows) by '%s'", fmt, len(filtered), ctx.username)

    return Response(
        content=content,
        media_type=exporter.FORMATS[fmt],
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
