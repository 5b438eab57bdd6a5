from typing import Literal, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sidiq.core.database import get_db
from sidiq.modules.iuran import schemas, service
from sidiq.modules.auth.deps import get_current_session, get_current_admin
from sidiq.modules.auth.session import SessionContext

router = APIRouter(prefix="/iuran", tags=["Iuran"])


# --- JAMAAH ---

# Status form bulan ini: sudah submit atau belum (kalau sudah, form terkunci)
@router.get("/form", response_model=schemas.FormStatus)
def read_form_status(db: Session = Depends(get_db), ctx: SessionContext = Depends(get_current_session)):
    return service.form_status(db, ctx)


# Submit iuran bulan ini. edit=true dipakai setelah jamaah membuka kunci form.
@router.post("/form", response_model=schemas.SubmitResult, status_code=201)
def submit_form(payload: schemas.IuranSubmit, edit: bool = False, db: Session = Depends(get_db),
                ctx: SessionContext = Depends(get_current_session)):
    return service.submit_member_form(db, ctx, payload.model_dump(), edit=edit)


@router.get("/history", response_model=schemas.HistoryResponse)
def read_history(db: Session = Depends(get_db), ctx: SessionContext = Depends(get_current_session)):
    return service.member_history(db, ctx)


# --- ADMIN ---

@router.get("/", response_model=schemas.IuranListResponse)
def read_submissions(
        search: str = "",
        month: Optional[str] = None,  # "2024-06"
        sort_by: Literal["date", "amount", "name"] = "date",
        db: Session = Depends(get_db),
        ctx: SessionContext = Depends(get_current_admin)
):
    items = service.filter_and_sort(service.list_active_submissions(db), search, month or "", sort_by)
    return {"items": items, "summary": service.summarize(items)}


@router.get("/dashboard", response_model=schemas.DashboardResponse)
def read_dashboard(db: Session = Depends(get_db), ctx: SessionContext = Depends(get_current_admin)):
    return {
        "stats": service.get_dashboard_stats(db),
        "recent_submissions": service.list_active_submissions(db)[:5],
    }


@router.put("/{submission_id}", response_model=schemas.IuranResponse)
def update_submission(submission_id: str, payload: schemas.IuranUpdate, db: Session = Depends(get_db),
                      ctx: SessionContext = Depends(get_current_admin)):
    # Edit tanpa batas atas khusus admin, jamaah edit lewat POST /form?edit=true
    return service.update_iuran(db, ctx, submission_id, payload.model_dump(exclude_unset=True))


@router.delete("/{submission_id}")
def delete_submission(submission_id: str, db: Session = Depends(get_db),
                      ctx: SessionContext = Depends(get_current_admin)):
    service.delete_iuran(db, ctx, submission_id)
    return {"message": "Data iuran berhasil dihapus"}
