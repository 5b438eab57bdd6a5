from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sidiq.core.database import get_db
from sidiq.modules.users import schemas, service
from sidiq.modules.auth.deps import get_current_admin  # Kita kunci pakai ini
from sidiq.modules.auth.session import SessionContext

router = APIRouter(prefix="/users", tags=["User Management"])


# 1. LIST USER AKTIF (Admin & Superadmin)
@router.get("/", response_model=List[schemas.UserListItem])
def read_users(db: Session = Depends(get_db), ctx: SessionContext = Depends(get_current_admin)):
    return service.list_active_users(db, ctx)


# 2. CREATE USER (atau reaktivasi kalau username pernah dihapus)
@router.post("/", response_model=schemas.UserCreated, status_code=201)
def create_user(payload: schemas.UserCreate, db: Session = Depends(get_db),
                ctx: SessionContext = Depends(get_current_admin)):
    row = service.create_user(db, ctx, payload.model_dump(exclude={"confirm_password"}))
    return row


# 3. EDIT USER (nama, role, password opsional)
@router.put("/{user_id}", response_model=schemas.UserResponse)
def update_user(user_id: str, payload: schemas.UserUpdate, db: Session = Depends(get_db),
                ctx: SessionContext = Depends(get_current_admin)):
    return service.update_user(db, ctx, user_id, payload.model_dump(exclude={"confirm_password"}))


# 4. SOFT DELETE USER
@router.delete("/{user_id}")
def delete_user(user_id: str, db: Session = Depends(get_db), ctx: SessionContext = Depends(get_current_admin)):
    service.delete_user(db, ctx, user_id)
    return {"message": "User dinonaktifkan"}
