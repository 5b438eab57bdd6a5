from datetime import date, datetime
from pydantic import BaseModel, field_validator
from typing import List, Optional, Literal

# Batas input jamaah per kolom: 1 Milyar. Di atas itu harus lewat admin.
MAX_IURAN = 1_000_000_000
MSG_MAX_IURAN = "Maksimal 1 Milyar (1.000.000.000). Hubungi admin untuk nominal lebih besar."


def _non_negative(v):
    if v is not None and v < 0:
        raise ValueError("Nominal tidak boleh negatif")
    return v


# Form iuran jamaah (5 kolom)
class IuranSubmit(BaseModel):
    iuran_1: int = 0
    iuran_2: int = 0
    iuran_3: int = 0
    iuran_4: int = 0
    iuran_5: int = 0

    @field_validator("iuran_1", "iuran_2", "iuran_3", "iuran_4", "iuran_5")
    @classmethod
    def validate_amount(cls, v):
        _non_negative(v)
        if v > MAX_IURAN:
            raise ValueError(MSG_MAX_IURAN)
        return v


# Edit oleh admin: semua opsional, tanpa batas atas. total_iuran diterima tapi diabaikan.
class IuranUpdate(BaseModel):
    iuran_1: Optional[int] = None
    iuran_2: Optional[int] = None
    iuran_3: Optional[int] = None
    iuran_4: Optional[int] = None
    iuran_5: Optional[int] = None
    total_iuran: Optional[int] = None

    @field_validator("iuran_1", "iuran_2", "iuran_3", "iuran_4", "iuran_5", "total_iuran")
    @classmethod
    def validate_amount(cls, v):
        return _non_negative(v)


class UserBrief(BaseModel):
    username: str
    full_name: str
    is_active: bool

    class Config:
        from_attributes = True


class IuranResponse(BaseModel):
    id: str
    user_id: str
    username: Optional[str] = None
    nama_jamaah: str
    bulan_tahun: date
    timestamp_submitted: Optional[datetime] = None
    iuran_1: int
    iuran_2: int
    iuran_3: int
    iuran_4: int
    iuran_5: int
    total_iuran: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class IuranSummary(BaseModel):
    total_iuran: int
    total_submissions: int
    unique_contributors: int


class IuranListResponse(BaseModel):
    items: List[IuranResponse]
    summary: IuranSummary


class DashboardStats(BaseModel):
    totalJamaah: int = 0
    totalIuranThisMonth: int = 0
    submissionThisMonth: int = 0
    pendingSubmissions: int = 0


class DashboardResponse(BaseModel):
    stats: DashboardStats
    recent_submissions: List[IuranResponse]


class HistoryResponse(BaseModel):
    items: List[IuranResponse]
    count: int
    total: int
    average: float


class FormStatus(BaseModel):
    bulan_tahun: date
    has_submitted: bool
    # Form terkunci setelah submit, jamaah harus masuk mode edit dulu
    locked: bool
    submission: Optional[IuranResponse] = None


class SubmitResult(BaseModel):
    submission: IuranResponse
    total: int
    amount_level: Literal["normal", "high", "very_high"]
