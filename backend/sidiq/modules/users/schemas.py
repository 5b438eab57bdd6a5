import re
from datetime import datetime
from pydantic import BaseModel, field_validator, model_validator
from typing import Optional, Literal

USERNAME_REGEX = re.compile(r"^[a-zA-Z0-9._]+$")
# Minimal ada satu huruf dan satu angka
PASSWORD_REGEX = re.compile(r"^(?=.*[a-zA-Z])(?=.*\d)")


def check_password(value: str) -> str:
    if len(value) < 6:
        raise ValueError("Password minimal 6 karakter")
    if not PASSWORD_REGEX.match(value):
        raise ValueError("Password harus mengandung huruf dan angka")
    return value


# Schema buat Create User (dari form tambah user di admin)
class UserCreate(BaseModel):
    username: str
    full_name: str
    role: Literal["admin", "jamaah"]
    password: str
    confirm_password: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Username minimal 3 karakter")
        if not USERNAME_REGEX.match(v):
            raise ValueError("Username hanya boleh berisi huruf, angka, titik (.), dan underscore (_)")
        return v

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Nama lengkap minimal 2 karakter")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return check_password(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Konfirmasi password tidak cocok")
        return self


# Edit user: username readonly, password opsional (kosong = tidak diganti)
class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[Literal["admin", "jamaah"]] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Nama lengkap minimal 2 karakter")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if not v:
            return None
        return check_password(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password and self.password != self.confirm_password:
            raise ValueError("Konfirmasi password tidak cocok")
        return self


# Schema buat Response (Password dihilangkan biar aman)
class UserResponse(BaseModel):
    id: str
    username: str
    full_name: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserListItem(UserResponse):
    can_edit: bool = False
    can_delete: bool = False


class UserCreated(BaseModel):
    user_id: str
    username: str
    full_name: str
    role: str
    is_reactivated: bool = False
