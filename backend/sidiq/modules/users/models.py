import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression
from sidiq.core.database import Base

ROLES = ("superadmin", "admin", "jamaah")


def generate_uuid():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    # Username tidak bisa diubah setelah dibuat
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)

    # Role: superadmin, admin, jamaah
    role = Column(String(20), default="jamaah", nullable=False)

    # Soft delete: user tidak pernah dihapus beneran
    is_active = Column(Boolean, default=True, server_default=expression.true(), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    submissions = relationship("IuranSubmission", back_populates="user")
    sessions = relationship("AuthSession", back_populates="user", cascade="all, delete-orphan")
