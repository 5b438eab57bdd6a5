from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from sidiq.core.database import Base
from sidiq.modules.users.models import generate_uuid


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    # Pelaku aksi, bukan pemilik data
    user_id = Column(String(36), nullable=True, index=True)

    action = Column(String(20))  # INSERT, UPDATE, UPSERT, DELETE, RESTORE, RESET
    table_name = Column(String(100))
    record_id = Column(String(36), nullable=True)

    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)

    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
