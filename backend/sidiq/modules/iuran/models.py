from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, BigInteger, ForeignKey, UniqueConstraint, event
from sqlalchemy.orm import relationship
from sidiq.core.database import Base
from sidiq.modules.users.models import generate_uuid

IURAN_FIELDS = ("iuran_1", "iuran_2", "iuran_3", "iuran_4", "iuran_5")


def compute_total(values) -> int:
    """Jumlah iuran_1..iuran_5. None dihitung 0."""
    return sum(int(values.get(f) or 0) for f in IURAN_FIELDS)


class IuranSubmission(Base):
    __tablename__ = "iuran_submissions"
    # Satu jamaah cuma boleh punya satu baris per bulan (target upsert)
    __table_args__ = (UniqueConstraint("user_id", "bulan_tahun", name="uq_iuran_user_bulan"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Denormalisasi biar export / pencarian gak perlu join
    nama_jamaah = Column(String(255), nullable=False)
    username = Column(String(100), nullable=True)

    # Selalu tanggal 1, jadi penanda bulan
    bulan_tahun = Column(Date, nullable=False, index=True)
    timestamp_submitted = Column(DateTime, default=datetime.utcnow)

    iuran_1 = Column(BigInteger, default=0, nullable=False)
    iuran_2 = Column(BigInteger, default=0, nullable=False)
    iuran_3 = Column(BigInteger, default=0, nullable=False)
    iuran_4 = Column(BigInteger, default=0, nullable=False)
    iuran_5 = Column(BigInteger, default=0, nullable=False)
    total_iuran = Column(BigInteger, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="submissions")

    def recalculate_total(self):
        self.total_iuran = compute_total({f: getattr(self, f) for f in IURAN_FIELDS})
        return self.total_iuran


# total_iuran tidak pernah dipercaya dari input, selalu dihitung ulang sebelum disimpan
@event.listens_for(IuranSubmission, "before_insert")
@event.listens_for(IuranSubmission, "before_update")
def _recalculate_total(mapper, connection, target):
    target.recalculate_total()
