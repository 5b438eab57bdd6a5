import os
import logging
from sqlalchemy.orm import Session
from sidiq.modules.users import models
from sidiq.core.security import get_password_hash
from dotenv import load_dotenv

# Load env variables
load_dotenv()

logger = logging.getLogger(__name__)


def init_db(db: Session):
    """
    Fungsi ini akan dipanggil setiap kali server start (dan setelah restore).
    Tugasnya mengecek apakah Superadmin sudah ada.
    """

    # Ambil data dari .env
    # Kalau gak ada di .env, kita pakai default (biar gak error)
    username = os.getenv("FIRST_SUPERUSER", "superadmin")
    password = os.getenv("FIRST_SUPERUSER_PASSWORD", "superadmin123")
    full_name = os.getenv("FIRST_SUPERUSER_FULL_NAME", "Super Administrator")

    # 1. Cek apakah user superadmin sudah ada di database?
    user = db.query(models.User).filter(models.User.username == username).first()

    if not user:
        logger.info("[INIT] Superadmin not found. Creating default superuser: %s", username)

        # 2. Buat Superadmin Baru
        user_in = models.User(
            username=username,
            full_name=full_name,
            hashed_password=get_password_hash(password),
            role="superadmin",  # <--- PENTING: satu-satunya superadmin
            is_active=True,
        )

        db.add(user_in)
        db.commit()
        db.refresh(user_in)
        logger.info("[INIT] Superuser created successfully!")
        return user_in

    # Superadmin bawaan tidak boleh nonaktif / turun role
    if not user.is_active or user.role != "superadmin":
        user.is_active = True
        user.role = "superadmin"
        db.commit()
        logger.warning("[INIT] Superuser '%s' restored to active superadmin", username)
    else:
        logger.info("[INIT] Superuser '%s' already exists. Skipping creation.", username)
    return user
