from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import os
from dotenv import load_dotenv

load_dotenv()

SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sidiq.db")

# Siapkan connect_args kosong sebagai default
connect_args = {}
engine_kwargs = {}

# Cek apakah URL database menggunakan SQLite
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    # connect_args={"check_same_thread": False} itu wajib khusus buat SQLite
    connect_args = {"check_same_thread": False}

    # SQLite in-memory harus satu koneksi bersama, kalau tidak tiap koneksi dapat DB kosong sendiri
    if SQLALCHEMY_DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args=connect_args,
    **engine_kwargs
)

if engine.dialect.name == "sqlite":
    # SQLite defaultnya tidak cek foreign key, nyalakan per koneksi
    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Dependency: Fungsi ini dipanggil setiap kali ada request ke API yang butuh DB
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
