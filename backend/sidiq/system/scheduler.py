from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Setup Logger
logger = logging.getLogger(__name__)
logging.getLogger('apscheduler').setLevel(logging.ERROR)

# Format cron 5 bagian "m h d M w", misal "0 2 * * *" = tiap jam 2 pagi. Kosong = mati.
AUTO_BACKUP_SCHEDULE = os.getenv("AUTO_BACKUP_SCHEDULE", "")
AUTO_BACKUP_JOB_ID = "auto-backup"

scheduler = BackgroundScheduler()


def run_auto_backup():
    """Fungsi yang dieksekusi saat jadwal tiba"""
    from sidiq.core.database import SessionLocal
    from sidiq.system.backup_manager import create_backup

    db = SessionLocal()
    try:
        path = create_backup(db)
        logger.info("[AUTO BACKUP] Success: %s", path)
    except Exception as e:
        logger.error("[AUTO BACKUP] Failed: %s", e)
    finally:
        db.close()


def parse_schedule(expression: str) -> CronTrigger:
    # Kita pecah string "m h d M w"
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid schedule format: {expression!r}")

    return CronTrigger(
        minute=parts[0], hour=parts[1], day=parts[2], month=parts[3], day_of_week=parts[4]
    )


def schedule_auto_backup(expression: str = None) -> bool:
    expression = AUTO_BACKUP_SCHEDULE if expression is None else expression
    if not expression.strip():
        return False

    try:
        trigger = parse_schedule(expression)
    except ValueError as e:
        logger.warning("Auto backup disabled: %s", e)
        return False

    scheduler.add_job(run_auto_backup, trigger, id=AUTO_BACKUP_JOB_ID, replace_existing=True)
    logger.info("Auto backup scheduled (%s)", expression)
    return True


def start_scheduler():
    if schedule_auto_backup() and not scheduler.running:
        scheduler.start()
        logger.info("Backup scheduler started")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
