import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from config import get_settings
from database import SessionLocal
from modules.contracts.services.cleanup import delete_orphaned_assets
from modules.contracts.services.storage import get_asset_storage

logger = logging.getLogger(__name__)


def start_cleanup_job() -> BackgroundScheduler:
    settings = get_settings()
    storage = get_asset_storage(settings)
    min_age = timedelta(hours=settings.orphan_asset_min_age_hours)
    scheduler = BackgroundScheduler()

    def job():
        with SessionLocal() as session:
            delete_orphaned_assets(session, storage, min_age=min_age)

    scheduler.add_job(job, 'interval', hours=settings.asset_sweep_interval_hours)
    scheduler.start()
    logger.info(f"Orphaned asset sweep scheduled every {settings.asset_sweep_interval_hours}h")
    return scheduler
