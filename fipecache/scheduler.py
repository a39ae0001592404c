# fipecache/scheduler.py
import os
import time
from typing import Dict, Optional
from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from .db import SessionLocal
from .exceptions import RefreshInProgressError
from .fipe_client import FipeClient
from .notify import send_refresh_failure, send_refresh_report
from .services import FipeRefreshService
from .utils import logger

load_dotenv()
CHECK_INTERVAL_HOURS = float(os.getenv("FIPE_CHECK_INTERVAL_HOURS", "1"))

scheduler = BackgroundScheduler()


def refresh_if_stale(force: bool = False) -> Optional[Dict[str, int]]:
    """Refresh the cache when it is due (or always with `force`).

    Returns the refresh counts, or None when nothing was done.
    """
    db = SessionLocal()
    client = FipeClient()
    try:
        service = FipeRefreshService(db, client)
        if not force and not service.needs_update():
            logger.info("FIPE cache is fresh, skipping refresh")
            return None
        started = time.monotonic()
        try:
            stats = service.perform_full_update()
        except RefreshInProgressError as e:
            logger.info("Skipping refresh: %s", e)
            return None
        except Exception as e:
            send_refresh_failure(str(e))
            raise
        send_refresh_report(stats, time.monotonic() - started)
        return stats
    finally:
        client.close()
        db.close()


def _scheduled_refresh():
    try:
        refresh_if_stale()
    except Exception as e:
        logger.exception("Scheduled FIPE refresh failed: %s", e)


def start_scheduler():
    if scheduler.running:
        return scheduler
    scheduler.add_job(_scheduled_refresh, 'interval', hours=CHECK_INTERVAL_HOURS,
                      id="fipe-refresh", replace_existing=True, max_instances=1, coalesce=True)
    scheduler.start()
    logger.info("Scheduler started, checking FIPE staleness every %s h", CHECK_INTERVAL_HOURS)
    return scheduler


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
