"""
Background scheduler - runs periodic jobs inside the FastAPI process.

Jobs:
  - Ledger file watch (every WATCH_INTERVAL_SECONDS): reloads the ledger when
    the workbook was changed by someone else
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.application.ledger import LedgerStore

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)

LEDGER_WATCH_JOB_ID = "ledger_file_watch"


def _run_ledger_watch(store: LedgerStore):
    try:
        store.check_for_changes()
    except Exception:
        logger.exception("Ledger file watch job failed")


def start_scheduler(store: LedgerStore, interval_seconds: float = 1.0):
    """Start the background scheduler with the ledger watch job."""
    scheduler.add_job(
        _run_ledger_watch,
        "interval",
        seconds=interval_seconds,
        args=[store],
        id=LEDGER_WATCH_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if not scheduler.running:
        scheduler.start()
    logger.info("Scheduler started: %s (every %ss, %s)", LEDGER_WATCH_JOB_ID, interval_seconds, store.path)


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
