"""ARGUS — Scheduler Jobs.

APScheduler housekeeping: sweeps expired background jobs, releases retries
left stuck by a crash, and deletes old recovered failures once a day.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from argus.config import settings
from argus.database import engine
from argus.jobs.progress import JobProgressStore
from argus.repositories.failure_store import FailureStore
from argus.tracker.failure_tracker import FailureTracker
from argus.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


def _tracker() -> FailureTracker:
    return FailureTracker(FailureStore(engine))


async def sweep_jobs_job(job_store: JobProgressStore):
    """Remove finished jobs past their retention window."""
    try:
        job_store.sweep()
    except Exception as e:
        logger.error(f"Job sweep failed: {e}")


async def release_stale_retries_job():
    try:
        _tracker().release_stale_retries()
    except Exception as e:
        logger.error(f"Stale retry release failed: {e}")


async def daily_cleanup_job():
    """Delete recovered failures older than the configured age."""
    logger.info("Scheduled failure cleanup starting...")
    try:
        _tracker().cleanup_old_failures()
    except Exception as e:
        logger.error(f"Scheduled cleanup failed: {e}")


def start_scheduler(job_store: JobProgressStore):
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        sweep_jobs_job,
        "interval",
        minutes=settings.job_sweep_interval_minutes,
        args=[job_store],
        id="sweep_jobs",
        replace_existing=True,
    )
    scheduler.add_job(
        release_stale_retries_job,
        "interval",
        minutes=settings.stale_retry_minutes,
        id="release_stale_retries",
        replace_existing=True,
    )
    scheduler.add_job(
        daily_cleanup_job,
        "cron",
        hour=settings.cleanup_hour,
        minute=0,
        id="daily_cleanup",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Job sweep every {settings.job_sweep_interval_minutes}m, "
        f"cleanup at {settings.cleanup_hour}:00 UTC"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
