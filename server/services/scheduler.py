"""
Cron Scheduler Service using APScheduler.
Drives the monitor task groups and the retention sweep.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.jobstores.base import JobLookupError
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from core.config import Settings
from core.logging import get_logger

if TYPE_CHECKING:
    from core.cleanup import CleanupService
    from services.monitor import MonitorService

logger = get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None

# Task group -> Settings attribute holding its cron expression
MONITOR_GROUPS = {
    "checks": "cron_checks",
    "cloud": "cron_cloud",
    "catalog": "cron_catalog",
}
RETENTION_JOB_ID = "retention"


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler


def start_scheduler():
    """Start the scheduler if not already running."""
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started", jobs=len(scheduler.get_jobs()))


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")


def parse_cron(cron_expression: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-field (minute first) or 6-field (second first) expression."""
    parts = cron_expression.split()

    if len(parts) >= 6:
        second, minute, hour, day, month, day_of_week = parts[:6]
    else:
        if len(parts) < 5:
            parts.extend(['*'] * (5 - len(parts)))
        second = '0'
        minute, hour, day, month, day_of_week = parts[:5]

    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        timezone=timezone,
    )


def register_cron_job(
    job_id: str,
    cron_expression: str,
    callback: Callable,
    timezone: str = "UTC",
    **kwargs
) -> str:
    """
    Register a cron job with the scheduler.

    Invocations of the same job never overlap: a tick that fires while the
    previous run is still going is dropped, and missed ticks coalesce into one.

    Args:
        job_id: Unique identifier for the job
        cron_expression: 6-field or 5-field cron expression
        callback: Async function to call when job fires
        timezone: Timezone for schedule (default: UTC)
        **kwargs: Additional arguments passed to the callback

    Returns:
        The job_id
    """
    scheduler = get_scheduler()
    scheduler.add_job(
        callback,
        trigger=parse_cron(cron_expression, timezone),
        id=job_id,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs=kwargs
    )

    logger.info("Registered cron job", job_id=job_id, cron=cron_expression)
    return job_id


def remove_cron_job(job_id: str) -> bool:
    """
    Remove a cron job from the scheduler.

    Returns:
        True if job was removed, False if not found
    """
    scheduler = get_scheduler()
    try:
        scheduler.remove_job(job_id)
        logger.info("Removed cron job", job_id=job_id)
        return True
    except JobLookupError:
        logger.warning("Cron job not found", job_id=job_id)
        return False


def get_all_jobs() -> List[Dict]:
    """Get list of all scheduled jobs."""
    scheduler = get_scheduler()
    jobs = []
    for job in scheduler.get_jobs():
        # Jobs added before start() have no computed next run yet
        next_run = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "next_run_time": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })
    return jobs


def register_monitor_jobs(settings: Settings, monitor: "MonitorService",
                          cleanup: Optional["CleanupService"] = None) -> List[str]:
    """Register one cron job per monitor group, plus the daily retention sweep."""
    job_ids = []
    for group, setting in MONITOR_GROUPS.items():
        job_ids.append(register_cron_job(
            f"monitor:{group}", getattr(settings, setting), monitor.run_cycle, group=group
        ))
    if cleanup is not None:
        job_ids.append(register_cron_job(RETENTION_JOB_ID, settings.cron_retention, cleanup.run_once))
    return job_ids
