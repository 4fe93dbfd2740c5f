"""
Scheduler for the nightly statistics recompute

Background recomputes are triggered by every mutation; the nightly job is a
safety net that rebuilds the statistics tables even if a trigger was missed.
"""
import asyncio
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from scriptboard.config import get_settings
from scriptboard.services.stats_processor import run_stats_recompute
from scriptboard.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


async def nightly_recompute():
    """Full recompute off the event loop"""
    log.info("Starting scheduled stats recompute...")
    result = await asyncio.get_running_loop().run_in_executor(None, run_stats_recompute)
    if result is None:
        log.error("Scheduled stats recompute failed")
    else:
        log.info(f"Scheduled stats recompute completed in {result['duration_seconds']:.1f}s")


def setup_scheduler():
    """
    Register jobs.

    - Stats recompute: daily at scheduled_recompute_hour:minute
      (scheduler_timezone), when enable_scheduled_recompute is set.
    """
    if not settings.enable_scheduled_recompute:
        log.info("Scheduled recompute disabled")
        return

    scheduler.add_job(
        nightly_recompute,
        trigger=CronTrigger(
            hour=settings.scheduled_recompute_hour,
            minute=settings.scheduled_recompute_minute,
            timezone=ZoneInfo(settings.scheduler_timezone),
        ),
        id="stats_recompute",
        name="Nightly Stats Recompute",
        replace_existing=True,
        max_instances=1,
    )


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
    log.info("Scheduler stopped")


def get_scheduled_jobs() -> list:
    """List of scheduled job info dicts"""
    jobs = []
    for job in scheduler.get_jobs():
        next_run = job.next_run_time
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })
    return jobs
