"""
Scheduler for the cache refresh and analytics sync jobs

Uses APScheduler cron triggers; each job is a thin wrapper around the
orchestrator / portfolio service and never raises into the scheduler.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from zoneinfo import ZoneInfo

from marketing_hub.config import get_settings
from marketing_hub.services.container import get_services
from marketing_hub.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


# Jobs

async def refresh_cache_job():
    """Refresh the point cache for every company (default range)"""
    try:
        report = await get_services().orchestrator.refresh_cache()
        log.info(f"Cache refresh job: {report.succeeded} ok, {report.failed} failed, {report.skipped} skipped")
    except Exception as e:
        log.error(f"Cache refresh job error: {str(e)}")


async def sync_analytics_job():
    """Incremental daily-row sync into normalized storage"""
    try:
        report = await get_services().orchestrator.sync_analytics()
        log.info(f"Analytics sync job: {report.succeeded} ok, {report.failed} failed, {report.skipped} skipped")
    except Exception as e:
        log.error(f"Analytics sync job error: {str(e)}")


async def portfolio_cache_job():
    """Rebuild every user's default-range portfolio"""
    try:
        report = await get_services().portfolio.rebuild_all()
        log.info(f"Portfolio cache job: {report.succeeded} users rebuilt, {report.failed} failed")
    except Exception as e:
        log.error(f"Portfolio cache job error: {str(e)}")


async def sweep_cache_job():
    """Retention sweep of old point cache entries"""
    try:
        get_services().orchestrator.sweep_cache()
    except Exception as e:
        log.error(f"Cache sweep job error: {str(e)}")


JOBS = [
    (refresh_cache_job, "refresh_cache", "Point Cache Refresh", "refresh_cache_schedule"),
    (sync_analytics_job, "sync_analytics", "Normalized Analytics Sync", "sync_analytics_schedule"),
    (portfolio_cache_job, "portfolio_cache", "Portfolio Cache Rebuild", "portfolio_cache_schedule"),
    (sweep_cache_job, "sweep_cache", "Point Cache Retention Sweep", "cache_sweep_schedule"),
]


def setup_scheduler():
    """
    Register all jobs.

    Schedules are crontab strings from settings, in scheduler_timezone:
    - Cache refresh:   daily
    - Analytics sync:  twice daily
    - Portfolio cache: daily, after the cache refresh window
    - Cache sweep:     daily
    """
    timezone = ZoneInfo(settings.scheduler_timezone)
    for func, job_id, name, schedule_setting in JOBS:
        scheduler.add_job(
            func,
            trigger=CronTrigger.from_crontab(getattr(settings, schedule_setting), timezone=timezone),
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1
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
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        }
        for job in scheduler.get_jobs()
    ]
