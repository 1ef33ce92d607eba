"""APScheduler configuration for background address repair.

Repair is a plain coroutine on the lifecycle manager. This module owns the
timers: a one-shot job after startup and another whenever create/import
leaves address fields empty. Repeated requests replace the pending job, so
at most one repair is queued at a time.
"""

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = structlog.get_logger()

REPAIR_JOB_ID = "address_repair"

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None

# Track repair state for observability
_last_repair_result: dict = {
    "success": None,
    "timestamp": None,
    "error": None,
    "fixed": 0,
    "consecutive_failures": 0,
}


async def _run_repair(repair: Callable[[], Awaitable[int]]) -> None:
    """Run one repair pass and record its outcome."""
    logger.info("Scheduled address repair starting")
    try:
        fixed = await repair()
    except Exception as e:
        _last_repair_result["success"] = False
        _last_repair_result["error"] = str(e)
        _last_repair_result["consecutive_failures"] += 1
        _last_repair_result["timestamp"] = datetime.now(timezone.utc).isoformat()
        logger.error("Scheduled address repair failed", error=str(e))
        return

    _last_repair_result["success"] = True
    _last_repair_result["error"] = None
    _last_repair_result["fixed"] = fixed
    _last_repair_result["consecutive_failures"] = 0
    _last_repair_result["timestamp"] = datetime.now(timezone.utc).isoformat()
    logger.info("Scheduled address repair completed", fixed=fixed)


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler singleton."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler


def start_scheduler() -> None:
    """Start the background scheduler."""
    scheduler = get_scheduler()

    # Don't start twice
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the background scheduler."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None


def schedule_repair(
    repair: Callable[[], Awaitable[int]],
    delay_seconds: float = 0.0,
    scheduler: Optional[AsyncIOScheduler] = None,
) -> None:
    """Queue a one-shot repair pass ``delay_seconds`` from now.

    A pending repair job is replaced rather than duplicated.
    """
    scheduler = scheduler or get_scheduler()
    run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
    scheduler.add_job(
        _run_repair,
        trigger=DateTrigger(run_date=run_date),
        id=REPAIR_JOB_ID,
        name="Address Repair",
        args=[repair],
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.debug("Address repair scheduled", run_date=run_date.isoformat())


def get_scheduler_status() -> dict:
    """Get current scheduler status for health checks."""
    scheduler = get_scheduler()
    repair_job = scheduler.get_job(REPAIR_JOB_ID) if scheduler.running else None

    return {
        "running": scheduler.running,
        "next_repair": repair_job.next_run_time.isoformat() if repair_job and repair_job.next_run_time else None,
        "job_count": len(scheduler.get_jobs()) if scheduler.running else 0,
        "last_repair": _last_repair_result.copy(),
    }
