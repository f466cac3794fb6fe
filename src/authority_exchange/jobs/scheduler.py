"""Background scheduler for recurring maintenance jobs.

Runs inside the API process on the same event loop (AsyncIOScheduler).
The only job today is the account dispute sweep, which resolves submitted
disputes whose auto-unblock deadline has passed.

Every job runs with max_instances=1 and coalesce=True so a slow run never
overlaps the next tick. Running two API replicas is still safe: the sweep
re-checks each dispute under its row lock.
"""

from __future__ import annotations

from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from authority_exchange.config import get_settings
from authority_exchange.infrastructure.database.engine import session_scope
from authority_exchange.logging_config import get_logger
from authority_exchange.services.account_dispute_service import AccountDisputeService

logger = get_logger(__name__)

DISPUTE_SWEEP_JOB_ID = "account_dispute_sweep"

_scheduler: AsyncIOScheduler | None = None


async def run_dispute_sweep() -> int:
    """One sweep pass in a fresh session."""
    async with session_scope() as session:
        try:
            resolved = await AccountDisputeService(session).sweep()
        except Exception:
            logger.exception("job.dispute_sweep_failed")
            raise
    return resolved


def build_scheduler(interval_minutes: int | None = None) -> AsyncIOScheduler:
    """Create a scheduler with the sweep registered but not started."""
    minutes = interval_minutes or get_settings().dispute_sweep_interval_minutes
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_dispute_sweep,
        trigger=IntervalTrigger(minutes=minutes),
        id=DISPUTE_SWEEP_JOB_ID,
        name="Account dispute auto-unblock sweep",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
        replace_existing=True,
    )
    return scheduler


def start_scheduler() -> AsyncIOScheduler:
    """Start the process-wide scheduler. Called during app startup."""
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler()
        _scheduler.start()
        logger.info(
            "scheduler.started",
            jobs=[job.id for job in _scheduler.get_jobs()],
        )
    return _scheduler


def shutdown_scheduler() -> None:
    """Stop the scheduler without waiting for a running job. Called on shutdown."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        logger.info("scheduler.stopped")
        _scheduler = None


def sweep_status() -> tuple[bool, datetime | None]:
    """Whether the scheduler is running, and when the dispute sweep fires next."""
    if _scheduler is None or not _scheduler.running:
        return False, None
    job = _scheduler.get_job(DISPUTE_SWEEP_JOB_ID)
    return True, job.next_run_time if job is not None else None
