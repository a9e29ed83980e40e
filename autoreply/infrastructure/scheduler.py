"""
APScheduler setup for the periodic retry-queue sweep.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from autoreply.infrastructure.work_queue import WorkQueue

logger = logging.getLogger(__name__)

RETRY_SWEEP_JOB_ID = "retry_queue_sweep"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler

    if scheduler is None:
        scheduler = AsyncIOScheduler(timezone="UTC")

    return scheduler


async def start_scheduler() -> None:
    """Start the scheduler."""
    sched = get_scheduler()
    if not sched.running:
        sched.start()
        logger.info("Scheduler started")


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
    scheduler = None


async def sweep_retry_queue(queue: WorkQueue) -> None:
    """
    Move retried events back to the head of the main queue.

    This function is called by the scheduler at a fixed interval.
    """
    try:
        moved = await queue.sweep_retry_queue()
        if moved:
            logger.info(f"Moved {moved} messages from retry queue to main queue")
    except Exception as e:
        logger.exception(f"Error sweeping retry queue: {e}")


def schedule_retry_sweep(queue: WorkQueue, interval_ms: int) -> None:
    """
    Register the retry sweep job.

    Args:
        queue: Work queue whose retry list is drained
        interval_ms: Sweep period in milliseconds
    """
    sched = get_scheduler()
    sched.add_job(
        sweep_retry_queue,
        trigger=IntervalTrigger(seconds=interval_ms / 1000),
        id=RETRY_SWEEP_JOB_ID,
        name="Retry queue sweep",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        kwargs={"queue": queue}
    )
    logger.info(f"Scheduled retry sweep every {interval_ms} ms")
