"""Periodic jobs.

Runs the full-tree sweep: every ``sweep_interval_minutes`` a reconcile of
the root folder is put on the job queue, so changes made on disk behind
the server's back show up even in folders nobody lists.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tagbrowser.config import settings
from tagbrowser.db.repositories import folder_repo
from tagbrowser.services.context import StorageContext
from tagbrowser.services.reconciler import Reconciler

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sweep_root_folder"

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def sweep_root_job(ctx: StorageContext) -> None:
    """Queue a reconcile of the whole tree; the pass itself runs on the queue."""
    try:
        async with ctx.session_factory() as session:
            root = await folder_repo.get_root_folder(session)
        if root is None:
            logger.warning("No root folder yet, skipping sweep")
            return
        Reconciler(ctx).schedule_sync(root.id, root.full_path)
        logger.info("Sweep queued (%d jobs pending)", ctx.queue.pending)
    except Exception:
        logger.error("Failed to queue sweep", exc_info=True)


def start_scheduler(ctx: StorageContext) -> AsyncIOScheduler | None:
    """Start the scheduler with the sweep job, unless sweeping is disabled."""
    global _scheduler

    if not settings.sweep_enabled:
        logger.info("Periodic sweep is disabled")
        return None

    if _scheduler is not None:
        logger.warning("Scheduler already running")
        return _scheduler

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        sweep_root_job,
        IntervalTrigger(minutes=settings.sweep_interval_minutes),
        args=[ctx],
        id=SWEEP_JOB_ID,
        name="Reconcile the whole folder tree",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("Background scheduler started, sweeping every %d minutes", settings.sweep_interval_minutes)

    return _scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown()
        _scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler
