"""APScheduler setup for the periodic sync trigger."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from email_ai.agent.controller import SyncController
    from email_ai.config import Settings

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_cycle"
DEFAULT_INITIAL_DELAY_SECONDS = 60


def create_sync_scheduler(
    controller: SyncController,
    settings: Settings,
    initial_delay_seconds: int = DEFAULT_INITIAL_DELAY_SECONDS,
) -> AsyncIOScheduler:
    """Return an AsyncIOScheduler that fires controller.run_sync_cycle() periodically.

    The first run happens ``initial_delay_seconds`` from now, then every
    ``settings.sync_interval_seconds``.  Overlap is also refused by the
    controller itself; max_instances/coalesce keep the job queue from piling
    up behind a slow cycle.

    The caller is responsible for calling scheduler.start() and scheduler.shutdown().
    """
    scheduler = AsyncIOScheduler()
    first_run = datetime.now(timezone.utc) + timedelta(seconds=max(initial_delay_seconds, 0))
    scheduler.add_job(
        controller.run_sync_cycle,
        "interval",
        seconds=settings.sync_interval_seconds,
        next_run_time=first_run,
        id=SYNC_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Sync scheduled every %ds (first run in %ds)",
        settings.sync_interval_seconds,
        initial_delay_seconds,
    )
    return scheduler
