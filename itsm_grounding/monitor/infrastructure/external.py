"""
Monitor External Services
==========================

APScheduler-backed poll scheduler for the change monitor.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from itsm_grounding.monitor.application import IPollScheduler
from itsm_grounding.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class MonitorScheduler(IPollScheduler):
    """
    Wrapper for APScheduler running the monitor's polling jobs.

    Manages the lifecycle of the scheduler; jobs are added and removed by
    monitor handles while it runs.
    """

    def __init__(self):
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._running:
            logger.warning("Monitor scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.start()
        self._running = True
        logger.info("Monitor scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler, dropping every remaining job."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._scheduler = None
        self._running = False
        logger.info("Monitor scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[Any]],
        seconds: int,
        first_run_in: float,
    ) -> None:
        if self._scheduler is None:
            raise RuntimeError("Monitor scheduler not started. Call start() first.")

        self._scheduler.add_job(
            func,
            "interval",
            seconds=seconds,
            id=job_id,
            name=job_id,
            next_run_time=datetime.now(timezone.utc) + timedelta(seconds=first_run_in),
            misfire_grace_time=seconds,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )

    def remove_job(self, job_id: str) -> bool:
        if self._scheduler is None:
            return False
        try:
            self._scheduler.remove_job(job_id)
            return True
        except JobLookupError:
            return False

    def job_ids(self) -> List[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
