"""Poll scheduler that records jobs instead of running them."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from itsm_grounding.monitor.application import IPollScheduler


class FakePollScheduler(IPollScheduler):
    def __init__(self) -> None:
        self.jobs: dict[str, dict[str, Any]] = {}
        self.removed: list[str] = []

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[Any]],
        seconds: int,
        first_run_in: float,
    ) -> None:
        self.jobs[job_id] = {"func": func, "seconds": seconds, "first_run_in": first_run_in}

    def remove_job(self, job_id: str) -> bool:
        self.removed.append(job_id)
        return self.jobs.pop(job_id, None) is not None

    async def run(self, job_id: str) -> None:
        await self.jobs[job_id]["func"]()
