"""Application scheduler – InMemoryScheduler, ticked by hand from tests."""
from __future__ import annotations

from taskbroker.application.scheduler.job import Job
from taskbroker.application.scheduler.scheduler import JobExecutedEvent, run_job

__all__ = ["InMemoryScheduler"]


class InMemoryScheduler:
    """Holds jobs without timers. ``trigger`` and ``tick`` stand in for the clock."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self.is_running = False
        self.execution_log: list[JobExecutedEvent] = []

    def add_job(self, job: Job) -> None:
        self._jobs[job.id] = job

    def remove_job(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    def list_jobs(self) -> list[Job]:
        return list(self._jobs.values())

    async def start(self) -> None:
        self.is_running = True

    async def stop(self) -> None:
        self.is_running = False

    async def trigger(self, job_id: str) -> JobExecutedEvent:
        """Run one job now, whether or not it is enabled. Unknown ids raise ``KeyError``."""
        if job_id not in self._jobs:
            raise KeyError(f"no job registered as {job_id!r}")
        event = await run_job(self._jobs[job_id])
        self.execution_log.append(event)
        return event

    async def tick(self) -> list[JobExecutedEvent]:
        """Run every enabled job once, in registration order."""
        return [await self.trigger(job.id) for job in self.list_jobs() if job.enabled]
