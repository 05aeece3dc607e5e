"""Application scheduler – APSchedulerAdapter on APScheduler's AsyncIOScheduler."""
from __future__ import annotations

import asyncio
from functools import partial

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from taskbroker.application.scheduler.job import Job
from taskbroker.application.scheduler.scheduler import run_job
from taskbroker.observability.logging import get_logger

__all__ = ["APSchedulerAdapter"]

logger = get_logger(__name__)


class APSchedulerAdapter:
    """Runs interval jobs on the current event loop; stopping cancels them all."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._scheduler: AsyncIOScheduler | None = None

    def add_job(self, job: Job) -> None:
        self._jobs[job.id] = job
        if self._scheduler is not None:
            self._register_job(job)

    def remove_job(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass

    async def start(self) -> None:
        if self._scheduler is not None:
            return
        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        for job in self._jobs.values():
            self._register_job(job)
        self._scheduler.start()
        logger.info("scheduler_started", jobs=sorted(self._jobs))

    def _register_job(self, job: Job) -> None:
        if not job.enabled:
            return
        assert self._scheduler is not None
        self._scheduler.add_job(
            partial(run_job, job),
            trigger="interval",
            seconds=job.interval_seconds,
            id=job.id,
            name=job.name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("scheduler_stopped")

    def list_jobs(self) -> list[Job]:
        return list(self._jobs.values())

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
