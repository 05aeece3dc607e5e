"""Application scheduler – the Scheduler port and the shared job runner."""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from taskbroker.application.scheduler.job import Job
from taskbroker.observability.logging import get_logger

__all__ = ["JobExecutedEvent", "Scheduler", "run_job"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class JobExecutedEvent:
    """One tick of a periodic job."""

    job_id: str
    started_at: datetime
    duration_ms: float
    error: str | None = None
    error_type: str | None = None

    @property
    def success(self) -> bool:
        return self.error_type is None


async def run_job(job: Job) -> JobExecutedEvent:
    """Await ``job.handler`` once.

    A failing tick is logged and reported in the returned event; it must not
    stop the next tick, so the exception does not propagate.
    """
    started_at = datetime.now(UTC)
    t0 = time.perf_counter()
    try:
        await job.handler()
    except Exception as exc:
        logger.exception("scheduled_job_failed", job_id=job.id, job_name=job.name)
        return JobExecutedEvent(
            job_id=job.id,
            started_at=started_at,
            duration_ms=(time.perf_counter() - t0) * 1000,
            error=str(exc),
            error_type=type(exc).__name__,
        )
    return JobExecutedEvent(job_id=job.id, started_at=started_at, duration_ms=(time.perf_counter() - t0) * 1000)


@runtime_checkable
class Scheduler(Protocol):
    """Port: own periodic jobs keyed by id; adding an existing id replaces it."""

    def add_job(self, job: Job) -> None: ...
    def remove_job(self, job_id: str) -> None: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def list_jobs(self) -> list[Job]: ...
