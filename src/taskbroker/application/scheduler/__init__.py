"""Application scheduler – periodic job port, APScheduler adapter and in-memory fake."""
from taskbroker.application.scheduler.apscheduler import APSchedulerAdapter
from taskbroker.application.scheduler.in_memory import InMemoryScheduler
from taskbroker.application.scheduler.job import Job
from taskbroker.application.scheduler.scheduler import (
    JobExecutedEvent,
    Scheduler,
    run_job,
)

__all__ = [
    "APSchedulerAdapter",
    "InMemoryScheduler",
    "Job",
    "JobExecutedEvent",
    "Scheduler",
    "run_job",
]
