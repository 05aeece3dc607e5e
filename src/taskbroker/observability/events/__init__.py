"""Observability – task and health lifecycle events."""
from taskbroker.observability.events.emitter import (
    HEALTH_ALERT,
    HEALTH_REPORT_GENERATED,
    TASK_DEAD_LETTER,
    TASK_ENQUEUED,
    TASK_PROCESSING_COMPLETED,
    TASK_PROCESSING_STARTED,
    TASK_RETRY_SCHEDULED,
    EventEmitter,
    EventListener,
    LifecycleEvent,
)

__all__ = [
    "EventEmitter",
    "EventListener",
    "HEALTH_ALERT",
    "HEALTH_REPORT_GENERATED",
    "LifecycleEvent",
    "TASK_DEAD_LETTER",
    "TASK_ENQUEUED",
    "TASK_PROCESSING_COMPLETED",
    "TASK_PROCESSING_STARTED",
    "TASK_RETRY_SCHEDULED",
]
