"""Observability events – in-process EventEmitter with a bounded event log."""
from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

from taskbroker.observability.logging import get_logger

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

TASK_ENQUEUED = "task.enqueued"
TASK_PROCESSING_STARTED = "task.processing.started"
TASK_PROCESSING_COMPLETED = "task.processing.completed"
TASK_RETRY_SCHEDULED = "task.retry.scheduled"
TASK_DEAD_LETTER = "task.dead.letter"
HEALTH_ALERT = "health.alert"
HEALTH_REPORT_GENERATED = "health.report.generated"

logger = get_logger(__name__)


def _default_serializer(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return str(obj)


@dataclass(frozen=True)
class LifecycleEvent:
    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "timestamp": self.timestamp.isoformat(), **self.fields}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=_default_serializer)


EventListener = Callable[[LifecycleEvent], None]


class EventEmitter:
    """Buffers lifecycle events and fans them out to subscribed listeners.

    The observability layer either subscribes a listener or drains the
    buffer periodically. A failing listener is logged and skipped.
    """

    def __init__(self, max_buffer: int = 10_000) -> None:
        self._buffer: deque[LifecycleEvent] = deque(maxlen=max_buffer)
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, name: str, **fields: Any) -> LifecycleEvent:
        event = LifecycleEvent(name=name, fields=fields)
        self._buffer.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("event_listener_failed", event_name=name)
        return event

    def named(self, name: str) -> list[LifecycleEvent]:
        return [e for e in self._buffer if e.name == name]

    def drain(self) -> list[LifecycleEvent]:
        events = list(self._buffer)
        self._buffer.clear()
        return events

    async def flush(self) -> int:
        return len(self.drain())

    @property
    def buffered(self) -> list[LifecycleEvent]:
        return list(self._buffer)
