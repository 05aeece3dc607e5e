"""Kernel messaging – task priority tiers."""
from __future__ import annotations

from enum import Enum

_WEIGHTS = {"critical": 10, "high": 7, "normal": 5, "low": 1}
_TTL_MS = {
    "critical": 5 * 60 * 1000,
    "high": 15 * 60 * 1000,
    "normal": 60 * 60 * 1000,
    "low": 6 * 60 * 60 * 1000,
}
_MAX_RETRIES = {"critical": 5, "high": 4, "normal": 3, "low": 2}


class TaskPriority(str, Enum):
    """Priority tier of a task; each tier has its own broker queue."""

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def weight(self) -> int:
        """Numeric AMQP priority (also the queue's ``x-max-priority``)."""
        return _WEIGHTS[self.value]

    @property
    def ttl_ms(self) -> int:
        return _TTL_MS[self.value]

    @property
    def max_retries(self) -> int:
        return _MAX_RETRIES[self.value]

    @property
    def queue_name(self) -> str:
        return f"tasks.{self.value}"

    @property
    def dead_letter_queue(self) -> str:
        return f"dlq.{self.value}"

    @property
    def dead_letter_routing_key(self) -> str:
        return f"failed.{self.value}"

    @property
    def binding_pattern(self) -> str:
        return f"task.{self.value}.*"

    def routing_key(self, task_type: str) -> str:
        return f"task.{self.value}.{task_type}"


__all__ = ["TaskPriority"]
