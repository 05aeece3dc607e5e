"""Observability health – alert model."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from taskbroker.kernel.messaging import TaskPriority

__all__ = ["AlertSeverity", "AlertType", "HealthAlert", "severity_for_priority"]


class AlertType(str, Enum):
    HIGH_QUEUE_DEPTH = "HIGH_QUEUE_DEPTH"
    LOW_THROUGHPUT = "LOW_THROUGHPUT"
    HIGH_ERROR_RATE = "HIGH_ERROR_RATE"
    CONSUMER_DOWN = "CONSUMER_DOWN"
    CONNECTION_LOST = "CONNECTION_LOST"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_SEVERITY_BY_PRIORITY = {
    TaskPriority.CRITICAL: AlertSeverity.CRITICAL,
    TaskPriority.HIGH: AlertSeverity.HIGH,
    TaskPriority.NORMAL: AlertSeverity.MEDIUM,
    TaskPriority.LOW: AlertSeverity.LOW,
}


def severity_for_priority(priority: TaskPriority) -> AlertSeverity:
    return _SEVERITY_BY_PRIORITY[priority]


@dataclass(frozen=True)
class HealthAlert:
    """One diagnosed problem; ``key`` identifies repeats for de-duplication."""

    type: AlertType
    severity: AlertSeverity
    message: str
    queue_name: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """``type-queue-severity``, plus ``metrics["dimension"]`` when one is set.

        A wait-time violation is reported as ``HIGH_QUEUE_DEPTH`` with
        ``dimension="wait_time"`` and is de-duplicated apart from a depth one.
        """
        key = f"{self.type.value}-{self.queue_name or 'global'}-{self.severity.value}"
        dimension = self.metrics.get("dimension")
        return f"{key}-{dimension}" if dimension else key

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "queue_name": self.queue_name,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "metrics": dict(self.metrics),
        }
