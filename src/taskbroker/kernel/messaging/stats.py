"""Kernel messaging – per-queue health aggregates."""
from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
from typing import Any


@dataclasses.dataclass
class QueueHealthStats:
    """Rolling aggregate for one consumed queue.

    Mutated on every processed message and refreshed from broker-reported
    counts by the periodic metrics tick. Lives for the process lifetime.
    """

    queue_name: str
    message_count: int = 0
    consumer_count: int = 1
    avg_wait_time: float = 0.0
    throughput_per_second: float = 0.0
    error_rate: float = 0.0
    last_processed_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))

    def copy(self) -> "QueueHealthStats":
        return dataclasses.replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_name": self.queue_name,
            "message_count": self.message_count,
            "consumer_count": self.consumer_count,
            "avg_wait_time": self.avg_wait_time,
            "throughput_per_second": self.throughput_per_second,
            "error_rate": self.error_rate,
            "last_processed_at": self.last_processed_at.isoformat(),
        }


@dataclasses.dataclass(frozen=True)
class QueueInfo:
    """Broker-reported queue counters (passive declare result)."""

    name: str
    message_count: int
    consumer_count: int


__all__ = ["QueueHealthStats", "QueueInfo"]
