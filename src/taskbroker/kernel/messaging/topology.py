"""Kernel messaging – fixed broker topology and per-tier queue descriptors."""
from __future__ import annotations

import dataclasses
from typing import Any

from taskbroker.kernel.messaging.priority import TaskPriority

PROCESSING_EXCHANGE = "processing"
DELAYED_EXCHANGE = "processing.delayed"
DEAD_LETTER_EXCHANGE = "dlx"
HEALTH_QUEUE = "health"

DEAD_LETTER_TTL_MS = 7 * 24 * 60 * 60 * 1000
HEALTH_QUEUE_TTL_MS = 30_000

# Without the delayed-message plugin a delayed publish waits in the wait queue
# of the smallest bucket not shorter than its delay. Each wait queue has a
# queue-level TTL, so every message in it expires in arrival order.
DELAY_WAIT_QUEUE_PREFIX = "processing.delayed.wait"
DELAY_BUCKET_HEADER = "delay-bucket-ms"
DELAY_BUCKETS_MS: tuple[int, ...] = (
    100, 250, 500,
    1_000, 1_500, 2_000, 3_000, 5_000, 7_500,
    10_000, 15_000, 20_000, 30_000, 45_000,
    60_000, 90_000, 120_000, 180_000, 240_000, 300_000,
    600_000, 900_000, 1_800_000, 3_600_000,
    7_200_000, 14_400_000, 21_600_000, 43_200_000, 86_400_000,
)

PRIORITIES: tuple[TaskPriority, ...] = (
    TaskPriority.CRITICAL,
    TaskPriority.HIGH,
    TaskPriority.NORMAL,
    TaskPriority.LOW,
)
TASK_QUEUES: tuple[str, ...] = tuple(p.queue_name for p in PRIORITIES)


def delay_bucket(delay_ms: float) -> int:
    """Smallest bucket holding *delay_ms*; longer delays get the largest bucket."""
    for bucket in DELAY_BUCKETS_MS:
        if delay_ms <= bucket:
            return bucket
    return DELAY_BUCKETS_MS[-1]


def delay_wait_queue(bucket_ms: int) -> str:
    return f"{DELAY_WAIT_QUEUE_PREFIX}.{bucket_ms}"


@dataclasses.dataclass(frozen=True)
class QueueConfiguration:
    """Static descriptor of one priority queue, used when declaring topology."""

    name: str
    priority: int
    durable: bool = True
    dead_letter_exchange: str | None = None
    dead_letter_routing_key: str | None = None
    message_ttl: int | None = None
    max_retries: int | None = None

    @classmethod
    def for_priority(cls, priority: TaskPriority) -> "QueueConfiguration":
        return cls(
            name=priority.queue_name,
            priority=priority.weight,
            durable=True,
            dead_letter_exchange=DEAD_LETTER_EXCHANGE,
            dead_letter_routing_key=priority.dead_letter_routing_key,
            message_ttl=priority.ttl_ms,
            max_retries=priority.max_retries,
        )

    def arguments(self) -> dict[str, Any]:
        args: dict[str, Any] = {"x-max-priority": self.priority}
        if self.dead_letter_exchange:
            args["x-dead-letter-exchange"] = self.dead_letter_exchange
        if self.dead_letter_routing_key:
            args["x-dead-letter-routing-key"] = self.dead_letter_routing_key
        if self.message_ttl:
            args["x-message-ttl"] = self.message_ttl
        return args


__all__ = [
    "DEAD_LETTER_EXCHANGE",
    "DEAD_LETTER_TTL_MS",
    "DELAYED_EXCHANGE",
    "DELAY_BUCKETS_MS",
    "DELAY_BUCKET_HEADER",
    "DELAY_WAIT_QUEUE_PREFIX",
    "HEALTH_QUEUE",
    "HEALTH_QUEUE_TTL_MS",
    "PRIORITIES",
    "PROCESSING_EXCHANGE",
    "QueueConfiguration",
    "TASK_QUEUES",
    "delay_bucket",
    "delay_wait_queue",
]
