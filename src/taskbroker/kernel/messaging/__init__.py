"""Kernel messaging – task envelope, priorities, topology and queue stats."""
from taskbroker.kernel.messaging.message import (
    DeadLetterMessage,
    MessageMetadata,
    TaskMessage,
)
from taskbroker.kernel.messaging.priority import TaskPriority
from taskbroker.kernel.messaging.stats import QueueHealthStats, QueueInfo
from taskbroker.kernel.messaging.topology import (
    DEAD_LETTER_EXCHANGE,
    DEAD_LETTER_TTL_MS,
    DELAY_BUCKET_HEADER,
    DELAY_BUCKETS_MS,
    DELAY_WAIT_QUEUE_PREFIX,
    DELAYED_EXCHANGE,
    HEALTH_QUEUE,
    HEALTH_QUEUE_TTL_MS,
    PRIORITIES,
    PROCESSING_EXCHANGE,
    TASK_QUEUES,
    QueueConfiguration,
    delay_bucket,
    delay_wait_queue,
)

__all__ = [
    "DEAD_LETTER_EXCHANGE",
    "DEAD_LETTER_TTL_MS",
    "DELAYED_EXCHANGE",
    "DELAY_BUCKETS_MS",
    "DELAY_BUCKET_HEADER",
    "DELAY_WAIT_QUEUE_PREFIX",
    "DeadLetterMessage",
    "HEALTH_QUEUE",
    "HEALTH_QUEUE_TTL_MS",
    "MessageMetadata",
    "PRIORITIES",
    "PROCESSING_EXCHANGE",
    "QueueConfiguration",
    "QueueHealthStats",
    "QueueInfo",
    "TASK_QUEUES",
    "TaskMessage",
    "TaskPriority",
    "delay_bucket",
    "delay_wait_queue",
]
