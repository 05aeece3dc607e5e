"""Application dispatch – priority enqueue, consumers and retry/dead-letter policy."""
from taskbroker.application.dispatch.dispatcher import (
    METRICS_JOB_ID,
    Processor,
    RetryPolicyFactory,
    TaskDispatcher,
)
from taskbroker.application.dispatch.options import ConsumerOptions

__all__ = [
    "ConsumerOptions",
    "METRICS_JOB_ID",
    "Processor",
    "RetryPolicyFactory",
    "TaskDispatcher",
]
