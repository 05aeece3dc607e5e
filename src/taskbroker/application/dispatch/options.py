"""Application dispatch – ConsumerOptions."""
from __future__ import annotations

from dataclasses import dataclass

__all__ = ["ConsumerOptions"]


@dataclass(frozen=True)
class ConsumerOptions:
    """Per-consumer delivery and retry settings.

    ``prefetch`` bounds the unacknowledged deliveries a consumer may hold and
    is the only backpressure control. ``retry_delay`` is the base of the
    exponential backoff, in milliseconds.
    """

    prefetch: int = 1
    retry_delay: float = 1000
    max_retries: int = 3
    enable_dead_letter: bool = True

    def __post_init__(self) -> None:
        if self.prefetch < 1:
            raise ValueError("ConsumerOptions 'prefetch' must be >= 1")
        if self.retry_delay < 0:
            raise ValueError("ConsumerOptions 'retry_delay' must be >= 0")
        if self.max_retries < 0:
            raise ValueError("ConsumerOptions 'max_retries' must be >= 0")
