"""Resilience – RetryDelayPolicy."""
from __future__ import annotations

from taskbroker.resilience.retry.backoff import BackoffStrategy, ExponentialBackoff
from taskbroker.resilience.retry.jitter import AdditiveJitter, JitterStrategy

MAX_RETRY_DELAY_MS = 300_000


class RetryDelayPolicy:
    """Backoff plus jitter, hard-capped after the jitter is added."""

    def __init__(
        self,
        backoff: BackoffStrategy,
        jitter: JitterStrategy | None = None,
        max_delay: float = MAX_RETRY_DELAY_MS,
    ) -> None:
        self.backoff = backoff
        self.jitter = jitter or AdditiveJitter()
        self.max_delay = max_delay

    @classmethod
    def exponential(cls, retry_delay: float, max_jitter: float = 1000.0) -> "RetryDelayPolicy":
        """``min(2^(n-1) * retry_delay + U(0, max_jitter), 300000)``."""
        return cls(ExponentialBackoff(retry_delay), AdditiveJitter(max_jitter))

    def compute(self, attempt: int) -> float:
        return min(self.jitter.apply(self.backoff.compute(attempt)), self.max_delay)


__all__ = ["MAX_RETRY_DELAY_MS", "RetryDelayPolicy"]
