"""Resilience – backoff strategies. Delays are in milliseconds."""
from __future__ import annotations

import abc


class BackoffStrategy(abc.ABC):
    """Delay before the *attempt*-th retry (1-based), capped at ``max_delay``."""

    def __init__(self, base_delay: float, max_delay: float | None = None) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay

    @abc.abstractmethod
    def raw_delay(self, attempt: int) -> float: ...

    def compute(self, attempt: int) -> float:
        delay = self.raw_delay(attempt)
        return delay if self.max_delay is None else min(delay, self.max_delay)


class LinearBackoff(BackoffStrategy):
    """``base_delay * attempt``; the reconnect schedule."""

    def raw_delay(self, attempt: int) -> float:
        return self.base_delay * attempt


class ExponentialBackoff(BackoffStrategy):
    """``base_delay * 2^(attempt - 1)``; the task retry schedule."""

    def raw_delay(self, attempt: int) -> float:
        return self.base_delay * 2 ** max(attempt - 1, 0)


__all__ = ["BackoffStrategy", "ExponentialBackoff", "LinearBackoff"]
