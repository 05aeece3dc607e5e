"""Resilience – jitter strategies."""
from __future__ import annotations

import abc
import random
from typing import Callable


class JitterStrategy(abc.ABC):
    """Apply randomness to a backoff delay to spread thundering-herd."""

    @abc.abstractmethod
    def apply(self, delay: float) -> float: ...


class NoJitter(JitterStrategy):
    def apply(self, delay: float) -> float:
        return delay


class AdditiveJitter(JitterStrategy):
    """Adds uniform random in ``[0, max_jitter]`` to the delay."""

    def __init__(
        self,
        max_jitter: float = 1000.0,
        uniform: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self._max_jitter = max_jitter
        self._uniform = uniform

    def apply(self, delay: float) -> float:
        return delay + self._uniform(0, self._max_jitter)


__all__ = ["AdditiveJitter", "JitterStrategy", "NoJitter"]
