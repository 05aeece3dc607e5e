"""Observability health – per-priority alert thresholds."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from taskbroker.kernel.messaging import TaskPriority

__all__ = ["DEFAULT_THRESHOLDS", "HealthThresholds"]


@dataclass(frozen=True)
class HealthThresholds:
    """Limits a queue's stats are checked against.

    Depth and wait time are maxima, throughput is a minimum. The error rate
    limit is shared by all priorities.
    """

    max_queue_depth: Mapping[TaskPriority, int] = field(
        default_factory=lambda: {
            TaskPriority.CRITICAL: 10,
            TaskPriority.HIGH: 50,
            TaskPriority.NORMAL: 100,
            TaskPriority.LOW: 200,
        }
    )
    min_throughput_per_second: Mapping[TaskPriority, float] = field(
        default_factory=lambda: {
            TaskPriority.CRITICAL: 5,
            TaskPriority.HIGH: 2,
            TaskPriority.NORMAL: 1,
            TaskPriority.LOW: 0.5,
        }
    )
    max_avg_wait_time: Mapping[TaskPriority, float] = field(
        default_factory=lambda: {
            TaskPriority.CRITICAL: 30_000,
            TaskPriority.HIGH: 120_000,
            TaskPriority.NORMAL: 300_000,
            TaskPriority.LOW: 900_000,
        }
    )
    max_error_rate: float = 0.05


DEFAULT_THRESHOLDS = HealthThresholds()
