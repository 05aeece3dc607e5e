"""Observability health – HealthMonitor.

Periodically diagnoses the broker connection, every consumed queue and the
process itself, and raises de-duplicated :class:`HealthAlert` events. The
monitor only reads dispatch state; it never mutates it.

Jobs (registered on the scheduler by :meth:`HealthMonitor.start`):

* ``health-monitor.check`` every 30 s – :meth:`perform_health_check`
* ``health-monitor.report`` every 5 min – :meth:`generate_health_report`
"""
from __future__ import annotations

import asyncio
import json
import platform
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import aio_pika
import psutil

from taskbroker.adapters.rabbitmq import HEALTH_CHECK_CHANNEL, ConnectionManager
from taskbroker.application.dispatch import TaskDispatcher
from taskbroker.application.scheduler import Job, Scheduler
from taskbroker.kernel.messaging import HEALTH_QUEUE, TASK_QUEUES, QueueHealthStats, TaskPriority
from taskbroker.kernel.time import Clock, SystemClock
from taskbroker.observability.events import HEALTH_ALERT, HEALTH_REPORT_GENERATED, EventEmitter
from taskbroker.observability.health.alerts import (
    AlertSeverity,
    AlertType,
    HealthAlert,
    severity_for_priority,
)
from taskbroker.observability.health.thresholds import DEFAULT_THRESHOLDS, HealthThresholds
from taskbroker.observability.logging import get_logger

__all__ = [
    "ALERT_COOLDOWN",
    "CHECK_JOB_ID",
    "CurrentHealthStatus",
    "HealthMonitor",
    "HealthTrend",
    "MAX_HISTORY_SIZE",
    "REPORT_JOB_ID",
    "SystemMetrics",
]

logger = get_logger(__name__)

ALERT_COOLDOWN = timedelta(hours=1)
MAX_HISTORY_SIZE = 100
RECENT_ALERTS = 10
HEALTHY_SCORE = 80
MEMORY_WARNING_BYTES = 1024 * 1024 * 1024
LOOP_LAG_WARNING_MS = 100.0

CHECK_JOB_ID = "health-monitor.check"
REPORT_JOB_ID = "health-monitor.report"


class HealthTrend(str, Enum):
    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


@dataclass(frozen=True)
class SystemMetrics:
    memory_rss_bytes: int
    event_loop_lag_ms: float
    uptime_seconds: float
    python_version: str = field(default_factory=platform.python_version)

    def to_dict(self) -> dict[str, Any]:
        return {
            "memory_rss_bytes": self.memory_rss_bytes,
            "event_loop_lag_ms": self.event_loop_lag_ms,
            "uptime_seconds": self.uptime_seconds,
            "python_version": self.python_version,
        }


@dataclass(frozen=True)
class CurrentHealthStatus:
    healthy: bool
    issues: list[str] = field(default_factory=list)


class HealthMonitor:
    """Rate-limited alerting, scores, trends and reports over queue health."""

    def __init__(
        self,
        connection: ConnectionManager,
        dispatcher: TaskDispatcher,
        emitter: EventEmitter | None = None,
        *,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
        check_interval: float = 30.0,
        report_interval: float = 300.0,
        process: psutil.Process | None = None,
    ) -> None:
        self._connection = connection
        self._dispatcher = dispatcher
        self._emitter = emitter or EventEmitter()
        self._scheduler = scheduler
        self._clock = clock or SystemClock()
        self._thresholds = thresholds
        self._check_interval = check_interval
        self._report_interval = report_interval
        self._process = process or psutil.Process()
        self._history: dict[str, deque[QueueHealthStats]] = {}
        self._alert_history: dict[str, datetime] = {}
        self._recent_alerts: deque[HealthAlert] = deque(maxlen=RECENT_ALERTS)

    @property
    def thresholds(self) -> HealthThresholds:
        return self._thresholds

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.add_job(
            Job(
                id=CHECK_JOB_ID,
                name="Queue health check",
                handler=self.perform_health_check,
                interval_seconds=self._check_interval,
            )
        )
        self._scheduler.add_job(
            Job(
                id=REPORT_JOB_ID,
                name="Queue health report",
                handler=self._run_report,
                interval_seconds=self._report_interval,
            )
        )
        logger.info("health_monitor_started")

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.remove_job(CHECK_JOB_ID)
        self._scheduler.remove_job(REPORT_JOB_ID)
        logger.info("health_monitor_stopped")

    async def _run_report(self) -> None:
        await self.generate_health_report()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def perform_health_check(self) -> None:
        """Run every check in turn; a failing step is logged and the cycle continues."""
        steps = (
            self.check_connection_health,
            self.check_queue_health,
            self.check_critical_queues,
            self.check_system_health,
        )
        for step in steps:
            try:
                await step()
            except Exception:  # noqa: BLE001
                logger.exception("health_check_step_failed", step=step.__name__)

    async def check_connection_health(self) -> bool:
        """Check the broker by publishing a ping to the ``health`` queue."""
        if not self._connection.is_connected():
            self.raise_alert(
                HealthAlert(
                    type=AlertType.CONNECTION_LOST,
                    severity=AlertSeverity.CRITICAL,
                    message="RabbitMQ connection lost",
                    timestamp=self._clock.now(),
                    metrics={"connection_status": "disconnected"},
                )
            )
            return False

        try:
            channel = await self._connection.get_channel(HEALTH_CHECK_CHANNEL)
            await channel.declare_queue(HEALTH_QUEUE, passive=True)
            ping = {"type": "ping", "timestamp": self._clock.now().isoformat()}
            await channel.default_exchange.publish(
                aio_pika.Message(body=json.dumps(ping).encode("utf-8"), content_type="application/json"),
                routing_key=HEALTH_QUEUE,
            )
        except Exception as exc:  # noqa: BLE001
            self.raise_alert(
                HealthAlert(
                    type=AlertType.CONNECTION_LOST,
                    severity=AlertSeverity.HIGH,
                    message=f"Connection health check failed: {exc}",
                    timestamp=self._clock.now(),
                    metrics={"error": str(exc)},
                )
            )
            return False

        logger.debug("connection_health_check_passed")
        return True

    async def check_queue_health(self) -> list[QueueHealthStats]:
        stats_list = await self._dispatcher.get_queue_health()
        for stats in stats_list:
            self.analyze_queue_stats(stats)
            self._record_history(stats)
        return stats_list

    def analyze_queue_stats(self, stats: QueueHealthStats) -> list[HealthAlert]:
        """Build alerts for every threshold *stats* violates and raise them."""
        now = self._clock.now()
        thresholds = self._thresholds
        priority = self.extract_priority_from_queue_name(stats.queue_name)
        alerts: list[HealthAlert] = []

        if priority is not None:
            severity = severity_for_priority(priority)
            max_depth = thresholds.max_queue_depth[priority]
            if stats.message_count > max_depth:
                alerts.append(
                    HealthAlert(
                        type=AlertType.HIGH_QUEUE_DEPTH,
                        severity=severity,
                        queue_name=stats.queue_name,
                        message=f"High queue depth: {stats.message_count} messages (threshold: {max_depth})",
                        timestamp=now,
                        metrics={"priority": priority.value, "message_count": stats.message_count},
                    )
                )
            min_throughput = thresholds.min_throughput_per_second[priority]
            if stats.throughput_per_second < min_throughput:
                alerts.append(
                    HealthAlert(
                        type=AlertType.LOW_THROUGHPUT,
                        severity=severity,
                        queue_name=stats.queue_name,
                        message=(
                            f"Low throughput: {stats.throughput_per_second:.2f} msg/s "
                            f"(threshold: {min_throughput})"
                        ),
                        timestamp=now,
                        metrics={"current_throughput": stats.throughput_per_second},
                    )
                )
            max_wait = thresholds.max_avg_wait_time[priority]
            if stats.avg_wait_time > max_wait:
                alerts.append(
                    HealthAlert(
                        type=AlertType.HIGH_QUEUE_DEPTH,
                        severity=severity,
                        queue_name=stats.queue_name,
                        message=f"High average wait time: {stats.avg_wait_time:.0f}ms (threshold: {max_wait}ms)",
                        timestamp=now,
                        metrics={"dimension": "wait_time", "current_wait_time": stats.avg_wait_time},
                    )
                )

        if stats.error_rate > thresholds.max_error_rate:
            alerts.append(
                HealthAlert(
                    type=AlertType.HIGH_ERROR_RATE,
                    severity=AlertSeverity.HIGH,
                    queue_name=stats.queue_name,
                    message=(
                        f"High error rate: {stats.error_rate * 100:.2f}% "
                        f"(threshold: {thresholds.max_error_rate * 100:.2f}%)"
                    ),
                    timestamp=now,
                    metrics={"current_error_rate": stats.error_rate},
                )
            )

        if stats.consumer_count == 0:
            alerts.append(
                HealthAlert(
                    type=AlertType.CONSUMER_DOWN,
                    severity=AlertSeverity.CRITICAL,
                    queue_name=stats.queue_name,
                    message=f"No active consumers for queue {stats.queue_name}",
                    timestamp=now,
                    metrics={"consumer_count": stats.consumer_count},
                )
            )

        for alert in alerts:
            self.raise_alert(alert)
        return alerts

    async def check_critical_queues(self) -> None:
        for queue_name in TASK_QUEUES:
            try:
                await self._connection.get_queue_info(queue_name)
            except Exception as exc:  # noqa: BLE001
                self.raise_alert(
                    HealthAlert(
                        type=AlertType.CONSUMER_DOWN,
                        severity=AlertSeverity.HIGH,
                        queue_name=queue_name,
                        message=f"Critical queue {queue_name} is not available: {exc}",
                        timestamp=self._clock.now(),
                        metrics={"error": str(exc)},
                    )
                )

    async def check_system_health(self) -> SystemMetrics:
        """Sample RSS and event-loop lag; log warnings, never alert."""
        metrics = await self._sample_system_metrics()
        if metrics.memory_rss_bytes > MEMORY_WARNING_BYTES:
            logger.warning("high_memory_usage", rss_mb=round(metrics.memory_rss_bytes / 1024 / 1024, 2))
        if metrics.event_loop_lag_ms > LOOP_LAG_WARNING_MS:
            logger.warning("high_event_loop_lag", lag_ms=round(metrics.event_loop_lag_ms, 2))
        return metrics

    async def _sample_system_metrics(self) -> SystemMetrics:
        loop = asyncio.get_running_loop()
        started = loop.time()
        await asyncio.sleep(0)
        lag_ms = (loop.time() - started) * 1000
        return SystemMetrics(
            memory_rss_bytes=self._process.memory_info().rss,
            event_loop_lag_ms=lag_ms,
            uptime_seconds=max(time.time() - self._process.create_time(), 0.0),
        )

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def raise_alert(self, alert: HealthAlert) -> bool:
        """Emit *alert* unless the same key fired within the last hour.

        Returns ``True`` when the alert was emitted.
        """
        now = self._clock.now()
        self._alert_history = {
            key: raised_at
            for key, raised_at in self._alert_history.items()
            if now - raised_at < ALERT_COOLDOWN
        }
        if alert.key in self._alert_history:
            logger.debug("health_alert_suppressed", key=alert.key)
            return False

        self._alert_history[alert.key] = now
        self._recent_alerts.append(alert)
        logger.error(
            "health_alert",
            type=alert.type.value,
            severity=alert.severity.value,
            queue=alert.queue_name,
            message=alert.message,
            metrics=alert.metrics,
        )
        self._emitter.emit(
            HEALTH_ALERT,
            alert=alert,
            type=alert.type.value,
            severity=alert.severity.value,
            queue_name=alert.queue_name,
        )
        return True

    # ------------------------------------------------------------------
    # Scores, trends, history
    # ------------------------------------------------------------------

    def calculate_queue_health_score(self, stats: QueueHealthStats) -> int:
        """100 minus independent deductions, floored at 0."""
        priority = self.extract_priority_from_queue_name(stats.queue_name)
        if priority is None:
            return 100

        thresholds = self._thresholds
        score = 100
        if stats.message_count > thresholds.max_queue_depth[priority]:
            score -= 30
        if stats.throughput_per_second < thresholds.min_throughput_per_second[priority]:
            score -= 25
        if stats.error_rate > thresholds.max_error_rate:
            score -= 25
        if stats.avg_wait_time > thresholds.max_avg_wait_time[priority]:
            score -= 20
        if stats.consumer_count == 0:
            score -= 50
        return max(0, score)

    def calculate_health_trend(self, queue_name: str) -> HealthTrend:
        history = self._history.get(queue_name)
        if not history or len(history) < 3:
            return HealthTrend.STABLE

        delta = self.calculate_queue_health_score(history[-1]) - self.calculate_queue_health_score(history[-3])
        if delta > 10:
            return HealthTrend.IMPROVING
        if delta < -10:
            return HealthTrend.DEGRADING
        return HealthTrend.STABLE

    @staticmethod
    def extract_priority_from_queue_name(queue_name: str) -> TaskPriority | None:
        """``tasks.high`` / ``dlq.high`` -> HIGH; ``None`` for non-priority queues."""
        for segment in queue_name.split("."):
            try:
                return TaskPriority(segment)
            except ValueError:
                continue
        return None

    @staticmethod
    def severity_for_priority(priority: TaskPriority) -> AlertSeverity:
        return severity_for_priority(priority)

    def _record_history(self, stats: QueueHealthStats) -> None:
        history = self._history.setdefault(stats.queue_name, deque(maxlen=MAX_HISTORY_SIZE))
        history.append(stats.copy())

    async def get_health_history(self, queue_name: str, limit: int = 50) -> list[QueueHealthStats]:
        """The most recent *limit* samples, oldest first."""
        history = self._history.get(queue_name)
        if not history or limit <= 0:
            return []
        return [s.copy() for s in list(history)[-limit:]]

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def generate_detailed_health_report(self) -> dict[str, Any]:
        stats_list = await self._dispatcher.get_queue_health()
        system = await self._sample_system_metrics()
        now = self._clock.now()
        active_alerts = [
            key for key, raised_at in self._alert_history.items() if now - raised_at < ALERT_COOLDOWN
        ]
        return {
            "timestamp": now.isoformat(),
            "connection_status": "connected" if self._connection.is_connected() else "disconnected",
            "queues": [
                {
                    **stats.to_dict(),
                    "health": self.calculate_queue_health_score(stats),
                    "trend": self.calculate_health_trend(stats.queue_name).value,
                }
                for stats in stats_list
            ],
            "system_metrics": system.to_dict(),
            "alerts": {
                "total": len(active_alerts),
                "recent": [alert.to_dict() for alert in self._recent_alerts],
            },
        }

    async def generate_health_report(self) -> dict[str, Any] | None:
        """Build the detailed report and emit it as ``health.report.generated``."""
        try:
            report = await self.generate_detailed_health_report()
        except Exception:  # noqa: BLE001
            logger.exception("health_report_failed")
            return None

        logger.info(
            "health_report",
            connection_status=report["connection_status"],
            queues=len(report["queues"]),
            alerts=report["alerts"]["total"],
        )
        self._emitter.emit(HEALTH_REPORT_GENERATED, report=report)
        return report

    async def get_current_health_status(self) -> CurrentHealthStatus:
        """Healthy iff connected and every queue scores at least 80."""
        issues: list[str] = []
        if not self._connection.is_connected():
            issues.append("RabbitMQ connection lost")

        for stats in await self._dispatcher.get_queue_health():
            score = self.calculate_queue_health_score(stats)
            if score < HEALTHY_SCORE:
                issues.append(f"Queue {stats.queue_name} health score: {score}/100")

        return CurrentHealthStatus(healthy=not issues, issues=issues)
