"""Observability – queue health checks, alerts, scores and reports."""
from taskbroker.observability.health.alerts import (
    AlertSeverity,
    AlertType,
    HealthAlert,
    severity_for_priority,
)
from taskbroker.observability.health.monitor import (
    ALERT_COOLDOWN,
    CHECK_JOB_ID,
    MAX_HISTORY_SIZE,
    REPORT_JOB_ID,
    CurrentHealthStatus,
    HealthMonitor,
    HealthTrend,
    SystemMetrics,
)
from taskbroker.observability.health.thresholds import DEFAULT_THRESHOLDS, HealthThresholds

__all__ = [
    "ALERT_COOLDOWN",
    "AlertSeverity",
    "AlertType",
    "CHECK_JOB_ID",
    "CurrentHealthStatus",
    "DEFAULT_THRESHOLDS",
    "HealthAlert",
    "HealthMonitor",
    "HealthThresholds",
    "HealthTrend",
    "MAX_HISTORY_SIZE",
    "REPORT_JOB_ID",
    "SystemMetrics",
    "severity_for_priority",
]
