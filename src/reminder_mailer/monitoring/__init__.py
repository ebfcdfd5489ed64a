"""Health monitoring for the reminder mailer."""

from .health import HealthMonitor, HealthStatus, HealthThresholds, SystemMetrics, collect_system_metrics

__all__ = [
    "HealthMonitor",
    "HealthStatus",
    "HealthThresholds",
    "SystemMetrics",
    "collect_system_metrics",
]
