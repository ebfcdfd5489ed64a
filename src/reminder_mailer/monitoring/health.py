"""
Health checks for the reminder mailer

Reports database reachability, reminder counts and host resource usage.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import psutil
from loguru import logger

from ..database.operations import DATABASE_PATH, StorageError, get_reminder_counts


@dataclass(frozen=True)
class SystemMetrics:
    """System resource metrics."""
    cpu_percent: float
    memory_percent: float
    disk_usage_percent: float
    available_memory_gb: float
    disk_free_gb: float


@dataclass(frozen=True)
class HealthThresholds:
    cpu_warning_percent: float = 80.0
    memory_warning_percent: float = 85.0
    disk_warning_percent: float = 80.0
    disk_error_percent: float = 90.0
    min_available_memory_gb: float = 1.0


@dataclass(frozen=True)
class HealthStatus:
    """Overall service health."""
    is_healthy: bool
    timestamp: datetime
    system_metrics: Optional[SystemMetrics]
    reminder_counts: Optional[Dict[str, int]]
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.is_healthy,
            "timestamp": self.timestamp.isoformat(),
            "system": asdict(self.system_metrics) if self.system_metrics else None,
            "reminders": self.reminder_counts,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


def collect_system_metrics(cpu_interval: Optional[float] = None) -> SystemMetrics:
    """Sample CPU, memory and disk usage.

    Args:
        cpu_interval: Seconds to block while sampling CPU. None measures
            since the previous call, which needs a primed counter.
    """
    cpu_percent: float = psutil.cpu_percent(interval=cpu_interval)
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage(os.getcwd() if os.name == 'nt' else '/')

    return SystemMetrics(
        cpu_percent=cpu_percent,
        memory_percent=memory.percent,
        disk_usage_percent=(disk.used / disk.total) * 100,
        available_memory_gb=memory.available / (1024**3),
        disk_free_gb=disk.free / (1024**3),
    )


class HealthMonitor:
    """Runs health checks against one database."""

    def __init__(
        self,
        db_path: Path = DATABASE_PATH,
        thresholds: Optional[HealthThresholds] = None,
        metrics_provider: Callable[[], SystemMetrics] = collect_system_metrics,
    ) -> None:
        self.db_path: Path = db_path
        self.thresholds: HealthThresholds = thresholds or HealthThresholds()
        self.metrics_provider: Callable[[], SystemMetrics] = metrics_provider

        if metrics_provider is collect_system_metrics:
            # The first non-blocking sample in a process is always 0.0
            psutil.cpu_percent(interval=None)

    def _check_system(self, metrics: SystemMetrics, warnings: List[str], errors: List[str]) -> None:
        limits: HealthThresholds = self.thresholds

        if metrics.cpu_percent > limits.cpu_warning_percent:
            warnings.append(f"High CPU usage: {metrics.cpu_percent:.1f}%")

        if metrics.memory_percent > limits.memory_warning_percent:
            warnings.append(f"High memory usage: {metrics.memory_percent:.1f}%")

        if metrics.disk_usage_percent > limits.disk_error_percent:
            errors.append(f"Critical disk usage: {metrics.disk_usage_percent:.1f}%")
        elif metrics.disk_usage_percent > limits.disk_warning_percent:
            warnings.append(f"High disk usage: {metrics.disk_usage_percent:.1f}%")

        if metrics.available_memory_gb < limits.min_available_memory_gb:
            warnings.append(f"Low available memory: {metrics.available_memory_gb:.1f} GB")

    def perform_health_check(self) -> HealthStatus:
        """Check the database and the host.

        The service is unhealthy when the database cannot be queried or
        disk usage is critical; everything else is a warning.
        """
        warnings: List[str] = []
        errors: List[str] = []

        counts: Optional[Dict[str, int]] = None
        if not self.db_path.exists():
            errors.append(f"Database file not found: {self.db_path}")
        else:
            try:
                counts = get_reminder_counts(db_path=self.db_path)
            except StorageError as e:
                errors.append(f"Database unavailable: {e}")

        metrics: Optional[SystemMetrics] = None
        try:
            metrics = self.metrics_provider()
        except (OSError, psutil.Error) as e:
            logger.error(f"Failed to get system metrics: {e}")
            warnings.append(f"System metrics unavailable: {e}")
        else:
            self._check_system(metrics, warnings, errors)

        status: HealthStatus = HealthStatus(
            is_healthy=not errors,
            timestamp=datetime.now(timezone.utc),
            system_metrics=metrics,
            reminder_counts=counts,
            warnings=warnings,
            errors=errors,
        )

        logger.info(
            f"Health check completed - Status: {'HEALTHY' if status.is_healthy else 'UNHEALTHY'}",
            warning_count=len(warnings),
            error_count=len(errors),
        )
        return status
