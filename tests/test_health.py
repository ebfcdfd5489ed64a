#!/usr/bin/env python3
"""Tests for health monitoring."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from src.reminder_mailer.database.operations import add_reminder
from src.reminder_mailer.monitoring.health import HealthMonitor, SystemMetrics, collect_system_metrics


def metrics(**overrides: float) -> SystemMetrics:
    values = dict(
        cpu_percent=10.0,
        memory_percent=40.0,
        disk_usage_percent=50.0,
        available_memory_gb=8.0,
        disk_free_gb=100.0,
    )
    values.update(overrides)
    return SystemMetrics(**values)


def test_healthy_database_and_host(db_path: Path) -> None:
    add_reminder("a@b.co", "2025-10-24", "15:10", db_path=db_path)

    status = HealthMonitor(db_path, metrics_provider=metrics).perform_health_check()

    assert status.is_healthy is True
    assert status.errors == []
    assert status.warnings == []
    assert status.reminder_counts["total"] == 1
    data = status.to_dict()
    assert data["healthy"] is True
    assert data["reminders"]["pending"] == 1
    assert data["system"]["cpu_percent"] == 10.0


def test_missing_database_is_unhealthy(tmp_path: Path) -> None:
    status = HealthMonitor(tmp_path / "absent.db", metrics_provider=metrics).perform_health_check()

    assert status.is_healthy is False
    assert "Database file not found" in status.errors[0]
    assert status.reminder_counts is None


def test_uninitialized_database_is_unhealthy(tmp_path: Path) -> None:
    empty: Path = tmp_path / "empty.db"
    empty.touch()

    status = HealthMonitor(empty, metrics_provider=metrics).perform_health_check()

    assert status.is_healthy is False
    assert status.errors[0].startswith("Database unavailable")


def test_resource_thresholds(db_path: Path) -> None:
    busy = HealthMonitor(
        db_path,
        metrics_provider=lambda: metrics(cpu_percent=95.0, memory_percent=90.0, available_memory_gb=0.5),
    ).perform_health_check()
    assert busy.is_healthy is True
    assert len(busy.warnings) == 3

    full = HealthMonitor(db_path, metrics_provider=lambda: metrics(disk_usage_percent=95.0)).perform_health_check()
    assert full.is_healthy is False
    assert full.errors == ["Critical disk usage: 95.0%"]


def test_metrics_failure_is_a_warning(db_path: Path) -> None:
    def broken() -> SystemMetrics:
        raise OSError("no /proc")

    status = HealthMonitor(db_path, metrics_provider=broken).perform_health_check()

    assert status.is_healthy is True
    assert status.system_metrics is None
    assert "System metrics unavailable" in status.warnings[0]


def test_collect_system_metrics_returns_percentages() -> None:
    sample = collect_system_metrics()
    assert 0.0 <= sample.disk_usage_percent <= 100.0
    assert sample.disk_free_gb >= 0.0


def test_default_monitor_primes_cpu_counter(db_path: Path) -> None:
    with patch("src.reminder_mailer.monitoring.health.psutil.cpu_percent", return_value=0.0) as cpu_percent:
        HealthMonitor(db_path)
    cpu_percent.assert_called_once_with(interval=None)

    with patch("src.reminder_mailer.monitoring.health.psutil.cpu_percent") as cpu_percent:
        HealthMonitor(db_path, metrics_provider=metrics)
    cpu_percent.assert_not_called()


def test_blocking_cpu_sample_is_reported() -> None:
    with patch("src.reminder_mailer.monitoring.health.psutil.cpu_percent", return_value=93.0) as cpu_percent:
        sample = collect_system_metrics(cpu_interval=0.5)

    cpu_percent.assert_called_once_with(interval=0.5)
    assert sample.cpu_percent == 93.0
