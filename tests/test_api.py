#!/usr/bin/env python3
"""Tests for the HTTP API."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.reminder_mailer.api.app import create_app
from src.reminder_mailer.config.settings import Settings
from src.reminder_mailer.database.operations import StorageError, get_reminder
from src.reminder_mailer.monitoring.health import HealthMonitor, SystemMetrics

from .conftest import RecordingMailer

CALM_HOST: SystemMetrics = SystemMetrics(
    cpu_percent=5.0, memory_percent=30.0, disk_usage_percent=40.0, available_memory_gb=4.0, disk_free_gb=50.0
)


def make_client(tmp_path: Path, mailer: RecordingMailer, cron_secret: str | None = None) -> TestClient:
    settings = Settings(database_path=tmp_path / "api.db", cron_secret=cron_secret)
    app = create_app(settings, mailer)
    app.state.health_monitor = HealthMonitor(settings.database_path, metrics_provider=lambda: CALM_HOST)
    return TestClient(app)


@pytest.fixture
def client(tmp_path: Path, mailer: RecordingMailer) -> TestClient:
    return make_client(tmp_path, mailer)


def test_create_reminder(client: TestClient, tmp_path: Path, mailer: RecordingMailer) -> None:
    response = client.post(
        "/reminders",
        json={"email": "user@example.com", "date": "2025-10-24", "time": "03:33", "timezone": "+02:00"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["confirmationSent"] is True
    stored = get_reminder(body["reminderId"], db_path=tmp_path / "api.db")
    assert (stored.date, stored.time) == ("2025-10-24", "01:33")
    assert len(mailer.confirmations) == 1


def test_create_reminder_validation(client: TestClient) -> None:
    response = client.post("/reminders", json={"email": "user@example.com"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Missing required fields"}


def test_create_reminder_with_malformed_json(client: TestClient) -> None:
    response = client.post("/reminders", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_create_reminder_database_unavailable(client: TestClient) -> None:
    with patch(
        "src.reminder_mailer.handlers.submission.add_reminder",
        side_effect=StorageError("database is locked", transient=True),
    ):
        response = client.post("/reminders", json={"email": "user@example.com", "date": "2025-10-24", "time": "10:00"})

    assert response.status_code == 503
    assert response.json()["error"] == "DB_UNAVAILABLE"


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_cron_run_without_due_reminders(client: TestClient, method: str) -> None:
    response = client.request(method, "/cron/run")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["results"] == []
    assert "timestamp" in body


def test_cron_run_sends_due_reminder(client: TestClient, mailer: RecordingMailer) -> None:
    created = client.post("/reminders", json={"email": "user@example.com", "date": "2001-01-01", "time": "09:00"})

    response = client.post("/cron/run")

    assert response.json()["results"] == [
        {"id": created.json()["reminderId"], "email": "user@example.com", "success": True}
    ]
    assert len(mailer.reminders) == 1
    assert client.get("/cron/run").json()["results"] == []


def test_cron_run_requires_secret(tmp_path: Path, mailer: RecordingMailer) -> None:
    client = make_client(tmp_path, mailer, cron_secret="s3cret")

    assert client.get("/cron/run").status_code == 401
    assert client.get("/cron/run", headers={"Authorization": "Bearer nope"}).json() == {
        "success": False,
        "message": "Unauthorized",
    }
    assert client.get("/cron/run", headers={"Authorization": "Bearer s3cret"}).status_code == 200


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["healthy"] is True
    assert response.json()["reminders"]["total"] == 0


def test_health_reports_unavailable_database(client: TestClient, tmp_path: Path) -> None:
    (tmp_path / "api.db").unlink()

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["healthy"] is False
