#!/usr/bin/env python3
"""Tests for settings loading and logging configuration."""

from __future__ import annotations

import time
from pathlib import Path

import pytest
from loguru import logger

from src.reminder_mailer.config import (
    ConfigurationError,
    LoggedOperation,
    LoggingConfig,
    load_settings,
    parse_database_url,
    setup_logging,
)
from src.reminder_mailer.security import AppConfig, CredentialManager, EmailCredentials

MASTER_PASSWORD: str = "test_master_password_123!"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("sqlite:///reminders.db", Path("reminders.db")),
        ("sqlite:////var/lib/reminders.db", Path("/var/lib/reminders.db")),
        ("data/reminders.db", Path("data/reminders.db")),
    ],
)
def test_parse_database_url(url: str, expected: Path) -> None:
    assert parse_database_url(url) == expected


@pytest.mark.parametrize("url", ["", "sqlite:///", "postgres://user@host/db"])
def test_parse_database_url_rejects(url: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_database_url(url)


def test_defaults() -> None:
    settings = load_settings({})

    assert settings.database_path == Path("reminders.db")
    assert settings.default_timezone == "UTC"
    assert settings.cron_secret is None
    assert settings.email_config is None
    assert settings.create_email_service().preview_mode is True
    assert settings.log_level == "INFO"
    assert settings.log_file is None


def test_environment_values() -> None:
    settings = load_settings({
        "DATABASE_URL": "sqlite:///data/app.db",
        "CRON_SECRET": "s3cret",
        "DEFAULT_TIMEZONE": "America/New_York",
        "SMTP_SERVER": "smtp.example.com",
        "SMTP_PORT": "2525",
        "SMTP_USERNAME": "user",
        "SMTP_PASSWORD": "pass",
        "EMAIL_FROM": "reminders@example.com",
        "MAX_EMAILS_PER_HOUR": "20",
        "LOG_LEVEL": "debug",
        "LOG_FILE": "logs/app.log",
    })

    assert settings.database_path == Path("data/app.db")
    assert settings.cron_secret == "s3cret"
    assert settings.default_timezone == "America/New_York"
    assert settings.email_config is not None
    assert settings.email_config.smtp_port == 2525
    assert settings.email_config.from_email == "reminders@example.com"
    assert settings.email_config.max_emails_per_hour == 20
    assert settings.log_level == "DEBUG"
    assert settings.log_file == Path("logs/app.log")
    assert settings.logging_config().log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"SMTP_USERNAME": "u", "SMTP_PASSWORD": "p", "EMAIL_FROM": "a@b.co", "SMTP_PORT": "abc"},
        {"SMTP_USERNAME": "u", "SMTP_PASSWORD": "p", "EMAIL_FROM": "a@b.co", "SMTP_PORT": "0"},
        {"DEFAULT_TIMEZONE": "Mars/Olympus"},
        {"DEFAULT_TIMEZONE": "Europe"},
        {"LOG_LEVEL": "LOUD"},
        {"DATABASE_URL": "mysql://localhost/db"},
    ],
)
def test_invalid_values_raise(env: dict) -> None:
    with pytest.raises(ConfigurationError):
        load_settings(env)


def test_credentials_file_supplies_defaults(tmp_path: Path) -> None:
    config_file: Path = tmp_path / "credentials.enc"
    CredentialManager(config_file, MASTER_PASSWORD).save_credentials(
        EmailCredentials(username="stored-user", password="stored-pass", from_email="stored@example.com"),
        AppConfig(database_url="stored.db", default_timezone="+02:00", cron_secret="stored-secret"),
    )

    settings = load_settings({
        "REMINDER_CONFIG_FILE": str(config_file),
        "MASTER_PASSWORD": MASTER_PASSWORD,
        "CRON_SECRET": "env-secret",
    })

    assert settings.database_path == Path("stored.db")
    assert settings.default_timezone == "+02:00"
    assert settings.cron_secret == "env-secret"
    assert settings.email_config.username == "stored-user"
    assert settings.email_config.from_email == "stored@example.com"


def test_credentials_file_requires_master_password(tmp_path: Path) -> None:
    config_file: Path = tmp_path / "credentials.enc"
    CredentialManager(config_file, MASTER_PASSWORD).save_credentials(
        EmailCredentials(username="u", password="p", from_email="a@b.co"), AppConfig()
    )

    with pytest.raises(ConfigurationError, match="MASTER_PASSWORD"):
        load_settings({"REMINDER_CONFIG_FILE": str(config_file)})
    with pytest.raises(ConfigurationError):
        load_settings({}, config_file=config_file, master_password="wrong_password_1")


def test_missing_credentials_file_is_ignored(tmp_path: Path) -> None:
    settings = load_settings({"REMINDER_CONFIG_FILE": str(tmp_path / "absent.enc")})
    assert settings.email_config is None


def test_logging_config_validation() -> None:
    with pytest.raises(ValueError):
        LoggingConfig(log_level="LOUD")
    with pytest.raises(ValueError):
        LoggingConfig(retention_count=0)


def test_setup_logging_writes_files(tmp_path: Path) -> None:
    log_file: Path = tmp_path / "logs" / "app.log"
    try:
        setup_logging(LoggingConfig(log_file=log_file, console_enabled=False))
        logger.error("something broke")
        logger.complete()
    finally:
        logger.remove()
        logger.add(lambda msg: print(msg, end=""), level="INFO")

    assert "something broke" in log_file.read_text(encoding="utf-8")
    assert "something broke" in log_file.with_suffix(".error.log").read_text(encoding="utf-8")


def test_logged_operation_times_and_propagates() -> None:
    with LoggedOperation("quick", slow_threshold_seconds=10.0) as operation:
        time.sleep(0.01)
    assert operation.duration_seconds is not None
    assert operation.duration_seconds > 0

    with pytest.raises(RuntimeError):
        with LoggedOperation("failing"):
            raise RuntimeError("boom")
