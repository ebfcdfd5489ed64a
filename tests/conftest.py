"""Shared fixtures for the reminder mailer tests."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator, List, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from src.reminder_mailer.database.operations import initialize_database
from src.reminder_mailer.email.templates import ReminderEmail

# Configure loguru for testing
logger.remove()
logger.add(lambda msg: print(msg, end=""), level="INFO")

SETTINGS_ENV_VARS: tuple[str, ...] = (
    "DATABASE_URL",
    "CRON_SECRET",
    "DEFAULT_TIMEZONE",
    "SMTP_SERVER",
    "SMTP_PORT",
    "SMTP_USERNAME",
    "SMTP_PASSWORD",
    "EMAIL_FROM",
    "EMAIL_FROM_NAME",
    "MAX_EMAILS_PER_HOUR",
    "LOG_LEVEL",
    "LOG_FILE",
    "REMINDER_CONFIG_FILE",
    "MASTER_PASSWORD",
)


@dataclass
class RecordingMailer:
    """Mailer double that records what it was asked to send."""
    confirmation_ok: bool = True
    reminder_ok: bool = True
    error: Optional[Exception] = None
    confirmations: List[ReminderEmail] = field(default_factory=list)
    reminders: List[ReminderEmail] = field(default_factory=list)

    def send_confirmation_email(self, details: ReminderEmail) -> bool:
        self.confirmations.append(details)
        if self.error is not None:
            raise self.error
        return self.confirmation_ok

    def send_reminder_email(self, details: ReminderEmail) -> bool:
        self.reminders.append(details)
        if self.error is not None:
            raise self.error
        return self.reminder_ok


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """An initialized, empty reminders database."""
    path: Path = tmp_path / "reminders.db"
    initialize_database(path)
    return path


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[pytest.MonkeyPatch, None, None]:
    """Remove every settings variable from the environment."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield monkeypatch
