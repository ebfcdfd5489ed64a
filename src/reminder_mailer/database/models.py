"""Database models for the reminder mailer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Final


class ReminderState(Enum):
    """Send status of a reminder email."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SENT = "sent"


@dataclass(frozen=True)
class Reminder:
    """Model representing a stored reminder request.

    Immutable dataclass to prevent accidental mutation of database records.
    ``date`` and ``time`` are the UTC calendar date and time-of-day; ``timezone``
    is the zone label the submitter's local time was interpreted in.
    """
    id: str
    email: str
    date: str
    time: str
    timezone: str
    sent_confirmation: bool
    sent_reminder: bool
    reminder_state: ReminderState
    created_at: datetime

    @property
    def due_at(self) -> datetime:
        """The reminder instant as an aware UTC datetime."""
        naive: datetime = datetime.strptime(f"{self.date} {self.time}", "%Y-%m-%d %H:%M")
        return naive.replace(tzinfo=timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape used by the HTTP surface."""
        return {
            "id": self.id,
            "email": self.email,
            "date": self.date,
            "time": self.time,
            "timezone": self.timezone,
            "sentConfirmation": self.sent_confirmation,
            "sentReminder": self.sent_reminder,
            "reminderState": self.reminder_state.value,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ReminderUpdate:
    """Partial update of a reminder's send flags.

    A field left as ``None`` is not touched by the update.
    """
    sent_confirmation: bool | None = None
    sent_reminder: bool | None = None

    @property
    def is_empty(self) -> bool:
        return self.sent_confirmation is None and self.sent_reminder is None


def create_tables_sql() -> tuple[str, str]:
    """Return SQL statements for creating the reminders table and its index.

    Returns:
        A tuple containing (reminders_table_sql, due_index_sql).
    """
    reminders_table_sql: Final[str] = """
    CREATE TABLE IF NOT EXISTS reminders (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL,
        date TEXT NOT NULL,
        time TEXT NOT NULL,
        timezone TEXT NOT NULL DEFAULT 'UTC',
        sent_confirmation INTEGER NOT NULL DEFAULT 0,
        sent_reminder INTEGER NOT NULL DEFAULT 0,
        reminder_state TEXT NOT NULL DEFAULT 'pending',
        claimed_at TIMESTAMP,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    due_index_sql: Final[str] = """
    CREATE INDEX IF NOT EXISTS idx_reminders_due
        ON reminders (sent_reminder, date, time)
    """

    return reminders_table_sql, due_index_sql
