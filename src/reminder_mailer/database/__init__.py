"""Database package for the reminder mailer."""

from .models import Reminder, ReminderState, ReminderUpdate
from .operations import (
    DATABASE_PATH,
    StorageError,
    initialize_database,
    add_reminder,
    get_reminder,
    update_reminder,
    get_all_reminders,
    get_pending_reminders,
    get_unconfirmed_reminders,
    claim_reminder,
    release_reminder,
    get_reminder_counts,
)
from .retry import RetryPolicy, query_with_retries, is_transient_error

__all__ = [
    # Models
    "Reminder",
    "ReminderState",
    "ReminderUpdate",
    # Exceptions
    "StorageError",
    # Retry
    "RetryPolicy",
    "query_with_retries",
    "is_transient_error",
    # Operations
    "DATABASE_PATH",
    "initialize_database",
    "add_reminder",
    "get_reminder",
    "update_reminder",
    "get_all_reminders",
    "get_pending_reminders",
    "get_unconfirmed_reminders",
    "claim_reminder",
    "release_reminder",
    "get_reminder_counts",
]
