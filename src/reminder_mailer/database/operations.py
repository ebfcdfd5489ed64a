"""Database operations for the reminder mailer."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Final, Generator

from loguru import logger

from .models import Reminder, ReminderState, ReminderUpdate, create_tables_sql
from .retry import READ_POLICY, WRITE_POLICY, RetryPolicy, is_transient_error, query_with_retries


DATABASE_PATH: Final[Path] = Path("reminders.db")
BUSY_TIMEOUT_SECONDS: Final[float] = 5.0
STALE_CLAIM_SECONDS: Final[int] = 600

_SELECT_COLUMNS: Final[str] = (
    "id, email, date, time, timezone, sent_confirmation, sent_reminder, "
    "reminder_state, created_at"
)


class StorageError(Exception):
    """Raised when the reminder store cannot complete an operation.

    ``transient`` is True when the underlying failure was connection-level
    (locked, busy or unreachable database) and a later retry may succeed.
    """

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient: bool = transient


@contextmanager
def get_db_connection(db_path: Path = DATABASE_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections with proper cleanup.

    Errors are rolled back and re-raised unchanged so the retry wrapper can
    classify them.

    Args:
        db_path: Path to the SQLite database file.

    Yields:
        A configured SQLite connection with row factory enabled.
    """
    db_connection: sqlite3.Connection | None = None
    try:
        db_connection = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT_SECONDS)
        db_connection.row_factory = sqlite3.Row
        logger.debug(f"Database connection established to {db_path}")
        yield db_connection
    except Exception:
        if db_connection is not None:
            db_connection.rollback()
        raise
    finally:
        if db_connection is not None:
            db_connection.close()
            logger.debug("Database connection closed")


def _storage_error(action: str, error: BaseException) -> StorageError:
    transient: bool = is_transient_error(error)
    kind: str = "connection error" if transient else "error"
    return StorageError(f"Database {kind} when {action}: {error}", transient=transient)


def _row_to_reminder(row: sqlite3.Row) -> Reminder:
    created_at: datetime = datetime.fromisoformat(str(row["created_at"]))
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    return Reminder(
        id=str(row["id"]),
        email=str(row["email"]),
        date=str(row["date"]),
        time=str(row["time"]),
        timezone=str(row["timezone"]),
        sent_confirmation=bool(row["sent_confirmation"]),
        sent_reminder=bool(row["sent_reminder"]),
        reminder_state=ReminderState(str(row["reminder_state"])),
        created_at=created_at,
    )


def initialize_database(db_path: Path = DATABASE_PATH) -> None:
    """Create the reminders table if it doesn't exist.

    Args:
        db_path: Path to the SQLite database file.

    Raises:
        StorageError: If table creation fails.
    """
    def create() -> None:
        with get_db_connection(db_path) as db_connection:
            for statement in create_tables_sql():
                db_connection.execute(statement)
            db_connection.commit()

    try:
        query_with_retries(create, WRITE_POLICY)
        logger.info(f"Database tables initialized successfully at {db_path}")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise _storage_error("initializing database", e) from e


def add_reminder(
    email: str,
    date: str,
    time: str,
    timezone_name: str = "UTC",
    db_path: Path = DATABASE_PATH,
    policy: RetryPolicy = WRITE_POLICY,
) -> Reminder:
    """Insert a new reminder with both sent flags cleared.

    Args:
        email: Recipient address.
        date: UTC calendar date (YYYY-MM-DD).
        time: UTC time of day (HH:MM).
        timezone_name: Zone label the submitter's local time was given in.
        db_path: Path to the SQLite database file.
        policy: Retry policy for the insert.

    Returns:
        The stored reminder including its assigned id and creation timestamp.

    Raises:
        StorageError: If the insert fails after retries.
    """
    reminder_id: str = uuid.uuid4().hex

    def insert() -> Reminder:
        with get_db_connection(db_path) as db_connection:
            db_connection.execute(
                """INSERT INTO reminders (id, email, date, time, timezone, sent_confirmation, sent_reminder)
                   VALUES (?, ?, ?, ?, ?, 0, 0)""",
                (reminder_id, email, date, time, timezone_name)
            )
            row: sqlite3.Row | None = db_connection.execute(
                f"SELECT {_SELECT_COLUMNS} FROM reminders WHERE id = ?",
                (reminder_id,)
            ).fetchone()
            if row is None:
                raise sqlite3.DatabaseError("Database returned empty result when adding reminder")
            db_connection.commit()
            return _row_to_reminder(row)

    try:
        reminder: Reminder = query_with_retries(insert, policy)
    except Exception as e:
        logger.error(f"Error adding reminder to database: {e}")
        raise _storage_error("adding reminder", e) from e

    logger.info(f"Reminder {reminder.id} stored for {reminder.date} {reminder.time} UTC")
    return reminder


def get_reminder(
    reminder_id: str,
    db_path: Path = DATABASE_PATH,
    policy: RetryPolicy = READ_POLICY,
) -> Reminder | None:
    """Return a single reminder, or None if no record has this id.

    Raises:
        StorageError: If the read fails after retries.
    """
    def select() -> sqlite3.Row | None:
        with get_db_connection(db_path) as db_connection:
            return db_connection.execute(
                f"SELECT {_SELECT_COLUMNS} FROM reminders WHERE id = ?",
                (reminder_id,)
            ).fetchone()

    try:
        row: sqlite3.Row | None = query_with_retries(select, policy)
    except Exception as e:
        logger.error(f"Error getting reminder {reminder_id}: {e}")
        raise _storage_error(f"getting reminder {reminder_id}", e) from e

    return _row_to_reminder(row) if row is not None else None


def update_reminder(
    reminder_id: str,
    update: ReminderUpdate,
    db_path: Path = DATABASE_PATH,
    policy: RetryPolicy = WRITE_POLICY,
) -> Reminder | None:
    """Apply a partial update to a reminder's send flags.

    Only the fields set on ``update`` are written. A flag that is already
    true stays true. Email, date and time are never modified.

    Args:
        reminder_id: Id of the reminder to update.
        update: Flags to set.
        db_path: Path to the SQLite database file.
        policy: Retry policy for the update.

    Returns:
        The updated reminder, or None if ``update`` is empty or no record has
        this id.

    Raises:
        StorageError: If the update fails after retries.
    """
    if update.is_empty:
        logger.debug(f"Empty update for reminder {reminder_id}, nothing to do")
        return None

    assignments: list[str] = []
    params: list[object] = []

    if update.sent_confirmation is not None:
        assignments.append("sent_confirmation = MAX(sent_confirmation, ?)")
        params.append(int(update.sent_confirmation))

    if update.sent_reminder is not None:
        flag: int = int(update.sent_reminder)
        assignments.append("sent_reminder = MAX(sent_reminder, ?)")
        assignments.append("reminder_state = CASE WHEN ? = 1 THEN 'sent' ELSE reminder_state END")
        assignments.append("claimed_at = CASE WHEN ? = 1 THEN NULL ELSE claimed_at END")
        params.extend([flag, flag, flag])

    params.append(reminder_id)
    statement: str = f"UPDATE reminders SET {', '.join(assignments)} WHERE id = ?"

    def apply() -> Reminder | None:
        with get_db_connection(db_path) as db_connection:
            cursor: sqlite3.Cursor = db_connection.execute(statement, tuple(params))
            if cursor.rowcount == 0:
                return None
            row: sqlite3.Row | None = db_connection.execute(
                f"SELECT {_SELECT_COLUMNS} FROM reminders WHERE id = ?",
                (reminder_id,)
            ).fetchone()
            db_connection.commit()
            return _row_to_reminder(row) if row is not None else None

    try:
        updated: Reminder | None = query_with_retries(apply, policy)
    except Exception as e:
        logger.error(f"Error updating reminder {reminder_id} in database: {e}")
        raise _storage_error(f"updating reminder {reminder_id}", e) from e

    if updated is None:
        logger.warning(f"Reminder {reminder_id} not found for update")
    else:
        logger.debug(f"Updated reminder {reminder_id}: {update}")
    return updated


def _select_reminders(
    description: str,
    where: str,
    params: tuple[object, ...],
    db_path: Path,
    policy: RetryPolicy,
) -> list[Reminder]:
    """Run a SELECT over reminders, returning [] and logging on failure."""
    query: str = f"SELECT {_SELECT_COLUMNS} FROM reminders {where} ORDER BY date ASC, time ASC"

    def select() -> list[sqlite3.Row]:
        with get_db_connection(db_path) as db_connection:
            return db_connection.execute(query, params).fetchall()

    try:
        rows: list[sqlite3.Row] = query_with_retries(select, policy)
    except Exception as e:
        logger.error(f"Error getting {description} from database: {e}")
        return []

    reminders: list[Reminder] = [_row_to_reminder(row) for row in rows]
    logger.info(f"Found {len(reminders)} {description}")
    return reminders


def get_all_reminders(
    db_path: Path = DATABASE_PATH,
    policy: RetryPolicy = READ_POLICY,
) -> list[Reminder]:
    """Return every stored reminder, or an empty list if the read fails."""
    return _select_reminders("reminders", "", (), db_path, policy)


def get_pending_reminders(
    db_path: Path = DATABASE_PATH,
    now: datetime | None = None,
    policy: RetryPolicy = READ_POLICY,
) -> list[Reminder]:
    """Return unsent reminders whose instant is at or before the current instant.

    The comparison is evaluated by the database against its own clock
    (``datetime('now')``, UTC). Passing ``now`` substitutes that instant, still
    compared inside the database.

    Args:
        db_path: Path to the SQLite database file.
        now: Optional instant to compare against instead of the database clock.
            Naive values are taken as UTC.
        policy: Retry policy for the read.

    Returns:
        Due reminders ordered by instant, or an empty list if the read fails.
    """
    now_param: str | None = None
    if now is not None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        now_param = now.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    return _select_reminders(
        "pending reminders",
        """WHERE sent_reminder = 0
             AND datetime("date" || ' ' || "time") <= COALESCE(?, datetime('now'))""",
        (now_param,),
        db_path,
        policy,
    )


def get_unconfirmed_reminders(
    db_path: Path = DATABASE_PATH,
    policy: RetryPolicy = READ_POLICY,
) -> list[Reminder]:
    """Return reminders whose confirmation email has not been sent."""
    return _select_reminders(
        "unconfirmed reminders", "WHERE sent_confirmation = 0", (), db_path, policy
    )


def claim_reminder(
    reminder_id: str,
    db_path: Path = DATABASE_PATH,
    stale_after_seconds: int = STALE_CLAIM_SECONDS,
    policy: RetryPolicy = WRITE_POLICY,
) -> bool:
    """Atomically move a pending reminder to the in-flight state.

    A claim older than ``stale_after_seconds`` (database clock) may be taken
    over, so a sweep that died mid-send does not strand the record.

    Returns:
        True if this caller now owns the reminder, False if it is already
        sent or claimed by someone else.

    Raises:
        StorageError: If the update fails after retries.
    """
    if stale_after_seconds < 0:
        raise ValueError("Stale claim timeout cannot be negative")

    def claim() -> bool:
        with get_db_connection(db_path) as db_connection:
            cursor: sqlite3.Cursor = db_connection.execute(
                """UPDATE reminders
                   SET reminder_state = 'in_flight', claimed_at = datetime('now')
                   WHERE id = ?
                     AND sent_reminder = 0
                     AND (reminder_state = 'pending'
                          OR (reminder_state = 'in_flight'
                              AND claimed_at <= datetime('now', ?)))""",
                (reminder_id, f"-{stale_after_seconds} seconds")
            )
            db_connection.commit()
            return cursor.rowcount == 1

    try:
        claimed: bool = query_with_retries(claim, policy)
    except Exception as e:
        logger.error(f"Error claiming reminder {reminder_id}: {e}")
        raise _storage_error(f"claiming reminder {reminder_id}", e) from e

    if not claimed:
        logger.info(f"Reminder {reminder_id} already claimed or sent, skipping")
    return claimed


def release_reminder(
    reminder_id: str,
    db_path: Path = DATABASE_PATH,
    policy: RetryPolicy = WRITE_POLICY,
) -> bool:
    """Return an in-flight reminder to the pending state.

    Raises:
        StorageError: If the update fails after retries.
    """
    def release() -> bool:
        with get_db_connection(db_path) as db_connection:
            cursor: sqlite3.Cursor = db_connection.execute(
                """UPDATE reminders
                   SET reminder_state = 'pending', claimed_at = NULL
                   WHERE id = ? AND reminder_state = 'in_flight'""",
                (reminder_id,)
            )
            db_connection.commit()
            return cursor.rowcount == 1

    try:
        return query_with_retries(release, policy)
    except Exception as e:
        logger.error(f"Error releasing reminder {reminder_id}: {e}")
        raise _storage_error(f"releasing reminder {reminder_id}", e) from e


def get_reminder_counts(db_path: Path = DATABASE_PATH) -> dict[str, int]:
    """Return record counts by send status.

    Raises:
        StorageError: If the read fails.
    """
    def count() -> sqlite3.Row:
        with get_db_connection(db_path) as db_connection:
            return db_connection.execute(
                """SELECT COUNT(*) AS total,
                          COALESCE(SUM(sent_confirmation), 0) AS confirmed,
                          COALESCE(SUM(sent_reminder), 0) AS sent,
                          COALESCE(SUM(reminder_state = 'in_flight'), 0) AS in_flight
                   FROM reminders"""
            ).fetchone()

    try:
        row: sqlite3.Row = query_with_retries(count, RetryPolicy(max_retries=0))
    except Exception as e:
        raise _storage_error("counting reminders", e) from e

    return {
        "total": int(row["total"]),
        "confirmed": int(row["confirmed"]),
        "sent": int(row["sent"]),
        "in_flight": int(row["in_flight"]),
        "pending": int(row["total"]) - int(row["sent"]) - int(row["in_flight"]),
    }
