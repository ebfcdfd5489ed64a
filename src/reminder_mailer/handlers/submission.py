"""Reminder submission: validate, convert to UTC, store, confirm."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Any

from loguru import logger

from ..database.models import Reminder, ReminderUpdate
from ..database.operations import DATABASE_PATH, StorageError, add_reminder, update_reminder
from ..email.templates import ReminderEmail
from ..utils.time_utils import UtcSlot, local_to_utc, parse_timezone
from ..utils.validation_utils import ValidationError, validate_email
from .common import HandlerResponse, Mailer, failure


REQUIRED_FIELDS: tuple[str, ...] = ("email", "date", "time")


@dataclass(frozen=True)
class ReminderSubmission:
    """A validated submission.

    ``date``/``time`` are the submitter's local values; ``utc`` is the same
    instant in UTC, which is what gets stored.
    """
    email: str
    date: str
    time: str
    timezone_label: str
    zone: tzinfo
    utc: UtcSlot

    def confirmation_details(self) -> ReminderEmail:
        return ReminderEmail(
            email=self.email,
            date=self.date,
            time=self.time[:5],
            timezone=self.timezone_label,
        )


def parse_submission(payload: Any, default_timezone: str = "UTC") -> ReminderSubmission:
    """Validate a submission payload and convert its local time to UTC.

    Args:
        payload: Decoded JSON body with ``email``, ``date`` (YYYY-MM-DD),
            ``time`` (HH:MM) and an optional ``timezone``.
        default_timezone: Zone used when the payload carries none.

    Returns:
        The validated submission.

    Raises:
        ValidationError: If a field is missing or malformed.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    values: dict[str, str] = {}
    for name in REQUIRED_FIELDS:
        value = payload.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Missing required fields")
        values[name] = value.strip()

    if not validate_email(values["email"]):
        raise ValidationError("Invalid email format")

    requested_zone = payload.get("timezone")
    if requested_zone is not None and not isinstance(requested_zone, str):
        raise ValidationError("Timezone must be a string")
    zone, label = parse_timezone(requested_zone or default_timezone)

    utc: UtcSlot = local_to_utc(values["date"], values["time"], zone)
    logger.info(
        f"Converting reminder time: Local {values['date']} {values['time']} ({label}) "
        f"-> UTC {utc.date} {utc.time}"
    )

    return ReminderSubmission(
        email=values["email"],
        date=values["date"],
        time=values["time"],
        timezone_label=label,
        zone=zone,
        utc=utc,
    )


def _send_confirmation(reminder: Reminder, submission: ReminderSubmission, mailer: Mailer, db_path: Path) -> bool:
    """Send the confirmation email and flag the reminder; never raises."""
    try:
        sent: bool = mailer.send_confirmation_email(submission.confirmation_details())
    except Exception as e:
        logger.error(f"Confirmation email for reminder {reminder.id} raised: {e}")
        sent = False

    if not sent:
        logger.warning(f"Confirmation email not sent for reminder {reminder.id}; reminder kept")
        return False

    try:
        update_reminder(reminder.id, ReminderUpdate(sent_confirmation=True), db_path=db_path)
    except StorageError as e:
        logger.error(f"Error updating reminder confirmation status: {e}")
    return True


def submit_reminder(
    payload: Any,
    mailer: Mailer,
    db_path: Path = DATABASE_PATH,
    default_timezone: str = "UTC",
) -> HandlerResponse:
    """Handle a reminder submission.

    Args:
        payload: Decoded request body.
        mailer: Email dispatcher for the confirmation email.
        db_path: Path to the SQLite database file.
        default_timezone: Zone for submissions that carry none.

    Returns:
        201 on success, 400 on invalid input, 503 when the database is
        unavailable and 500 on any other failure.
    """
    try:
        try:
            submission: ReminderSubmission = parse_submission(payload, default_timezone)
        except ValidationError as e:
            logger.info(f"Rejected reminder submission: {e}")
            return failure(400, str(e))

        try:
            reminder: Reminder = add_reminder(
                submission.email,
                submission.utc.date,
                submission.utc.time,
                timezone_name=submission.timezone_label,
                db_path=db_path,
            )
        except StorageError as e:
            logger.error(f"Database error when adding reminder: {e}")
            if e.transient:
                return failure(
                    503,
                    "Database connection error. Please try again later.",
                    error="DB_UNAVAILABLE",
                )
            return failure(500, "Server error")

        confirmation_sent: bool = _send_confirmation(reminder, submission, mailer, db_path)
        message: str = (
            "Reminder set successfully. Confirmation email sent."
            if confirmation_sent
            else "Reminder set successfully, but the confirmation email could not be sent."
        )

        return HandlerResponse(201, {
            "success": True,
            "message": message,
            "reminderId": reminder.id,
            "confirmationSent": confirmation_sent,
        })

    except Exception as e:
        logger.exception(f"Error handling reminder submission: {e}")
        return failure(500, "Server error")
