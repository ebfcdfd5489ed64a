"""Periodic sweep: send due reminders and mark them sent."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from ..config.logging_config import LoggedOperation
from ..database.models import Reminder, ReminderUpdate
from ..database.operations import (
    DATABASE_PATH,
    STALE_CLAIM_SECONDS,
    StorageError,
    claim_reminder,
    get_pending_reminders,
    get_unconfirmed_reminders,
    release_reminder,
    update_reminder,
)
from ..email.templates import ReminderEmail
from ..utils.time_utils import parse_timezone, utc_to_local
from ..utils.validation_utils import ValidationError
from .common import HandlerResponse, Mailer, failure, utc_timestamp


@dataclass(frozen=True)
class SweepResult:
    """Outcome of processing one reminder."""
    id: str
    email: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, "email": self.email, "success": self.success}
        if self.error:
            result["error"] = self.error
        return result


def is_authorized(authorization: Optional[str], cron_secret: Optional[str]) -> bool:
    """Check an ``Authorization: Bearer <secret>`` header against the secret.

    With no secret configured every request is allowed.
    """
    if not cron_secret:
        return True
    expected: bytes = f"Bearer {cron_secret}".encode("utf-8")
    provided: bytes = (authorization or "").encode("utf-8")
    return hmac.compare_digest(provided, expected)


def local_details(reminder: Reminder) -> ReminderEmail:
    """Email details for a stored reminder, shown in the submitter's timezone."""
    try:
        zone, label = parse_timezone(reminder.timezone)
    except ValidationError:
        logger.warning(f"Reminder {reminder.id} has unknown timezone {reminder.timezone!r}, using UTC")
        return ReminderEmail(email=reminder.email, date=reminder.date, time=reminder.time, timezone="UTC")

    local_date, local_time = utc_to_local(reminder.date, reminder.time, zone)
    return ReminderEmail(email=reminder.email, date=local_date, time=local_time, timezone=label)


def _release(reminder: Reminder, db_path: Path) -> None:
    try:
        release_reminder(reminder.id, db_path=db_path)
    except StorageError as e:
        # The claim goes stale and a later sweep takes it over.
        logger.error(f"Could not release claim on reminder {reminder.id}: {e}")


def process_reminder(
    reminder: Reminder,
    mailer: Mailer,
    db_path: Path = DATABASE_PATH,
    stale_after_seconds: int = STALE_CLAIM_SECONDS,
) -> Optional[SweepResult]:
    """Claim, send and mark a single due reminder.

    Returns:
        The outcome, or None if another sweep holds the claim.
    """
    try:
        if not claim_reminder(reminder.id, db_path=db_path, stale_after_seconds=stale_after_seconds):
            return None
    except StorageError as e:
        return SweepResult(reminder.id, reminder.email, False, str(e))

    details: ReminderEmail = local_details(reminder)
    error: Optional[str] = None
    try:
        sent: bool = mailer.send_reminder_email(details)
    except Exception as e:
        logger.error(f"Error processing reminder {reminder.id}: {e}")
        sent, error = False, str(e)

    if not sent:
        logger.error(f"Failed to send reminder email to {reminder.email}")
        _release(reminder, db_path)
        return SweepResult(reminder.id, reminder.email, False, error)

    try:
        if update_reminder(reminder.id, ReminderUpdate(sent_reminder=True), db_path=db_path) is None:
            logger.warning(f"Reminder {reminder.id} disappeared before it could be marked sent")
    except StorageError as e:
        # Claim stays in flight; once stale the reminder is sent again.
        logger.error(f"Reminder {reminder.id} sent but not marked as sent: {e}")
        return SweepResult(reminder.id, reminder.email, True, f"Sent but not marked as sent: {e}")

    logger.info(f"Sent reminder email to {reminder.email} for {reminder.date} {reminder.time} UTC")
    return SweepResult(reminder.id, reminder.email, True)


def run_sweep(
    mailer: Mailer,
    db_path: Path = DATABASE_PATH,
    authorization: Optional[str] = None,
    cron_secret: Optional[str] = None,
    now: Optional[datetime] = None,
    stale_after_seconds: int = STALE_CLAIM_SECONDS,
) -> HandlerResponse:
    """Send every due reminder once.

    Args:
        mailer: Email dispatcher for reminder emails.
        db_path: Path to the SQLite database file.
        authorization: Value of the request's Authorization header.
        cron_secret: Shared secret; when set the header must match it.
        now: Instant to sweep at instead of the database clock.
        stale_after_seconds: Age after which another sweep's claim is taken over.

    Returns:
        401 if unauthorized, otherwise 200 with one result per processed
        reminder, or 500 if the sweep itself fails.
    """
    if not is_authorized(authorization, cron_secret):
        logger.warning("Rejected sweep request with missing or invalid secret")
        return failure(401, "Unauthorized")

    started: datetime = datetime.now(timezone.utc)
    try:
        with LoggedOperation("reminder_sweep"):
            pending: List[Reminder] = get_pending_reminders(db_path=db_path, now=now)

            if not pending:
                logger.info("No pending reminders found.")
                return HandlerResponse(200, {
                    "success": True,
                    "message": "No pending reminders",
                    "results": [],
                    "timestamp": utc_timestamp(started),
                })

            logger.info(f"Found {len(pending)} pending reminders to send.")
            results: List[SweepResult] = []
            for reminder in pending:
                result: Optional[SweepResult] = process_reminder(
                    reminder, mailer, db_path=db_path, stale_after_seconds=stale_after_seconds
                )
                if result is not None:
                    results.append(result)

            return HandlerResponse(200, {
                "success": True,
                "message": f"Processed {len(results)} reminders",
                "results": [result.to_dict() for result in results],
                "timestamp": utc_timestamp(started),
            })

    except Exception as e:
        logger.exception(f"Error in reminder sweep: {e}")
        return failure(500, "Error processing reminders", error=str(e))


def resend_confirmations(mailer: Mailer, db_path: Path = DATABASE_PATH) -> List[SweepResult]:
    """Retry confirmation emails for reminders that have not fired yet.

    Reminders whose reminder email already went out are skipped.
    """
    results: List[SweepResult] = []

    for reminder in get_unconfirmed_reminders(db_path=db_path):
        if reminder.sent_reminder:
            continue

        try:
            sent: bool = mailer.send_confirmation_email(local_details(reminder))
        except Exception as e:
            logger.error(f"Error resending confirmation for reminder {reminder.id}: {e}")
            results.append(SweepResult(reminder.id, reminder.email, False, str(e)))
            continue

        if sent:
            try:
                update_reminder(reminder.id, ReminderUpdate(sent_confirmation=True), db_path=db_path)
            except StorageError as e:
                logger.error(f"Error updating reminder confirmation status: {e}")
        results.append(SweepResult(reminder.id, reminder.email, sent))

    logger.info(f"Resent {sum(r.success for r in results)}/{len(results)} confirmation emails")
    return results
