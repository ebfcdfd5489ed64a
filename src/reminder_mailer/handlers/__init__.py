"""Request handlers, independent of the HTTP framework."""

from .common import HandlerResponse, Mailer
from .submission import ReminderSubmission, parse_submission, submit_reminder
from .sweep import SweepResult, is_authorized, process_reminder, resend_confirmations, run_sweep

__all__ = [
    "HandlerResponse",
    "Mailer",
    # Submission
    "ReminderSubmission",
    "parse_submission",
    "submit_reminder",
    # Sweep
    "SweepResult",
    "is_authorized",
    "process_reminder",
    "run_sweep",
    "resend_confirmations",
]
