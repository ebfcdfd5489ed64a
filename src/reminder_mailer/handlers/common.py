"""Shared types for the request handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Protocol

from ..email.templates import ReminderEmail


class Mailer(Protocol):
    """Anything that can deliver the two reminder emails."""

    def send_confirmation_email(self, details: ReminderEmail) -> bool: ...

    def send_reminder_email(self, details: ReminderEmail) -> bool: ...


@dataclass(frozen=True)
class HandlerResponse:
    """Framework-neutral result of a handler: a status code and a JSON body."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def failure(status_code: int, message: str, **extra: Any) -> HandlerResponse:
    return HandlerResponse(status_code, {"success": False, "message": message, **extra})


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with a trailing Z."""
    moment: datetime = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
