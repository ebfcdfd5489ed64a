"""Email package for the reminder mailer."""

from .service import (
    EmailService,
    EmailConfig,
    DeliveryError,
    RateLimitError,
    AuthenticationError,
)
from .templates import EmailTemplateManager, ReminderEmail, TemplateError

__all__ = [
    # Service
    "EmailService",
    "EmailConfig",
    "DeliveryError",
    "RateLimitError",
    "AuthenticationError",
    # Templates
    "EmailTemplateManager",
    "ReminderEmail",
    "TemplateError",
]
