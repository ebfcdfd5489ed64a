"""Email service module with SMTP support, rate limiting and retries."""

from __future__ import annotations

import smtplib
import ssl
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Dict, Final, List, Optional

from loguru import logger

from .templates import EmailTemplateManager, ReminderEmail, TemplateError


class DeliveryError(Exception):
    """Base exception for email delivery failures."""
    pass


class RateLimitError(DeliveryError):
    """Raised when email rate limit is exceeded."""
    pass


class AuthenticationError(DeliveryError):
    """Raised when email authentication fails."""
    pass


@dataclass(frozen=True)
class EmailConfig:
    """Configuration for email service.

    Immutable dataclass to prevent accidental mutation of sensitive data.
    """
    smtp_server: str
    smtp_port: int
    username: str
    password: str
    from_email: str
    from_name: str = "Reminder Mailer"
    use_starttls: bool = True
    max_emails_per_hour: int = 100
    retry_attempts: int = 3
    retry_delay_seconds: int = 5
    timeout_seconds: int = 30

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.smtp_server.strip():
            raise ValueError("SMTP server cannot be empty")
        if not (1 <= self.smtp_port <= 65535):
            raise ValueError("SMTP port must be between 1 and 65535")
        if not self.username.strip():
            raise ValueError("Username cannot be empty")
        if not self.password.strip():
            raise ValueError("Password cannot be empty")
        if "@" not in self.from_email:
            raise ValueError("From email must be a valid email address")
        if self.max_emails_per_hour <= 0:
            raise ValueError("Max emails per hour must be positive")
        if self.retry_attempts < 1:
            raise ValueError("Retry attempts must be at least 1")
        if self.retry_delay_seconds < 0:
            raise ValueError("Retry delay cannot be negative")
        if self.timeout_seconds <= 0:
            raise ValueError("Timeout must be positive")


@dataclass
class EmailRateTracker:
    """Tracks email sending rate to enforce limits."""
    max_per_hour: int
    sent_times: List[datetime] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def can_send_email(self) -> bool:
        """Check if we can send another email without exceeding rate limit."""
        cutoff: datetime = datetime.now() - timedelta(hours=1)
        with self._lock:
            self.sent_times = [t for t in self.sent_times if t > cutoff]
            return len(self.sent_times) < self.max_per_hour

    def record_email_sent(self) -> None:
        """Record that an email was just sent."""
        with self._lock:
            self.sent_times.append(datetime.now())
        logger.debug(f"Email rate tracker: {len(self.sent_times)}/{self.max_per_hour} emails sent in last hour")


class EmailService:
    """SMTP email dispatcher for confirmation and reminder emails.

    Without an ``EmailConfig`` the service runs in preview mode: messages are
    rendered and logged but not sent.
    """

    CONFIRMATION_TEMPLATE: Final[str] = "confirmation"
    REMINDER_TEMPLATE: Final[str] = "reminder"

    def __init__(
        self,
        config: Optional[EmailConfig] = None,
        template_manager: Optional[EmailTemplateManager] = None,
    ) -> None:
        """Initialize email service with configuration.

        Args:
            config: SMTP configuration, or None for preview mode.
            template_manager: Template manager; defaults to built-in templates.
        """
        self.config: Optional[EmailConfig] = config
        self.templates: EmailTemplateManager = template_manager or EmailTemplateManager()
        self.rate_tracker: EmailRateTracker = EmailRateTracker(
            config.max_emails_per_hour if config else 100
        )

        if config is None:
            logger.warning("No SMTP credentials configured, email service running in preview mode")
        else:
            logger.info(f"Email service initialized for {config.from_email} via {config.smtp_server}")

    @property
    def preview_mode(self) -> bool:
        return self.config is None

    def send_confirmation_email(self, details: ReminderEmail) -> bool:
        """Send the 'your reminder is set' email.

        Returns:
            True if the email was delivered, False otherwise.
        """
        return self._send_templated(self.CONFIRMATION_TEMPLATE, details)

    def send_reminder_email(self, details: ReminderEmail) -> bool:
        """Send the reminder itself.

        Returns:
            True if the email was delivered, False otherwise.
        """
        return self._send_templated(self.REMINDER_TEMPLATE, details)

    def _send_templated(self, template_name: str, details: ReminderEmail) -> bool:
        try:
            rendered: Dict[str, str] = self.templates.render(template_name, details)
            self.send_message(details.email, rendered['subject'], rendered['html'], rendered['text'])
            return True
        except (DeliveryError, TemplateError, ValueError) as e:
            logger.error(f"Failed to send {template_name} email to {details.email}: {e}")
            return False

    def send_message(self, to_email: str, subject: str, html_content: str, text_content: str) -> None:
        """Send one email, retrying failed attempts.

        Args:
            to_email: Recipient email address.
            subject: Email subject line.
            html_content: HTML version of email content.
            text_content: Plain text version of email content.

        Raises:
            ValueError: If inputs are invalid.
            RateLimitError: If rate limit would be exceeded.
            DeliveryError: If every attempt fails.
        """
        if not to_email.strip() or "@" not in to_email:
            raise ValueError("Invalid recipient email address")
        if not subject.strip():
            raise ValueError("Email subject cannot be empty")

        if self.config is None:
            logger.info(f"[preview] Email to {to_email}: {subject}\n{text_content}")
            return

        if not self.rate_tracker.can_send_email():
            raise RateLimitError(
                f"Rate limit exceeded: {self.rate_tracker.max_per_hour} emails per hour"
            )

        logger.info(f"Sending email to {to_email}: {subject}")
        last_exception: Exception | None = None

        for attempt in range(1, self.config.retry_attempts + 1):
            try:
                self._attempt_send_email(to_email, subject, html_content, text_content)
                self.rate_tracker.record_email_sent()
                logger.info(f"Email sent successfully to {to_email} on attempt {attempt}")
                return
            except AuthenticationError:
                raise
            except DeliveryError as e:
                last_exception = e
                logger.warning(f"Email send attempt {attempt} failed: {e}")

                if attempt < self.config.retry_attempts:
                    logger.info(f"Retrying in {self.config.retry_delay_seconds} seconds...")
                    time.sleep(self.config.retry_delay_seconds)

        logger.error(f"All {self.config.retry_attempts} email send attempts to {to_email} failed")
        raise DeliveryError(
            f"Failed to send email after {self.config.retry_attempts} attempts"
        ) from last_exception

    def _create_connection(self) -> smtplib.SMTP:
        """Create and authenticate SMTP connection.

        Raises:
            AuthenticationError: If authentication fails.
            DeliveryError: If connection fails.
        """
        if self.config is None:
            raise DeliveryError("SMTP is not configured")
        try:
            logger.debug(f"Connecting to SMTP server {self.config.smtp_server}:{self.config.smtp_port}")

            server: smtplib.SMTP = smtplib.SMTP(
                self.config.smtp_server,
                self.config.smtp_port,
                timeout=self.config.timeout_seconds
            )
            if self.config.use_starttls:
                server.starttls(context=ssl.create_default_context())
            server.login(self.config.username, self.config.password)

            logger.debug("SMTP connection established and authenticated")
            return server

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            raise AuthenticationError(f"Email authentication failed: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP connection error: {e}")
            raise DeliveryError(f"Failed to connect to email server: {e}") from e

    def _attempt_send_email(self, to_email: str, subject: str, html_content: str, text_content: str) -> None:
        """Single attempt to send email.

        Raises:
            DeliveryError: If email sending fails.
        """
        if self.config is None:
            raise DeliveryError("SMTP is not configured")
        server: smtplib.SMTP | None = None

        msg: MIMEMultipart = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = formataddr((self.config.from_name, self.config.from_email))
        msg['To'] = to_email
        msg['Date'] = formatdate(localtime=True)

        if text_content.strip():
            msg.attach(MIMEText(text_content, 'plain', 'utf-8'))
        if html_content.strip():
            msg.attach(MIMEText(html_content, 'html', 'utf-8'))

        try:
            server = self._create_connection()
            server.sendmail(self.config.from_email, [to_email], msg.as_string())
        except DeliveryError:
            raise
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email: {e}")
            raise DeliveryError(f"Email sending failed: {e}") from e
        finally:
            if server:
                try:
                    server.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")

    def test_connection(self) -> bool:
        """Test email service connectivity and authentication.

        Returns:
            True if connection successful (always True in preview mode).
        """
        if self.config is None:
            return True
        try:
            logger.info("Testing email service connection...")
            server: smtplib.SMTP = self._create_connection()
            server.quit()
            logger.info("Email service connection test successful")
            return True
        except DeliveryError as e:
            logger.error(f"Email service connection test failed: {e}")
            return False

    def get_rate_limit_status(self) -> dict[str, int]:
        """Get current rate limiting status."""
        cutoff: datetime = datetime.now() - timedelta(hours=1)
        recent_sends: List[datetime] = [t for t in self.rate_tracker.sent_times if t > cutoff]

        return {
            "emails_sent_last_hour": len(recent_sends),
            "max_emails_per_hour": self.rate_tracker.max_per_hour,
            "emails_remaining": max(0, self.rate_tracker.max_per_hour - len(recent_sends))
        }
