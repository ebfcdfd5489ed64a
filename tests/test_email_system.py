#!/usr/bin/env python3
"""Tests for email templates and the SMTP email service."""

from __future__ import annotations

import smtplib
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from src.reminder_mailer.email.service import (
    DeliveryError,
    EmailConfig,
    EmailRateTracker,
    EmailService,
    RateLimitError,
)
from src.reminder_mailer.email.templates import (
    EmailTemplateManager,
    ReminderEmail,
    SimpleTemplateEngine,
    TemplateNotFoundError,
    TemplateRenderError,
)

DETAILS: ReminderEmail = ReminderEmail(email="user@example.com", date="2025-10-24", time="10:10", timezone="-05:00")


def smtp_config(**overrides: object) -> EmailConfig:
    values = dict(
        smtp_server="smtp.example.com",
        smtp_port=587,
        username="sender@example.com",
        password="app-password",
        from_email="sender@example.com",
        retry_attempts=3,
        retry_delay_seconds=0,
    )
    values.update(overrides)
    return EmailConfig(**values)


def test_confirmation_template_mentions_local_time() -> None:
    rendered = EmailTemplateManager().render("confirmation", DETAILS)

    assert rendered["subject"] == "Your reminder is set for 2025-10-24 10:10"
    assert "Friday, October 24, 2025 at 10:10 AM" in rendered["text"]
    assert "(-05:00)" in rendered["text"]
    assert "user@example.com" in rendered["html"]


def test_reminder_template() -> None:
    rendered = EmailTemplateManager().render("reminder", DETAILS)

    assert rendered["subject"] == "Reminder: 2025-10-24 10:10"
    assert "This is your reminder" in rendered["text"]
    assert rendered["html"].startswith("<!DOCTYPE html>")


def test_html_values_are_escaped() -> None:
    details = ReminderEmail(email="<b>x</b>@example.com", date="2025-10-24", time="10:10")
    rendered = EmailTemplateManager().render("confirmation", details)

    assert "&lt;b&gt;" in rendered["html"]
    assert "<b>x</b>@example.com" in rendered["text"]


def test_template_engine_errors() -> None:
    engine = SimpleTemplateEngine()
    assert engine.render("Hello {{ name }}", {"name": "you"}) == "Hello you"

    with pytest.raises(TemplateRenderError):
        engine.render("Hello {{missing}}", {})
    with pytest.raises(TemplateNotFoundError):
        EmailTemplateManager().render("nonexistent", DETAILS)


def test_custom_templates_override_builtins(tmp_path: Path) -> None:
    (tmp_path / "reminder.subject").write_text("Ping for {{email}}", encoding="utf-8")

    rendered = EmailTemplateManager(tmp_path).render("reminder", DETAILS)

    assert rendered["subject"] == "Ping for user@example.com"
    assert "This is your reminder" in rendered["text"]


def test_preview_mode_never_touches_smtp() -> None:
    service = EmailService()

    with patch("smtplib.SMTP") as smtp:
        assert service.preview_mode is True
        assert service.send_confirmation_email(DETAILS) is True
        assert service.send_reminder_email(DETAILS) is True
        assert service.test_connection() is True

    smtp.assert_not_called()


def test_send_reminder_over_smtp() -> None:
    service = EmailService(smtp_config())

    with patch("smtplib.SMTP") as smtp:
        server = smtp.return_value
        assert service.send_reminder_email(DETAILS) is True

    smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("sender@example.com", "app-password")
    from_addr, to_addrs, message = server.sendmail.call_args.args
    assert from_addr == "sender@example.com"
    assert to_addrs == ["user@example.com"]
    assert "Subject: Reminder: 2025-10-24 10:10" in message
    server.quit.assert_called_once()
    assert service.get_rate_limit_status()["emails_sent_last_hour"] == 1


def test_transient_smtp_failure_is_retried() -> None:
    service = EmailService(smtp_config())

    with patch("smtplib.SMTP") as smtp:
        smtp.return_value.sendmail.side_effect = [smtplib.SMTPServerDisconnected("dropped"), {}]
        assert service.send_confirmation_email(DETAILS) is True

    assert smtp.return_value.sendmail.call_count == 2


def test_exhausted_smtp_retries_report_failure() -> None:
    service = EmailService(smtp_config(retry_attempts=2))

    with patch("smtplib.SMTP") as smtp:
        smtp.return_value.sendmail.side_effect = smtplib.SMTPServerDisconnected("dropped")
        assert service.send_reminder_email(DETAILS) is False
        with pytest.raises(DeliveryError):
            service.send_message("user@example.com", "Subject", "<p>hi</p>", "hi")

    assert smtp.return_value.sendmail.call_count == 4


def test_authentication_failure_is_not_retried() -> None:
    service = EmailService(smtp_config())

    with patch("smtplib.SMTP") as smtp:
        smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        assert service.send_reminder_email(DETAILS) is False

    assert smtp.call_count == 1


def test_rate_limit_blocks_extra_sends() -> None:
    service = EmailService(smtp_config(max_emails_per_hour=1))

    with patch("smtplib.SMTP"):
        assert service.send_reminder_email(DETAILS) is True
        assert service.send_reminder_email(DETAILS) is False
        with pytest.raises(RateLimitError):
            service.send_message("user@example.com", "Subject", "", "hi")

    assert service.get_rate_limit_status()["emails_remaining"] == 0


def test_rate_tracker_forgets_old_sends() -> None:
    tracker = EmailRateTracker(max_per_hour=1, sent_times=[datetime.now() - timedelta(hours=2)])
    assert tracker.can_send_email() is True
    tracker.record_email_sent()
    assert tracker.can_send_email() is False


def test_invalid_recipient_is_rejected_before_sending() -> None:
    service = EmailService(smtp_config())
    with patch("smtplib.SMTP") as smtp:
        assert service.send_reminder_email(ReminderEmail(email="nobody", date="2025-10-24", time="10:10")) is False
    smtp.assert_not_called()


@pytest.mark.parametrize(
    "overrides",
    [
        {"smtp_server": " "},
        {"smtp_port": 0},
        {"password": ""},
        {"from_email": "not-an-address"},
        {"max_emails_per_hour": 0},
        {"retry_attempts": 0},
    ],
)
def test_email_config_validation(overrides: dict) -> None:
    with pytest.raises(ValueError):
        smtp_config(**overrides)


def test_test_connection_uses_login() -> None:
    service = EmailService(smtp_config())
    with patch("smtplib.SMTP") as smtp:
        assert service.test_connection() is True
        smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad")
        assert service.test_connection() is False


def test_smtp_helpers_require_configuration() -> None:
    service = EmailService()

    with pytest.raises(DeliveryError, match="not configured"):
        service._create_connection()
    with pytest.raises(DeliveryError, match="not configured"):
        service._attempt_send_email("user@example.com", "Subject", "", "hi")


def test_rate_tracker_counts_concurrent_sends() -> None:
    tracker = EmailRateTracker(max_per_hour=10_000)

    def send_batch() -> None:
        for _ in range(200):
            tracker.can_send_email()
            tracker.record_email_sent()

    with ThreadPoolExecutor(max_workers=8) as pool:
        for future in [pool.submit(send_batch) for _ in range(8)]:
            future.result()

    assert len(tracker.sent_times) == 1600
