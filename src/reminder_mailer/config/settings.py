"""Centralized settings management for reminder mailer."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger

from ..email.service import EmailConfig, EmailService
from ..security.credentials import AppConfig, CredentialError, CredentialManager, EmailCredentials
from ..utils.time_utils import parse_timezone
from ..utils.validation_utils import ValidationError
from .logging_config import VALID_LEVELS, LoggingConfig


SQLITE_URL_PREFIX: str = "sqlite:///"
DEFAULT_DATABASE: str = "reminders.db"


class ConfigurationError(Exception):
    """Raised when settings are missing or invalid."""
    pass


@dataclass(frozen=True)
class Settings:
    """Centralized application settings."""

    database_path: Path
    default_timezone: str = "UTC"
    cron_secret: Optional[str] = None

    # None runs the email service in preview mode
    email_config: Optional[EmailConfig] = None

    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def create_email_service(self) -> EmailService:
        return EmailService(self.email_config)

    def logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            log_file=self.log_file,
            log_level=self.log_level,
            console_level=self.log_level,
        )


def parse_database_url(url: str) -> Path:
    """Turn ``DATABASE_URL`` into a SQLite file path.

    Accepts ``sqlite:///relative.db``, ``sqlite:////absolute.db`` or a bare path.

    Raises:
        ConfigurationError: For empty values or non-SQLite URLs.
    """
    url = url.strip()
    if not url:
        raise ConfigurationError("DATABASE_URL cannot be empty")
    if url.startswith(SQLITE_URL_PREFIX):
        path: str = url[len(SQLITE_URL_PREFIX):]
        if not path:
            raise ConfigurationError("DATABASE_URL has no database path")
        return Path(path)
    if "://" in url:
        raise ConfigurationError(f"Unsupported DATABASE_URL scheme: {url.split('://', 1)[0]}")
    return Path(url)


def _int_value(env: Mapping[str, str], name: str, default: int) -> int:
    raw: Optional[str] = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _load_credentials_file(
    config_file: Path,
    master_password: Optional[str],
) -> tuple[Optional[EmailCredentials], AppConfig]:
    if not config_file.exists():
        logger.warning(f"Credentials file {config_file} not found, using environment only")
        return None, AppConfig()
    if not master_password:
        raise ConfigurationError(f"MASTER_PASSWORD is required to read {config_file}")
    try:
        return CredentialManager(config_file, master_password).load_credentials()
    except (CredentialError, ValueError) as e:
        raise ConfigurationError(f"Could not load credentials file: {e}") from e


def _email_config(
    env: Mapping[str, str],
    stored: Optional[EmailCredentials],
) -> Optional[EmailConfig]:
    username: str = env.get("SMTP_USERNAME") or (stored.username if stored else "")
    password: str = env.get("SMTP_PASSWORD") or (stored.password if stored else "")
    if not username or not password:
        return None

    try:
        return EmailConfig(
            smtp_server=env.get("SMTP_SERVER") or (stored.smtp_server if stored else "smtp.gmail.com"),
            smtp_port=_int_value(env, "SMTP_PORT", stored.smtp_port if stored else 587),
            username=username,
            password=password,
            from_email=env.get("EMAIL_FROM") or (stored.from_email if stored else username),
            from_name=env.get("EMAIL_FROM_NAME") or (stored.from_name if stored else "Reminder Mailer"),
            max_emails_per_hour=_int_value(
                env, "MAX_EMAILS_PER_HOUR", stored.max_emails_per_hour if stored else 100
            ),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid SMTP configuration: {e}") from e


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
    master_password: Optional[str] = None,
) -> Settings:
    """Load settings from environment variables.

    An encrypted credentials file (``REMINDER_CONFIG_FILE`` unlocked with
    ``MASTER_PASSWORD``) supplies defaults; environment variables win over it.

    Args:
        env: Variables to read. Defaults to ``os.environ``.
        config_file: Credentials file, overriding ``REMINDER_CONFIG_FILE``.
        master_password: Password, overriding ``MASTER_PASSWORD``.

    Returns:
        Loaded Settings instance.

    Raises:
        ConfigurationError: If any value is invalid.
    """
    if env is None:
        env = os.environ

    stored_credentials: Optional[EmailCredentials] = None
    stored_config: AppConfig = AppConfig()
    credentials_path: Optional[str] = str(config_file) if config_file else env.get("REMINDER_CONFIG_FILE")
    if credentials_path:
        stored_credentials, stored_config = _load_credentials_file(
            Path(credentials_path), master_password or env.get("MASTER_PASSWORD")
        )

    database_path: Path = parse_database_url(env.get("DATABASE_URL") or stored_config.database_url)

    default_timezone: str = env.get("DEFAULT_TIMEZONE") or stored_config.default_timezone
    try:
        parse_timezone(default_timezone)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid DEFAULT_TIMEZONE: {e}") from e

    log_level: str = (env.get("LOG_LEVEL") or stored_config.log_level).upper()
    if log_level not in VALID_LEVELS:
        raise ConfigurationError(f"Invalid LOG_LEVEL: {log_level}")

    log_file: Optional[str] = env.get("LOG_FILE")

    settings: Settings = Settings(
        database_path=database_path,
        default_timezone=default_timezone,
        cron_secret=env.get("CRON_SECRET") or stored_config.cron_secret,
        email_config=_email_config(env, stored_credentials),
        log_level=log_level,
        log_file=Path(log_file) if log_file else None,
    )

    logger.debug(
        f"Settings loaded: database={settings.database_path}, "
        f"timezone={settings.default_timezone}, "
        f"smtp={'configured' if settings.email_config else 'preview mode'}"
    )
    return settings
