"""Configuration package for reminder mailer."""

from .logging_config import setup_logging, LoggingConfig, LoggedOperation
from .settings import ConfigurationError, Settings, load_settings, parse_database_url

__all__ = [
    # Logging
    "setup_logging",
    "LoggingConfig",
    "LoggedOperation",
    # Settings
    "ConfigurationError",
    "Settings",
    "load_settings",
    "parse_database_url",
]
