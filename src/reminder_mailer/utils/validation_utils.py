"""Validation utilities."""

from __future__ import annotations

import re
from datetime import date


EMAIL_PATTERN: re.Pattern[str] = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
DATE_PATTERN: re.Pattern[str] = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_PATTERN: re.Pattern[str] = re.compile(r'^([01][0-9]|2[0-3]):([0-5][0-9])(:[0-5][0-9])?$')


class ValidationError(ValueError):
    """Raised when user input is missing or malformed."""
    pass


def validate_email(email: str) -> bool:
    """Validate email address format."""
    return bool(EMAIL_PATTERN.match(email))


def validate_date_format(date_str: str) -> bool:
    """Validate date format (YYYY-MM-DD) and that the date exists."""
    if not DATE_PATTERN.match(date_str):
        return False
    year, month, day = (int(part) for part in date_str.split('-'))
    try:
        date(year, month, day)
    except ValueError:
        return False
    return True


def validate_time_format(time_str: str) -> bool:
    """Validate time format (HH:MM, optionally with seconds)."""
    return bool(TIME_PATTERN.match(time_str))
