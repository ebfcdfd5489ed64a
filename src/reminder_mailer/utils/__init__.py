"""
Utility functions and helpers for the reminder mailer
"""

from .validation_utils import (
    ValidationError,
    validate_email,
    validate_date_format,
    validate_time_format,
)
from .time_utils import UtcSlot, parse_timezone, local_to_utc, utc_to_local

__all__ = [
    'ValidationError',
    'validate_email',
    'validate_date_format',
    'validate_time_format',
    'UtcSlot',
    'parse_timezone',
    'local_to_utc',
    'utc_to_local',
]
