"""Timezone helpers for converting submitted local times to UTC."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .validation_utils import ValidationError, validate_date_format, validate_time_format


OFFSET_PATTERN: re.Pattern[str] = re.compile(r'^(?:UTC|GMT)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$', re.IGNORECASE)


@dataclass(frozen=True)
class UtcSlot:
    """A UTC calendar date and time-of-day, as stored on a reminder."""
    date: str
    time: str

    @property
    def instant(self) -> datetime:
        return datetime.strptime(f"{self.date} {self.time}", "%Y-%m-%d %H:%M").replace(tzinfo=timezone.utc)


def parse_timezone(name: str) -> tuple[tzinfo, str]:
    """Resolve a timezone label to a tzinfo and its canonical label.

    Accepts IANA zone names (``Europe/Berlin``), ``UTC``/``Z``, and fixed
    offsets such as ``+02:00``, ``-0500`` or ``UTC-5``.

    Raises:
        ValidationError: If the label is not a known zone or offset.
    """
    label: str = name.strip()
    if label.upper() in ("UTC", "Z", "GMT"):
        return timezone.utc, "UTC"

    match = OFFSET_PATTERN.match(label)
    if match:
        sign, hours, minutes = match.group(1), int(match.group(2)), int(match.group(3) or 0)
        if hours > 14 or minutes > 59:
            raise ValidationError(f"Invalid UTC offset: {name}")
        delta: timedelta = timedelta(hours=hours, minutes=minutes)
        if sign == "-":
            delta = -delta
        return timezone(delta), f"{sign}{hours:02d}:{minutes:02d}"

    try:
        return ZoneInfo(label), label
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        # Region names such as "America" are directories in the zone database
        raise ValidationError(f"Unknown timezone: {name}") from e


def local_to_utc(date_str: str, time_str: str, zone: tzinfo) -> UtcSlot:
    """Re-express a local date and time in UTC.

    Args:
        date_str: Local calendar date (YYYY-MM-DD).
        time_str: Local time of day (HH:MM or HH:MM:SS).
        zone: Zone the local values are interpreted in.

    Returns:
        The UTC date and time (HH:MM) of the same instant.

    Raises:
        ValidationError: If the date or time is malformed.
    """
    if not validate_date_format(date_str):
        raise ValidationError("Invalid date format, expected YYYY-MM-DD")
    if not validate_time_format(time_str):
        raise ValidationError("Invalid time format, expected HH:MM")

    local: datetime = datetime.strptime(f"{date_str} {time_str[:5]}", "%Y-%m-%d %H:%M").replace(tzinfo=zone)
    utc: datetime = local.astimezone(timezone.utc)
    return UtcSlot(date=utc.strftime("%Y-%m-%d"), time=utc.strftime("%H:%M"))


def utc_to_local(date_str: str, time_str: str, zone: tzinfo) -> tuple[str, str]:
    """Convert a stored UTC date and time back to local date and time strings."""
    instant: datetime = UtcSlot(date_str, time_str).instant
    local: datetime = instant.astimezone(zone)
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")
