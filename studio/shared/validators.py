"""Shared validation utilities"""

import re
from datetime import date, datetime
from typing import Optional

from ..config import CLOSING_HOUR, DEFAULT_PHONE_COUNTRY_CODE, OPENING_HOUR

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def parse_iso_date(value: str) -> date:
    """
    Parse a booking date.

    Accepts a plain ISO date (YYYY-MM-DD) or an ISO datetime, in which case
    only the calendar date is kept.

    Raises:
        ValueError: If the value is not a valid ISO date
    """
    if not value or not value.strip():
        raise ValueError("Date is required")

    value = value.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        raise ValueError("Invalid date format. Expected YYYY-MM-DD") from None


def validate_booking_time(value: str) -> str:
    """
    Validate a slot start time and normalise it to zero-padded HH:MM.

    Raises:
        ValueError: If the format is wrong or the time is outside opening hours
    """
    if not value or not TIME_PATTERN.match(value.strip()):
        raise ValueError("Invalid time format. Expected HH:MM")

    hours, minutes = (int(part) for part in value.strip().split(":"))
    if not OPENING_HOUR <= hours < CLOSING_HOUR:
        raise ValueError(
            f"Time must be between {OPENING_HOUR:02d}:00 and {CLOSING_HOUR:02d}:00"
        )

    return f"{hours:02d}:{minutes:02d}"


def normalize_phone(phone: Optional[str], country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> Optional[str]:
    """
    Normalize a phone number to E.164 format.

    Numbers with a trunk prefix (leading 0) or no prefix at all are assumed to
    be domestic and get the default country code.

    Args:
        phone: Phone number string in various formats (e.g. "333 940 6945")

    Returns:
        Normalized phone number (e.g. "+393339406945"), or None when empty
    """
    if not phone:
        return None

    normalized = re.sub(r"[\s\-/().]", "", phone)
    if not normalized:
        return None

    if normalized.startswith("+"):
        return normalized
    if normalized.startswith("00"):
        return "+" + normalized[2:]
    if normalized.startswith("0"):
        return f"+{country_code}{normalized[1:]}"
    if normalized.startswith(country_code):
        return "+" + normalized
    return f"+{country_code}{normalized}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email
