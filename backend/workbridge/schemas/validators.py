"""Reusable validators for onboarding input.

Provides the small set of rules the wizard steps share:
- Email validation
- Phone number validation (E.164)
- Minimum-age check from a date of birth
- Filename sanitisation for stored uploads
"""

import os
import re
from datetime import date


# Regex patterns
EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_REGEX = re.compile(r"^\+[1-9]\d{1,14}$")  # E.164, leading + required
UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

MINIMUM_AGE = 18
MAX_FILENAME_LENGTH = 255


def validate_email(value: str) -> str:
    """Validate email address.

    Args:
        value: Email address

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email is invalid
    """
    if not value:
        raise ValueError("Email is required")

    value = value.strip().lower()

    if len(value) > 254:  # RFC 5321
        raise ValueError("Email address too long")

    if not EMAIL_REGEX.match(value):
        raise ValueError("Please enter a valid email address")

    return value


def validate_phone(value: str) -> str:
    """Validate phone number (E.164 format, e.g. +14155552671).

    Raises:
        ValueError: If phone number is invalid
    """
    if not value:
        raise ValueError("Phone number is required")

    value = value.strip()

    if not PHONE_REGEX.match(value):
        raise ValueError(
            "Enter phone in E.164 format (e.g., +91XXXXXXXXXX)"
        )

    return value


def calculate_age(date_of_birth: date, today: date | None = None, strict: bool = True) -> int:
    """Age in whole years on `today`.

    With `strict=False` only the calendar years are subtracted, so a
    worker whose birthday has not yet come round this year is counted a
    year older than they are.
    """
    today = today or date.today()
    age = today.year - date_of_birth.year
    if strict and (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def validate_minimum_age(
    date_of_birth: date,
    today: date | None = None,
    strict: bool = True,
) -> date:
    if date_of_birth > (today or date.today()):
        raise ValueError("Date of birth cannot be in the future")
    if calculate_age(date_of_birth, today, strict) < MINIMUM_AGE:
        raise ValueError(f"You must be at least {MINIMUM_AGE} years old")
    return date_of_birth


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot ("" when there is none)."""
    base = os.path.basename(filename.replace("\\", "/"))
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[1].lower()


def sanitize_filename(filename: str, max_length: int = MAX_FILENAME_LENGTH) -> str:
    """Sanitize an uploaded filename for storage and display.

    Drops any directory part, replaces characters outside
    ``[A-Za-z0-9._-]`` with ``_``, collapses runs of ``_`` and trims to
    `max_length` while keeping the extension.
    """
    base = os.path.basename(filename.replace("\\", "/"))
    safe = UNSAFE_FILENAME_CHARS.sub("_", base)
    safe = re.sub(r"_{2,}", "_", safe).lstrip(".")

    if len(safe) > max_length:
        if "." in safe:
            name, ext = safe.rsplit(".", 1)
            safe = name[: max_length - len(ext) - 1] + "." + ext
        else:
            safe = safe[:max_length]

    # Fallback if sanitization results in empty string
    if not safe:
        safe = "document"

    return safe
