"""Shared contact-detail helpers used across the quote engine."""

import re
from typing import Optional

MAX_EMAIL_LENGTH = 254

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)*\.[a-zA-Z]{2,}$"
)


def format_phone_e164(value: Optional[str]) -> Optional[str]:
    """Format a phone number as E.164, assuming US when no country code is given.

    Examples:
        >>> format_phone_e164("(555) 123-4567")
        '+15551234567'
        >>> format_phone_e164("+15551234567")
        '+15551234567'
        >>> format_phone_e164("12") is None
        True
    """
    if not value:
        return None
    cleaned = re.sub(r"[^\d+]", "", value)
    if cleaned.startswith("+"):
        digits = cleaned[1:]
        if digits.isdigit() and 10 <= len(digits) <= 15:
            return cleaned
        return None

    digits = re.sub(r"\D", "", cleaned)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def is_valid_phone(value: Optional[str]) -> bool:
    """US numbers only: 10 digits, or 11 with a leading 1, and a plausible area code."""
    if not value:
        return False
    digits = re.sub(r"\D", "", value)
    if len(digits) == 10:
        area_code = digits[:3]
    elif len(digits) == 11 and digits.startswith("1"):
        area_code = digits[1:4]
    else:
        return False

    # N11 codes and codes starting with 0/1 are never assigned
    if area_code[0] in "01":
        return False
    if area_code[1:] == "11":
        return False
    return True


def is_valid_email(value: Optional[str]) -> bool:
    """Check email format, rejecting leading, trailing, or doubled dots."""
    if not value or len(value) > MAX_EMAIL_LENGTH:
        return False
    local, _, domain = value.partition("@")
    if not local or not domain:
        return False
    for part in (local, domain):
        if part.startswith(".") or part.endswith(".") or ".." in part:
            return False
    return bool(_EMAIL_RE.match(value))


def normalize_email(value: str) -> str:
    """Trim and lowercase an email so it can serve as a lookup key."""
    return value.strip().lower()
