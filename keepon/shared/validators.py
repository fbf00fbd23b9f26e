"""Shared validation utilities"""

import re
import uuid
from typing import Optional


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

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


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize an international phone number, keeping a leading +.

    Raises:
        ValueError: If the number has fewer than 6 or more than 15 digits
    """
    if not phone:
        return phone

    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)
    if not 6 <= len(digits) <= 15:
        raise ValueError("Phone number must have between 6 and 15 digits")

    return f"+{digits}" if phone.startswith("+") else digits


def validate_country_code(code: Optional[str]) -> Optional[str]:
    """ISO 3166-1 alpha-2, upper-cased"""
    if code is None:
        return code
    code = code.strip().upper()
    if not re.fullmatch(r"[A-Z]{2}", code):
        raise ValueError("Country must be a two letter ISO code")
    return code


def validate_currency_code(code: Optional[str]) -> Optional[str]:
    """ISO 4217, upper-cased"""
    if code is None:
        return code
    code = code.strip().upper()
    if not re.fullmatch(r"[A-Z]{3}", code):
        raise ValueError("Currency must be a three letter ISO code")
    return code


def validate_timezone(tz_name: Optional[str]) -> Optional[str]:
    if not tz_name:
        return tz_name
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e
    return tz_name
