"""Shared validation utilities"""

import math
import re
from typing import Any, Optional

DEVICE_PLATFORMS = ("web", "ios", "android")

COMMISSION_RATE_ERROR = "Commission rate must be a whole number between 1% and 50%"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase, stripped email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    if not re.match(r"^[^\s@]+@[^\s@]+\.[^\s@]+$", email):
        raise ValueError("Invalid email format")

    return email


def join_phone(phone_code: Optional[str], phone_number: Optional[str]) -> Optional[str]:
    """Dialling code and local number as one string, only when both are present"""
    if phone_code and phone_number:
        return f"{phone_code}{phone_number}"
    return None


def validate_commission_rate(value: Any) -> int:
    """
    Commission rates are whole percentages from 1 to 50.

    Raises:
        ValueError: If value is not an integer in range
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(COMMISSION_RATE_ERROR)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(COMMISSION_RATE_ERROR)
        value = int(value)
    if not isinstance(value, int) or value < 1 or value > 50:
        raise ValueError(COMMISSION_RATE_ERROR)
    return value


def validate_platform(platform: Optional[str]) -> str:
    if not platform:
        raise ValueError("Platform is required")
    if platform not in DEVICE_PLATFORMS:
        raise ValueError("Invalid platform. Must be web, ios, or android")
    return platform


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
