"""
Kenyan phone number helpers for the M-Pesa gateway.
"""

import re

_NON_DIGITS = re.compile(r"\D")
_VALID_MSISDN = re.compile(r"^254[17]\d{8}$")


def format_phone_number(phone: str) -> str:
    """
    Convert a local phone number to the 254XXXXXXXXX format.

    Examples:
        0712345678     -> 254712345678
        +254712345678  -> 254712345678
        712345678      -> 254712345678
    """
    cleaned = _NON_DIGITS.sub("", phone or "")

    if cleaned.startswith("0"):
        cleaned = "254" + cleaned[1:]
    elif not cleaned.startswith("254"):
        cleaned = "254" + cleaned

    return cleaned


def is_valid_phone_number(phone: str) -> bool:
    """Check that the number normalizes to a Safaricom/Airtel MSISDN."""
    return bool(_VALID_MSISDN.match(format_phone_number(phone)))


def mask_phone_number(phone: str) -> str:
    """Mask the middle digits of a phone number for logs."""
    cleaned = _NON_DIGITS.sub("", phone or "")
    if len(cleaned) < 6:
        return phone
    return cleaned[:4] + "****" + cleaned[-2:]
