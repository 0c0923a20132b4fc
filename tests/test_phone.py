"""
Phone number normalization tests.
"""

import pytest

from carwash.core.phone import format_phone_number, is_valid_phone_number, mask_phone_number


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0712345678", "254712345678"),
        ("+254712345678", "254712345678"),
        ("254712345678", "254712345678"),
        ("712345678", "254712345678"),
        ("0712 345 678", "254712345678"),
        ("0110123456", "254110123456"),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


@pytest.mark.parametrize(
    "raw, valid",
    [
        ("0712345678", True),
        ("0110123456", True),
        ("254712345678", True),
        ("0812345678", False),
        ("07123", False),
        ("07123456789", False),
        ("", False),
    ],
)
def test_is_valid_phone_number(raw, valid):
    assert is_valid_phone_number(raw) is valid


def test_mask_phone_number():
    assert mask_phone_number("254712345678") == "2547****78"
