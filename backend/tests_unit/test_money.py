"""
Tests for money helpers (core.money).
"""
from decimal import Decimal

import pytest

from backend.app.core.money import (
    format_currency,
    format_percentage,
    is_two_decimal,
    parse_amount,
    percentage,
    round_money,
    to_storage,
)


@pytest.mark.parametrize("value,expected", [
    ("12.50", 12.5),
    (Decimal("3.10"), 3.1),
    (None, 0.0),
    ("", 0.0),
    (7, 7.0),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


def test_round_money_is_half_up():
    """Ties go up, unlike round() which rounds 0.125 to 0.12."""
    assert round_money(0.125) == 0.13
    assert round_money(2.675 + 1e-9) == 2.68
    assert round_money(10.0) == 10.0


def test_percentage_of_zero_whole_is_zero():
    assert percentage(5.0, 0.0) == 0.0
    assert percentage(1.0, 3.0) == 33.33


def test_is_two_decimal():
    assert is_two_decimal(12.34)
    assert is_two_decimal(0.1 + 0.2)
    assert not is_two_decimal(12.345)


def test_format_currency():
    assert format_currency(1234.5) == "SAR 1,234.50"
    assert format_currency(0) == "SAR 0.00"
    assert format_currency(9.99, currency="USD") == "USD 9.99"


def test_format_percentage():
    assert format_percentage(12.5) == "12.50%"


def test_to_storage_returns_two_place_decimal():
    assert to_storage(66.666) == Decimal("66.67")
    assert to_storage(5) == Decimal("5.00")
