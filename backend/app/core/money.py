"""
Money helpers shared by report calculations and formatting.

Amounts arrive as decimal strings (or Decimal from the database) and are
aggregated as floats. Rounding is half-up on the cent, the same rule the
dashboards have always displayed, not Python's banker's rounding.
"""
import math
from decimal import Decimal
from typing import Union

AmountLike = Union[str, int, float, Decimal, None]


def parse_amount(value: AmountLike) -> float:
    """Parse a stored amount into a float; empty or missing values count as 0."""
    if value is None or value == "":
        return 0.0
    return float(value)


def round_money(value: float) -> float:
    """Round to 2 decimals, ties going up: floor(x * 100 + 0.5) / 100."""
    return math.floor(value * 100 + 0.5) / 100


def percentage(part: float, whole: float) -> float:
    """Share of `whole` in percent rounded to 2 decimals, 0 when `whole` is 0."""
    if whole <= 0:
        return 0.0
    return round_money(part / whole * 100)


def is_two_decimal(value: float) -> bool:
    scaled = value * 100
    return abs(scaled - round(scaled)) < 1e-6


def format_currency(amount: float, currency: str = "SAR") -> str:
    """Format as `SAR 1,234.50`."""
    return f"{currency} {round_money(amount):,.2f}"


def format_percentage(value: float) -> str:
    return f"{value:.2f}%"


def to_storage(value: float) -> Decimal:
    """Serialize a rounded float for a DECIMAL(…, 2) column."""
    return Decimal(f"{round_money(value):.2f}")
