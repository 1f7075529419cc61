"""Major/minor currency unit conversion.

The engine stores and compares every amount in the smallest currency
unit (cents, satang, ...). Conversion happens only where amounts cross
the boundary with the checkout collaborator, which speaks major units.

Zero-decimal currencies (JPY, KRW, ...) convert 1:1. All others use a
factor of 100. Rounding is half-up on the minor unit.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import FrozenSet, Union

# Currencies the card network settles without a fractional unit.
ZERO_DECIMAL_CURRENCIES: FrozenSet[str] = frozenset({
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
})

Amount = Union[Decimal, int, str]


def is_zero_decimal(currency_code: str) -> bool:
    """True if the currency has no minor unit."""
    return currency_code.strip().lower() in ZERO_DECIMAL_CURRENCIES


def minor_unit_factor(currency_code: str) -> int:
    """Number of minor units per major unit."""
    return 1 if is_zero_decimal(currency_code) else 100


def to_smallest_unit(amount: Amount, currency_code: str) -> int:
    """Convert a major-unit amount to an integer of minor units.

    Floats are rejected: money never passes through binary floating point.
    """
    if isinstance(amount, float):
        raise TypeError("Monetary amounts must be Decimal, int or str, not float")
    value = Decimal(str(amount)) * minor_unit_factor(currency_code)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_smallest_unit(amount: int, currency_code: str) -> Decimal:
    """Convert minor units back to a major-unit Decimal."""
    factor = minor_unit_factor(currency_code)
    if factor == 1:
        return Decimal(amount)
    return (Decimal(amount) / Decimal(factor)).quantize(Decimal("0.01"))


def round_half_up(value: Decimal) -> int:
    """Round a fractional minor-unit amount to the nearest integer, .5 up."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
