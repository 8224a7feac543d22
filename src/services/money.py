"""Cent-exact money helpers shared by allocation, balances and the group ledger.

Amounts are ``Decimal`` values quantized to cents with ROUND_HALF_UP. Floats are
converted through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather than its
binary expansion.
"""

import secrets
import string
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

_ID_ALPHABET = string.ascii_letters + string.digits + "_-"


def to_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal to an exact Decimal."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal(0)
    return Decimal(str(value))


def round_cents(value) -> Decimal:
    """Round to two decimal places, half away from zero."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_cents(value) -> int:
    """Integer number of cents for an amount."""
    return int(round_cents(value) * 100)


def from_cents(cents: int) -> Decimal:
    """Amount for an integer number of cents."""
    return (Decimal(cents) / 100).quantize(CENTS)


def parse_amount(text: str | None) -> Decimal:
    """Parse a user-typed decimal string, treating garbage as zero.

    Examples:
        >>> parse_amount("12.345")
        Decimal('12.35')
        >>> parse_amount("abc")
        Decimal('0.00')
    """
    if text is None:
        return ZERO
    cleaned = str(text).strip()
    if not cleaned:
        return ZERO
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    if not value.is_finite():
        return ZERO
    return round_cents(value)


def within_tolerance(a, b, tolerance) -> bool:
    """True when two amounts differ by no more than ``tolerance``."""
    return abs(to_decimal(a) - to_decimal(b)) <= to_decimal(tolerance)


def generate_id(prefix: str = "", size: int = 10) -> str:
    """Random URL-safe id, optionally prefixed (``exp_Ab3...``)."""
    token = "".join(secrets.choice(_ID_ALPHABET) for _ in range(size))
    return f"{prefix}{token}"


__all__ = [
    "CENTS",
    "ZERO",
    "to_decimal",
    "round_cents",
    "to_cents",
    "from_cents",
    "parse_amount",
    "within_tolerance",
    "generate_id",
]
