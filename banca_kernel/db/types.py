"""
Module: banca_kernel.db.types
Responsibility: Money quantization and conversion helpers.  Centralizes
    precision and rounding so every model and service uses identical
    definitions; the money column type lives in db/base.py.

CRITICAL: No floats anywhere in the banking kernel.  All monetary amounts use
    Decimal with explicit precision.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation


def minor_unit(decimal_places: int) -> Decimal:
    """Smallest representable amount for a currency precision (0.01 for 2)."""
    return Decimal(1).scaleb(-decimal_places)


def truncate_money(value: Decimal, decimal_places: int = 2) -> Decimal:
    """
    Truncate toward zero to the currency minor unit.

    Used for commission computation: no banker's rounding, no half-up,
    the fractional part below the minor unit is simply dropped.
    """
    return value.quantize(minor_unit(decimal_places), rounding=ROUND_DOWN)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert an incoming amount to Decimal without going through float.

    Raises:
        ValueError: If the value is a float or not a finite number.
    """
    if isinstance(value, float):
        raise ValueError("Monetary amounts must not be floats")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return amount
