"""
Amount helpers.

Unit parameters and token amounts are integers scaled to 18 decimals.
Operators type human readable decimals, so we convert at the edge.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

from market_provisioner.core.errors import ValidationFailure

DECIMALS = 18
SCALE = 10**DECIMALS
MAX_AMOUNT = 2**256 - 1
_MAX_ADJUSTED = len(str(MAX_AMOUNT)) - DECIMALS


def to_base_units(value: str | int | Decimal) -> int:
    """
    Convert a decimal amount such as "0.10" into base units.

    Raises ValidationFailure for non numeric, negative, over precise, or
    out of range input.
    """
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationFailure(f"not a number: {value!r}") from None

    if not amount.is_finite():
        raise ValidationFailure(f"not a finite number: {value!r}")
    if amount < 0:
        raise ValidationFailure(f"amount must not be negative: {value!r}")

    # adjusted() is context free, so extreme exponents are refused before
    # any arithmetic can overflow or underflow
    if amount and amount.adjusted() > _MAX_ADJUSTED:
        raise ValidationFailure(f"amount out of range: {value!r}")
    if amount and amount.adjusted() < -DECIMALS:
        raise ValidationFailure(f"too many decimal places: {value!r}")

    with localcontext() as ctx:
        # enough digits for any 256 bit amount, so scaling never rounds
        ctx.prec = 100
        scaled = amount * SCALE
    if scaled > MAX_AMOUNT:
        raise ValidationFailure(f"amount out of range: {value!r}")

    if scaled != scaled.to_integral_value():
        raise ValidationFailure(f"too many decimal places: {value!r}")
    return int(scaled)


def from_base_units(amount: int) -> Decimal:
    """Convert base units back to a decimal amount for display."""
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(amount) / SCALE
