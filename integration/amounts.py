"""integration/amounts.py

Conversions between atomic token amounts and human-readable decimals.

Decimal arithmetic only: float conversion would lose precision well
inside the u64 range.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

from integration import reject_reasons
from integration.errors import ValidationError


def to_human_readable(raw_amount: int, decimals: int) -> Decimal:
    """Atomic amount to token units (e.g. 1_500_000 with 6 decimals -> 1.5)."""
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")
    value = Decimal(raw_amount).scaleb(-decimals)
    # keep whole amounts out of exponent notation
    if value == value.to_integral_value():
        return value.quantize(Decimal(1))
    return value.normalize()


def to_raw_amount(human_amount: Union[str, int, Decimal], decimals: int) -> int:
    """
    Token units to atomic amount, truncating digits beyond `decimals`.

    Raises:
        ValidationError: If the amount is not a positive number
    """
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")
    if isinstance(human_amount, float):
        human_amount = str(human_amount)
    try:
        value = Decimal(human_amount)
    except (InvalidOperation, TypeError):
        raise ValidationError(f"Not a number: {human_amount!r}", reason=reject_reasons.INVALID_AMOUNT)
    if not value.is_finite() or value <= 0:
        raise ValidationError(f"Amount must be positive, got {human_amount}", reason=reject_reasons.INVALID_AMOUNT)
    return int(value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))
