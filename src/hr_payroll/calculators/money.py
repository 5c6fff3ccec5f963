"""Decimal helpers shared by the calculators."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from hr_payroll.errors import ValidationError

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (centavos)."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Coerce a numeric input to Decimal, rejecting non-numeric values.

    Floats go through ``str`` so 0.1 stays 0.1.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric, got bool", {"field": field})
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(
                f"{field} must be numeric, got {value!r}", {"field": field}
            ) from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", {"field": field})
    return result


def money_str(amount: Decimal) -> str:
    """Serialize a money amount for JSON breakdown columns."""
    return str(round_to_cents(amount))
