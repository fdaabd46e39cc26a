"""
Module: ledger_kernel.db.types
Responsibility: Annotated column type aliases and the rounding helpers every
    model and service uses for money.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.

Invariants enforced:
    - No floats: all monetary amounts are Decimal.
    - round_money() is the only sanctioned rounding function for computed
      amounts (2 places, ROUND_HALF_UP).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import Numeric

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Coerce an int/str/Decimal amount to Decimal. Floats are rejected."""
    if isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be float: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value (default: 2 places, half up)."""
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)


def round_whole(value: Decimal) -> Decimal:
    """Round to whole currency units, half up."""
    return value.quantize(Decimal("1"), rounding=DEFAULT_ROUNDING)
