"""
Withholding -- pure certificate amount computation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Rules:
    - Types listed as tax-based (IVA) apply their rate to the VAT charged.
    - Every other type applies its rate to the taxable base.
    - Unknown types fall back to the default type's rate (RENTA).
    - Results are rounded to 2 decimals, half up.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ledger_kernel.config import WithholdingSettings
from ledger_kernel.db.types import round_money, to_decimal

ZERO = Decimal("0")


@dataclass(frozen=True)
class WithholdingTotals:
    total_base: Decimal
    total_tax: Decimal
    total_withheld: Decimal


def calculate_withholding(
    total_base: Decimal | int | str,
    withholding_type: str,
    total_tax: Decimal | int | str,
    settings: WithholdingSettings,
) -> Decimal:
    """
    Compute the withheld amount for one certificate.

    With the default rates, a RENTA base of 10000 withholds 250.00 and an
    IVA tax of 1520 withholds 228.00.
    """
    base = to_decimal(total_base)
    tax = to_decimal(total_tax)
    rate = settings.rate_for(str(withholding_type))
    if str(withholding_type) in settings.tax_based_types:
        return round_money(tax * rate)
    return round_money(base * rate)


def summarize_orders(
    orders: Iterable[tuple[Decimal, Decimal]],
    withholding_type: str,
    settings: WithholdingSettings,
) -> WithholdingTotals:
    """Sum (subtotal, tax) pairs and compute the withheld amount."""
    total_base = ZERO
    total_tax = ZERO
    for subtotal, tax in orders:
        total_base += subtotal
        total_tax += tax
    return WithholdingTotals(
        total_base=total_base,
        total_tax=total_tax,
        total_withheld=calculate_withholding(
            total_base, withholding_type, total_tax, settings
        ),
    )
