"""
Expense amounts -- pure computation of tax, withholding at source and total.

    tax         = round(subtotal * tax_rate / 100, 2)
    rete_fuente = round(subtotal * rate) in whole units, only for the
                  configured category (HONORARIOS) at or above the
                  minimum base; 0 otherwise
    total       = subtotal + tax - rete_fuente
"""

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.config import ExpenseSettings
from ledger_kernel.db.types import round_money, round_whole, to_decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ExpenseAmounts:
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    rete_fuente: Decimal
    total: Decimal


def compute_expense_amounts(
    subtotal: Decimal | int | str,
    tax_rate: Decimal | int | str,
    category: str,
    settings: ExpenseSettings,
) -> ExpenseAmounts:
    subtotal = to_decimal(subtotal)
    tax_rate = to_decimal(tax_rate)
    tax = round_money(subtotal * tax_rate / HUNDRED)

    rete_fuente = ZERO
    if (
        str(category) == settings.rete_fuente_category
        and subtotal >= settings.rete_fuente_min_base
    ):
        rete_fuente = round_whole(subtotal * settings.rete_fuente_rate)

    return ExpenseAmounts(
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax=tax,
        rete_fuente=rete_fuente,
        total=subtotal + tax - rete_fuente,
    )
