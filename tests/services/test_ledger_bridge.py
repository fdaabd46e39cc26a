"""
Journal entries for paid expenses.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.enums import (
    ExpenseCategory,
    JournalEntrySource,
    JournalEntryStatus,
    PaymentMethod,
)
from ledger_kernel.exceptions import ExpenseNotFoundError


@pytest.fixture
def pay_expense(expense_service, test_actor_id):
    def _pay(category, subtotal, tax_rate, method, account_id=None):
        expense = expense_service.create(
            category, "Gasto de prueba", Decimal(subtotal), tax_rate=Decimal(tax_rate), account_id=account_id
        )
        expense_service.approve(expense.id, test_actor_id)
        return expense_service.pay(expense.id, method)

    return _pay


def _line_map(entry):
    return {l.account_code: (l.debit, l.credit) for l in entry.lines}


def test_fees_paid_in_cash(ledger, pay_expense, standard_accounts, january_period, test_actor_id):
    paid = pay_expense(ExpenseCategory.HONORARIOS, "1000000", "19", PaymentMethod.CASH)

    entry = ledger.bridge.on_expense_paid(paid.id)

    assert entry.source == JournalEntrySource.EXPENSE_PAID
    assert entry.status == JournalEntryStatus.POSTED
    assert entry.expense_id == paid.id
    assert entry.period_id == january_period.id
    assert _line_map(entry) == {
        "5195": (Decimal("1000000"), Decimal("0")),
        "241205": (Decimal("190000.00"), Decimal("0")),
        "236540": (Decimal("0"), Decimal("25000")),
        "110505": (Decimal("0"), Decimal("1165000.00")),
    }
    assert entry.total_debit == entry.total_credit == Decimal("1190000")


def test_bank_payment_without_tax_uses_own_account(ledger, pay_expense, standard_accounts, january_period):
    paid = pay_expense(
        ExpenseCategory.ARRIENDO, "500000", "0", PaymentMethod.BANK_TRANSFER,
        account_id=standard_accounts["5110"].id,
    )

    entry = ledger.bridge.on_expense_paid(paid.id)

    assert _line_map(entry) == {
        "5110": (Decimal("500000"), Decimal("0")),
        "111005": (Decimal("0"), Decimal("500000")),
    }


def test_unknown_expense(ledger):
    with pytest.raises(ExpenseNotFoundError):
        ledger.bridge.on_expense_paid(uuid4())
