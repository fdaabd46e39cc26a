"""
Transaction boundaries and post-commit hooks.

Verifies:
- transaction() commits the unit of work and only then runs hooks
- Paying an expense posts its EXPENSE_PAID entry in a separate transaction
- A failing hook is logged and never undoes the committed payment
- A rolled back unit of work runs no hooks
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.enums import (
    AccountNature,
    AccountType,
    ExpenseCategory,
    ExpenseStatus,
    JournalEntrySource,
    PaymentMethod,
)
from ledger_kernel.exceptions import TenantNotBoundError
from ledger_kernel.services.post_commit import PostCommitHooks
from ledger_kernel.tenancy import TenantContext

BOOKS = (
    ("110505", "Caja general", AccountType.ASSET, AccountNature.DEBIT),
    ("236540", "Retencion en la fuente por pagar", AccountType.LIABILITY, AccountNature.CREDIT),
    ("241205", "IVA descontable", AccountType.ASSET, AccountNature.DEBIT),
    ("5195", "Gastos diversos", AccountType.EXPENSE, AccountNature.DEBIT),
)


def _setup_books(kernel, tenant):
    with kernel.transaction(tenant) as ledger:
        for code, name, account_type, nature in BOOKS:
            ledger.accounts.create(code, name, account_type, nature)
        ledger.periods.create("Enero 2025", date(2025, 1, 1), date(2025, 1, 31))


def _approved_expense(kernel, tenant, actor_id):
    with kernel.transaction(tenant) as ledger:
        expense = ledger.expenses.create(
            ExpenseCategory.HONORARIOS, "Revisoria fiscal", Decimal("1000000"), tax_rate=Decimal("19")
        )
        ledger.expenses.approve(expense.id, actor_id)
    return expense


class TestTransaction:

    def test_commit_is_visible_to_later_units(self, kernel, tenant):
        with kernel.transaction(tenant) as ledger:
            created = ledger.accounts.create("1105", "Caja", AccountType.ASSET, AccountNature.DEBIT)

        with kernel.transaction(tenant) as ledger:
            assert ledger.accounts.find_by_code("1105").id == created.id

    def test_exception_rolls_back(self, kernel, tenant):
        with pytest.raises(RuntimeError):
            with kernel.transaction(tenant) as ledger:
                ledger.accounts.create("1105", "Caja", AccountType.ASSET, AccountNature.DEBIT)
                raise RuntimeError("boom")

        with kernel.transaction(tenant) as ledger:
            assert ledger.accounts.find_by_code("1105") is None

    def test_unbound_tenant_fails_fast(self, kernel):
        with pytest.raises(TenantNotBoundError):
            with kernel.transaction(TenantContext.unbound()):
                pass

    def test_hooks_run_after_commit(self, kernel, tenant):
        seen = []
        with kernel.transaction(tenant) as ledger:
            ledger.hooks.defer("record_run", seen.append, "ran")
            assert seen == []
        assert seen == ["ran"]


class TestExpenseLedgerNotification:

    def test_paid_expense_gets_journal_entry(self, kernel, tenant, test_actor_id):
        _setup_books(kernel, tenant)
        expense = _approved_expense(kernel, tenant, test_actor_id)

        with kernel.transaction(tenant) as ledger:
            ledger.expenses.pay(expense.id, PaymentMethod.CASH)
            assert ledger.journal.list_entries() == []

        with kernel.transaction(tenant) as ledger:
            entries = ledger.journal.list_entries(source=JournalEntrySource.EXPENSE_PAID)
        assert len(entries) == 1
        assert entries[0].expense_id == expense.id
        assert entries[0].total_debit == Decimal("1190000")

    def test_hook_failure_keeps_payment(self, kernel, tenant, test_actor_id, captured_logs):
        expense = _approved_expense(kernel, tenant, test_actor_id)

        with kernel.transaction(tenant) as ledger:
            ledger.expenses.pay(expense.id, PaymentMethod.CASH)

        with kernel.transaction(tenant) as ledger:
            assert ledger.expenses.get(expense.id).status == ExpenseStatus.PAID
            assert ledger.journal.list_entries() == []
        assert any(r["message"] == "post_commit_hook_failed" for r in captured_logs())

    def test_rollback_discards_notification(self, kernel, tenant, test_actor_id):
        _setup_books(kernel, tenant)
        expense = _approved_expense(kernel, tenant, test_actor_id)

        with pytest.raises(RuntimeError):
            with kernel.transaction(tenant) as ledger:
                ledger.expenses.pay(expense.id, PaymentMethod.CASH)
                raise RuntimeError("abort")

        with kernel.transaction(tenant) as ledger:
            assert ledger.expenses.get(expense.id).status == ExpenseStatus.APPROVED
            assert ledger.journal.list_entries() == []


class TestPostCommitHooks:

    def test_failures_are_counted_and_others_still_run(self, captured_logs):
        hooks = PostCommitHooks()
        seen = []

        def broken():
            raise ValueError("no")

        hooks.defer("first", seen.append, 1)
        hooks.defer("broken", broken)
        hooks.defer("last", seen.append, 2)

        assert hooks.run() == 2
        assert seen == [1, 2]
        assert hooks.pending == 0
        failed = [r for r in captured_logs() if r["message"] == "post_commit_hook_failed"]
        assert failed and failed[0]["hook"] == "broken"

    def test_discard(self):
        hooks = PostCommitHooks()
        hooks.defer("x", print)
        hooks.discard()
        assert hooks.pending == 0
        assert hooks.run() == 0
