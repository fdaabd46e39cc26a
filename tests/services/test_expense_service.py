"""
Expense lifecycle: DRAFT -> APPROVED -> PAID, or CANCELLED.

Verifies:
- Amounts (tax, withholding at source, total) are computed on create and
  recomputed on every edit
- Only DRAFT expenses are edited or deleted
- Transitions outside the lifecycle are StateErrors
- Paying queues the ledger notification instead of running it inline
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.enums import ExpenseCategory, ExpenseStatus, PaymentMethod
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ConflictError,
    ExpenseNotEditableError,
    ExpenseNotFoundError,
    InvalidAmountError,
    InvalidTransitionError,
    StateError,
    SupplierNotFoundError,
)
from ledger_kernel.services.expense_service import month_bounds


@pytest.fixture
def draft(expense_service):
    return expense_service.create(
        ExpenseCategory.HONORARIOS,
        "Asesoria contable enero",
        Decimal("1000000"),
        tax_rate=Decimal("19"),
    )


@pytest.fixture
def approved(expense_service, draft, test_actor_id):
    return expense_service.approve(draft.id, test_actor_id)


class TestCreate:

    def test_create_computes_amounts(self, draft, deterministic_clock):
        assert draft.expense_number == "GTO-00001"
        assert draft.status == ExpenseStatus.DRAFT
        assert draft.tax == Decimal("190000.00")
        assert draft.rete_fuente == Decimal("25000")
        assert draft.total == Decimal("1165000.00")
        assert draft.issue_date == deterministic_clock.today()

    def test_numbers_increase(self, expense_service, draft):
        second = expense_service.create(ExpenseCategory.PAPELERIA, "Resmas", Decimal("50000"))
        assert second.expense_number == "GTO-00002"
        assert second.rete_fuente == Decimal("0")
        assert second.total == Decimal("50000")

    def test_with_supplier_and_account(self, expense_service, create_supplier, standard_accounts):
        supplier = create_supplier()
        expense = expense_service.create(
            ExpenseCategory.ARRIENDO,
            "Arriendo local",
            Decimal("2000000"),
            supplier_id=supplier.id,
            account_id=standard_accounts["5110"].id,
            invoice_number="FV-889",
        )
        assert expense.supplier_id == supplier.id
        assert expense.account_id == standard_accounts["5110"].id

    def test_unknown_supplier(self, expense_service):
        with pytest.raises(SupplierNotFoundError):
            expense_service.create(ExpenseCategory.OTROS, "x", Decimal("1"), supplier_id=uuid4())

    def test_unknown_account(self, expense_service):
        with pytest.raises(AccountNotFoundError):
            expense_service.create(ExpenseCategory.OTROS, "x", Decimal("1"), account_id=uuid4())

    @pytest.mark.parametrize("subtotal, tax_rate", [("-1", "0"), ("10", "-19")])
    def test_negative_amounts_rejected(self, expense_service, subtotal, tax_rate):
        with pytest.raises(InvalidAmountError):
            expense_service.create(ExpenseCategory.OTROS, "x", Decimal(subtotal), tax_rate=Decimal(tax_rate))


class TestEdit:

    def test_update_recomputes(self, expense_service, draft):
        updated = expense_service.update(draft.id, subtotal=Decimal("100000"))
        assert updated.subtotal == Decimal("100000")
        assert updated.tax == Decimal("19000.00")
        assert updated.rete_fuente == Decimal("0")
        assert updated.total == Decimal("119000.00")

    def test_category_change_drops_withholding(self, expense_service, draft):
        updated = expense_service.update(draft.id, category=ExpenseCategory.SEGUROS)
        assert updated.rete_fuente == Decimal("0")
        assert updated.total == Decimal("1190000.00")

    def test_clear_optional_field(self, expense_service, draft):
        expense_service.update(draft.id, invoice_number="FV-1")
        assert expense_service.update(draft.id, invoice_number=None).invoice_number is None

    def test_update_after_approval_rejected(self, expense_service, approved):
        with pytest.raises(ExpenseNotEditableError) as exc_info:
            expense_service.update(approved.id, description="cambio")
        assert isinstance(exc_info.value, ConflictError)

    def test_remove_draft(self, expense_service, draft):
        expense_service.remove(draft.id)
        with pytest.raises(ExpenseNotFoundError):
            expense_service.get(draft.id)

    def test_remove_approved_rejected(self, expense_service, approved):
        with pytest.raises(ExpenseNotEditableError):
            expense_service.remove(approved.id)


class TestLifecycle:

    def test_approve_records_actor(self, approved, test_actor_id, deterministic_clock):
        assert approved.status == ExpenseStatus.APPROVED
        assert approved.approved_by == test_actor_id
        assert approved.approved_at == deterministic_clock.now()

    def test_pay(self, expense_service, approved):
        paid = expense_service.pay(approved.id, PaymentMethod.BANK_TRANSFER, reference="TRF-77")
        assert paid.status == ExpenseStatus.PAID
        assert paid.payment_method == PaymentMethod.BANK_TRANSFER
        assert paid.payment_reference == "TRF-77"
        assert paid.payment_date == date(2025, 1, 15)

    def test_pay_draft_is_state_error(self, expense_service, draft):
        with pytest.raises(InvalidTransitionError) as exc_info:
            expense_service.pay(draft.id, PaymentMethod.CASH)
        assert isinstance(exc_info.value, StateError)

    def test_pay_queues_ledger_notification(self, expense_service, ledger, approved):
        assert ledger.hooks.pending == 0
        expense_service.pay(approved.id, PaymentMethod.CASH)
        assert ledger.hooks.pending == 1

    def test_cancel_from_draft_and_approved(self, expense_service, draft, test_actor_id):
        other = expense_service.create(ExpenseCategory.OTROS, "Otro", Decimal("10"))
        expense_service.approve(other.id, test_actor_id)

        assert expense_service.cancel(draft.id).status == ExpenseStatus.CANCELLED
        assert expense_service.cancel(other.id).status == ExpenseStatus.CANCELLED

    @pytest.mark.parametrize("terminal", [ExpenseStatus.PAID, ExpenseStatus.CANCELLED])
    def test_terminal_states(self, expense_service, approved, terminal):
        if terminal == ExpenseStatus.PAID:
            expense_service.pay(approved.id, PaymentMethod.CASH)
        else:
            expense_service.cancel(approved.id)

        with pytest.raises(InvalidTransitionError):
            expense_service.cancel(approved.id)

    def test_unknown_expense(self, expense_service, test_actor_id):
        with pytest.raises(ExpenseNotFoundError):
            expense_service.approve(uuid4(), test_actor_id)

    def test_other_tenant_cannot_approve(self, other_ledger, draft, test_actor_id):
        with pytest.raises(ExpenseNotFoundError):
            other_ledger.expenses.approve(draft.id, test_actor_id)


class TestQueries:

    def test_list_filters(self, expense_service, create_supplier, draft):
        supplier = create_supplier()
        rent = expense_service.create(
            ExpenseCategory.ARRIENDO,
            "Arriendo bodega",
            Decimal("800000"),
            supplier_id=supplier.id,
            issue_date=date(2025, 1, 2),
        )

        assert {e.id for e in expense_service.list_expenses()} == {draft.id, rent.id}
        assert [e.id for e in expense_service.list_expenses(category=ExpenseCategory.ARRIENDO)] == [rent.id]
        assert [e.id for e in expense_service.list_expenses(supplier_id=supplier.id)] == [rent.id]
        assert [e.id for e in expense_service.list_expenses(date_to=date(2025, 1, 10))] == [rent.id]
        assert [e.id for e in expense_service.list_expenses(date_from=date(2025, 1, 10))] == [draft.id]
        assert [e.id for e in expense_service.list_expenses(search="BODEGA")] == [rent.id]
        assert [e.id for e in expense_service.list_expenses(search="gto-00001")] == [draft.id]
        assert expense_service.list_expenses(status=ExpenseStatus.PAID) == []

    def test_stats(self, expense_service, draft, test_actor_id):
        cancelled = expense_service.create(ExpenseCategory.PAPELERIA, "Anulado", Decimal("999"))
        expense_service.cancel(cancelled.id)
        expense_service.create(ExpenseCategory.PAPELERIA, "Toner", Decimal("120000"))
        expense_service.create(
            ExpenseCategory.PAPELERIA, "Diciembre", Decimal("5000"), issue_date=date(2024, 12, 20)
        )

        stats = expense_service.stats()

        assert stats.month_start == date(2025, 1, 1)
        assert stats.count_by_status == {"DRAFT": 3, "APPROVED": 0, "PAID": 0, "CANCELLED": 1}
        assert stats.total_by_category == {
            "HONORARIOS": Decimal("1165000.00"),
            "PAPELERIA": Decimal("120000"),
        }
        assert stats.month_total == Decimal("1285000.00")


@pytest.mark.parametrize(
    "day, bounds",
    [
        (date(2025, 1, 15), (date(2025, 1, 1), date(2025, 2, 1))),
        (date(2024, 12, 31), (date(2024, 12, 1), date(2025, 1, 1))),
    ],
)
def test_month_bounds(day, bounds):
    assert month_bounds(day) == bounds
