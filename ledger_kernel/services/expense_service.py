"""
ExpenseService -- operating expense lifecycle.

Responsibility:
    Creates expenses with computed tax, withholding at source and total,
    numbers them ``GTO-NNNNN`` from the locked counter, and moves them
    through DRAFT -> APPROVED -> PAID (or CANCELLED).  Paying an expense
    defers the ledger notification until the transaction commits.

Architecture position:
    Kernel > Services -- imperative shell.
    Amounts come from the pure ``domain.expenses`` module.

Invariants enforced:
    - Only DRAFT expenses are edited or deleted.
    - Status changes follow EXPENSE_TRANSITIONS; PAID and CANCELLED are
      terminal.
    - The ledger notification never runs inside the expense transaction;
      a notification failure never undoes the payment.

Failure modes:
    - ExpenseNotFoundError, SupplierNotFoundError, AccountNotFoundError.
    - ExpenseNotEditableError: update/remove outside DRAFT.
    - InvalidTransitionError: approve/pay/cancel from the wrong status.
    - InvalidAmountError: negative subtotal or tax rate.

Audit relevance:
    Every lifecycle step logs the expense number and new status.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.config import ExpenseSettings, NumberingSettings
from ledger_kernel.db.types import ZERO, to_decimal
from ledger_kernel.domain.dtos import ExpenseInfo, ExpenseStats
from ledger_kernel.domain.enums import ExpenseCategory, ExpenseStatus, PaymentMethod
from ledger_kernel.domain.expenses import compute_expense_amounts
from ledger_kernel.domain.transitions import EXPENSE_TRANSITIONS, ensure_transition
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ExpenseNotEditableError,
    ExpenseNotFoundError,
    InvalidAmountError,
    SupplierNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.parties import Supplier
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.post_commit import PostCommitHooks
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.expense")

_UNSET = object()

ExpensePaidNotifier = Callable[[UUID], Any]


def expense_to_dto(expense: Expense) -> ExpenseInfo:
    return ExpenseInfo(
        id=expense.id,
        expense_number=expense.expense_number,
        category=ExpenseCategory(expense.category),
        description=expense.description,
        supplier_id=expense.supplier_id,
        account_id=expense.account_id,
        cost_center_id=expense.cost_center_id,
        subtotal=expense.subtotal,
        tax_rate=expense.tax_rate,
        tax=expense.tax,
        rete_fuente=expense.rete_fuente,
        total=expense.total,
        status=ExpenseStatus(expense.status),
        issue_date=expense.issue_date,
        due_date=expense.due_date,
        invoice_number=expense.invoice_number,
        approved_at=expense.approved_at,
        approved_by=expense.approved_by,
        payment_method=PaymentMethod(expense.payment_method) if expense.payment_method else None,
        payment_reference=expense.payment_reference,
        payment_date=expense.payment_date,
    )


def month_bounds(day: date) -> tuple[date, date]:
    """Half-open [first of month, first of next month) containing ``day``."""
    start = day.replace(day=1)
    if start.month == 12:
        return start, date(start.year + 1, 1, 1)
    return start, date(start.year, start.month + 1, 1)


class ExpenseService(BaseService[Expense]):
    """
    Service for the expense lifecycle.

    Contract:
        Flush-only.  ``pay`` registers the ledger notification on the
        supplied ``PostCommitHooks``; whoever owns the transaction runs the
        hooks after commit.

    Non-goals:
        - Does NOT write journal entries itself (see LedgerBridge).
    """

    def __init__(
        self,
        session,
        tenant,
        settings: ExpenseSettings,
        numbering: NumberingSettings,
        sequences: SequenceService,
        hooks: PostCommitHooks | None = None,
        on_paid: ExpensePaidNotifier | None = None,
        clock=None,
    ):
        super().__init__(session, tenant, clock)
        self._settings = settings
        self._numbering = numbering
        self._sequences = sequences
        self._hooks = hooks
        self._on_paid = on_paid

    def _load(self, expense_id: UUID, for_update: bool = False) -> Expense:
        stmt = select(Expense).where(
            Expense.id == expense_id,
            Expense.tenant_id == self.tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        expense = self.session.execute(stmt).scalar_one_or_none()
        if expense is None:
            logger.warning("expense_not_found", extra={"expense_id": str(expense_id)})
            raise ExpenseNotFoundError(str(expense_id))
        return expense

    def _check_supplier(self, supplier_id: UUID) -> None:
        found = self.session.execute(
            select(Supplier.id).where(
                Supplier.id == supplier_id,
                Supplier.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if found is None:
            raise SupplierNotFoundError(str(supplier_id))

    def _check_account(self, account_id: UUID) -> None:
        found = self.session.execute(
            select(Account.id).where(
                Account.id == account_id,
                Account.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if found is None:
            raise AccountNotFoundError(str(account_id))

    def _apply_amounts(self, expense: Expense, subtotal, tax_rate, category) -> None:
        subtotal = to_decimal(subtotal)
        tax_rate = to_decimal(tax_rate)
        if subtotal < ZERO:
            raise InvalidAmountError("subtotal", subtotal)
        if tax_rate < ZERO:
            raise InvalidAmountError("tax_rate", tax_rate)

        amounts = compute_expense_amounts(
            subtotal, tax_rate, ExpenseCategory(category).value, self._settings
        )
        expense.subtotal = amounts.subtotal
        expense.tax_rate = amounts.tax_rate
        expense.tax = amounts.tax
        expense.rete_fuente = amounts.rete_fuente
        expense.total = amounts.total

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create(
        self,
        category: ExpenseCategory,
        description: str,
        subtotal: Decimal,
        tax_rate: Decimal = ZERO,
        issue_date: date | None = None,
        supplier_id: UUID | None = None,
        account_id: UUID | None = None,
        cost_center_id: UUID | None = None,
        due_date: date | None = None,
        invoice_number: str | None = None,
        created_by: UUID | None = None,
    ) -> ExpenseInfo:
        """
        Create a DRAFT expense.

        Raises:
            SupplierNotFoundError / AccountNotFoundError: Unknown references.
            InvalidAmountError: Negative subtotal or tax rate.
        """
        if supplier_id is not None:
            self._check_supplier(supplier_id)
        if account_id is not None:
            self._check_account(account_id)

        expense = Expense(
            tenant_id=self.tenant_id,
            category=ExpenseCategory(category),
            description=description,
            supplier_id=supplier_id,
            account_id=account_id,
            cost_center_id=cost_center_id,
            status=ExpenseStatus.DRAFT,
            issue_date=issue_date or self.clock.today(),
            due_date=due_date,
            invoice_number=invoice_number,
            created_by=created_by,
        )
        self._apply_amounts(expense, subtotal, tax_rate, category)

        prefix = self._numbering.expense_prefix
        expense.expense_number = self._sequences.next_number(
            prefix,
            self._numbering.width,
            seed=self._sequences.seed_from_existing(Expense, Expense.expense_number, prefix),
        )
        self.session.add(expense)
        self.session.flush()

        logger.info(
            "expense_created",
            extra={
                "expense_number": expense.expense_number,
                "category": ExpenseCategory(category).value,
                "total": expense.total,
            },
        )
        return expense_to_dto(expense)

    def update(
        self,
        expense_id: UUID,
        *,
        category: ExpenseCategory | None = None,
        description: str | None = None,
        subtotal: Decimal | None = None,
        tax_rate: Decimal | None = None,
        supplier_id: UUID | None | object = _UNSET,
        account_id: UUID | None | object = _UNSET,
        cost_center_id: UUID | None | object = _UNSET,
        issue_date: date | None = None,
        due_date: date | None | object = _UNSET,
        invoice_number: str | None | object = _UNSET,
    ) -> ExpenseInfo:
        """
        Edit a DRAFT expense.  Amounts are recomputed from the resulting
        subtotal, tax rate and category.

        Raises:
            ExpenseNotEditableError: The expense is not DRAFT.
        """
        expense = self._load(expense_id, for_update=True)
        if ExpenseStatus(expense.status) != ExpenseStatus.DRAFT:
            raise ExpenseNotEditableError(str(expense_id), ExpenseStatus(expense.status).value)

        if supplier_id is not _UNSET:
            if supplier_id is not None:
                self._check_supplier(supplier_id)
            expense.supplier_id = supplier_id
        if account_id is not _UNSET:
            if account_id is not None:
                self._check_account(account_id)
            expense.account_id = account_id
        if cost_center_id is not _UNSET:
            expense.cost_center_id = cost_center_id
        if due_date is not _UNSET:
            expense.due_date = due_date
        if invoice_number is not _UNSET:
            expense.invoice_number = invoice_number
        if description is not None:
            expense.description = description
        if issue_date is not None:
            expense.issue_date = issue_date
        if category is not None:
            expense.category = ExpenseCategory(category)

        self._apply_amounts(
            expense,
            subtotal if subtotal is not None else expense.subtotal,
            tax_rate if tax_rate is not None else expense.tax_rate,
            expense.category,
        )
        self.session.flush()

        logger.info("expense_updated", extra={"expense_number": expense.expense_number})
        return expense_to_dto(expense)

    def remove(self, expense_id: UUID) -> None:
        """Hard-delete a DRAFT expense."""
        expense = self._load(expense_id, for_update=True)
        if ExpenseStatus(expense.status) != ExpenseStatus.DRAFT:
            raise ExpenseNotEditableError(str(expense_id), ExpenseStatus(expense.status).value)
        number = expense.expense_number
        self.session.delete(expense)
        self.session.flush()
        logger.info("expense_removed", extra={"expense_number": number})

    def _transition(self, expense: Expense, target: ExpenseStatus) -> None:
        ensure_transition(
            EXPENSE_TRANSITIONS,
            "Expense",
            expense.id,
            ExpenseStatus(expense.status),
            target,
        )
        expense.status = target

    def approve(self, expense_id: UUID, actor_id: UUID) -> ExpenseInfo:
        """DRAFT -> APPROVED, recording who approved and when."""
        expense = self._load(expense_id, for_update=True)
        self._transition(expense, ExpenseStatus.APPROVED)
        expense.approved_at = self.clock.now()
        expense.approved_by = actor_id
        self.session.flush()

        logger.info(
            "expense_approved",
            extra={"expense_number": expense.expense_number, "actor_id": str(actor_id)},
        )
        return expense_to_dto(expense)

    def pay(
        self,
        expense_id: UUID,
        method: PaymentMethod,
        reference: str | None = None,
        payment_date: date | None = None,
    ) -> ExpenseInfo:
        """
        APPROVED -> PAID.

        Postconditions:
            - The ledger notification is queued on the post-commit hooks
              (when both hooks and a notifier are configured).
        """
        expense = self._load(expense_id, for_update=True)
        self._transition(expense, ExpenseStatus.PAID)
        expense.payment_method = PaymentMethod(method)
        expense.payment_reference = reference
        expense.payment_date = payment_date or self.clock.today()
        self.session.flush()

        logger.info(
            "expense_paid",
            extra={
                "expense_number": expense.expense_number,
                "payment_method": PaymentMethod(method).value,
                "total": expense.total,
            },
        )

        if self._hooks is not None and self._on_paid is not None:
            self._hooks.defer("expense_ledger_entry", self._on_paid, expense.id)
        return expense_to_dto(expense)

    def cancel(self, expense_id: UUID) -> ExpenseInfo:
        """DRAFT or APPROVED -> CANCELLED."""
        expense = self._load(expense_id, for_update=True)
        self._transition(expense, ExpenseStatus.CANCELLED)
        self.session.flush()
        logger.info("expense_cancelled", extra={"expense_number": expense.expense_number})
        return expense_to_dto(expense)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, expense_id: UUID) -> ExpenseInfo:
        return expense_to_dto(self._load(expense_id))

    def list_expenses(
        self,
        status: ExpenseStatus | None = None,
        category: ExpenseCategory | None = None,
        supplier_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        search: str | None = None,
    ) -> list[ExpenseInfo]:
        """Expenses matching every given filter, newest first."""
        stmt = select(Expense).where(Expense.tenant_id == self.tenant_id)
        if status is not None:
            stmt = stmt.where(Expense.status == ExpenseStatus(status).value)
        if category is not None:
            stmt = stmt.where(Expense.category == ExpenseCategory(category).value)
        if supplier_id is not None:
            stmt = stmt.where(Expense.supplier_id == supplier_id)
        if date_from is not None:
            stmt = stmt.where(Expense.issue_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Expense.issue_date <= date_to)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Expense.expense_number).like(pattern),
                    func.lower(Expense.description).like(pattern),
                )
            )
        expenses = self.session.execute(
            stmt.order_by(Expense.created_at.desc(), Expense.expense_number.desc())
        ).scalars().all()
        return [expense_to_dto(e) for e in expenses]

    def stats(self) -> ExpenseStats:
        """
        Counts by status over all expenses, plus totals by category and the
        grand total for the current month excluding CANCELLED.
        """
        counts = {s.value: 0 for s in ExpenseStatus}
        for status, count in self.session.execute(
            select(Expense.status, func.count(Expense.id))
            .where(Expense.tenant_id == self.tenant_id)
            .group_by(Expense.status)
        ):
            counts[ExpenseStatus(status).value] = count

        month_start, next_month = month_bounds(self.clock.today())
        totals: dict[str, Decimal] = {}
        month_total = ZERO
        for category, total in self.session.execute(
            select(Expense.category, Expense.total).where(
                Expense.tenant_id == self.tenant_id,
                Expense.issue_date >= month_start,
                Expense.issue_date < next_month,
                Expense.status != ExpenseStatus.CANCELLED.value,
            )
        ):
            key = ExpenseCategory(category).value
            totals[key] = totals.get(key, ZERO) + total
            month_total += total

        return ExpenseStats(
            month_start=month_start,
            count_by_status=counts,
            total_by_category=totals,
            month_total=month_total,
        )
