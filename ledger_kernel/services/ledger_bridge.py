"""
LedgerBridge -- turns a paid expense into a POSTED journal entry.

Responsibility:
    Builds the EXPENSE_PAID automatic entry for an expense:

        DR expense account (expense.account or configured default)  subtotal
        DR deductible VAT                                            tax
        CR withholding payable                                       rete_fuente
        CR cash (CASH payments) or bank (any other method)           total

    Zero-amount VAT and withholding lines are omitted.

Architecture position:
    Kernel > Services.  Runs as a post-commit hook in its own transaction,
    after the expense payment committed.

Failure modes:
    Raises whatever JournalService raises (missing accounts, closed period).
    The hook runner logs and suppresses it; the expense stays PAID.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.config import LedgerBridgeSettings
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import JournalEntryInfo, LineSpec
from ledger_kernel.domain.enums import JournalEntrySource, PaymentMethod
from ledger_kernel.exceptions import ExpenseNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.expense import Expense
from ledger_kernel.services.journal_service import JournalService

logger = get_logger("services.ledger_bridge")


class LedgerBridge:
    """Posts accounting entries for events of other subsystems."""

    def __init__(
        self,
        session,
        tenant,
        settings: LedgerBridgeSettings,
        journal: JournalService,
    ):
        self.session = session
        self.tenant = tenant
        self._settings = settings
        self._journal = journal

    def expense_lines(self, expense: Expense) -> list[LineSpec]:
        """Journal lines for a paid expense."""
        cfg = self._settings
        label = f"{expense.expense_number} {expense.description}"

        if expense.account_id is not None:
            lines = [LineSpec(account_id=expense.account_id, debit=expense.subtotal, description=label)]
        else:
            lines = [
                LineSpec(
                    account_code=cfg.default_expense_account,
                    debit=expense.subtotal,
                    description=label,
                )
            ]

        if expense.tax > ZERO:
            lines.append(
                LineSpec(
                    account_code=cfg.deductible_vat_account,
                    debit=expense.tax,
                    description=f"IVA {expense.expense_number}",
                )
            )
        if expense.rete_fuente > ZERO:
            lines.append(
                LineSpec(
                    account_code=cfg.withholding_payable_account,
                    credit=expense.rete_fuente,
                    description=f"Retefuente {expense.expense_number}",
                )
            )

        method = PaymentMethod(expense.payment_method or PaymentMethod.CASH)
        payment_account = cfg.cash_account if method == PaymentMethod.CASH else cfg.bank_account
        lines.append(
            LineSpec(
                account_code=payment_account,
                credit=expense.total,
                description=f"Pago {expense.expense_number}",
            )
        )
        return lines

    def on_expense_paid(self, expense_id: UUID) -> JournalEntryInfo:
        """Record the EXPENSE_PAID entry for a committed expense payment."""
        tenant_id = self.tenant.require_tenant_id()
        expense = self.session.execute(
            select(Expense).where(
                Expense.id == expense_id,
                Expense.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))

        entry = self._journal.create_auto_entry(
            entry_date=expense.payment_date or expense.issue_date,
            description=f"Pago gasto {expense.expense_number}: {expense.description}",
            source=JournalEntrySource.EXPENSE_PAID,
            lines=self.expense_lines(expense),
            expense_id=expense.id,
            created_by=expense.approved_by,
        )
        logger.info(
            "expense_ledger_entry_created",
            extra={
                "expense_number": expense.expense_number,
                "entry_number": entry.entry_number,
            },
        )
        return entry
