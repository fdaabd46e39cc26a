"""
Module: ledger_kernel.models.expense
Responsibility: ORM persistence for operating expenses.
Architecture position: Kernel > Models.  May import from db/ and domain/enums
    only.

Invariants enforced:
    - expense_number is unique per tenant (uq_expense_tenant_number).
    - tax, rete_fuente and total are computed by ExpenseService from
      subtotal, tax_rate and category; callers never set them directly.
    - PAID and CANCELLED rows are not edited or deleted (ExpenseService).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.enums import ExpenseCategory, ExpenseStatus, PaymentMethod


class Expense(TenantScopedBase):
    __tablename__ = "expenses"

    __table_args__ = (
        UniqueConstraint("tenant_id", "expense_number", name="uq_expense_tenant_number"),
        Index("idx_expense_tenant_status", "tenant_id", "status"),
        Index("idx_expense_tenant_issue_date", "tenant_id", "issue_date"),
    )

    expense_number: Mapped[str] = mapped_column(String(30), nullable=False)

    category: Mapped[ExpenseCategory] = mapped_column(String(30), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    supplier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("suppliers.id"),
        nullable=True,
    )

    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    cost_center_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    # Percentage, e.g. 19 for 19%
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)

    tax: Mapped[Decimal] = mapped_column(nullable=False)

    rete_fuente: Mapped[Decimal] = mapped_column(nullable=False)

    total: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[ExpenseStatus] = mapped_column(
        String(20),
        default=ExpenseStatus.DRAFT,
        nullable=False,
    )

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        String(20),
        nullable=True,
    )

    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Expense {self.expense_number}: {self.status}>"
