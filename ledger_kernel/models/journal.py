"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines.
Architecture position: Kernel > Models.  May import from db/ and domain/enums
    only.

Invariants enforced:
    - entry_number is unique per tenant (uq_journal_tenant_number).
    - sum(debit) == sum(credit) at creation (JournalService; the totals are
      stored on the header).
    - Amounts never change after POSTED.  Void changes status, voided_at and
      void_reason only; rows are never deleted.

Failure modes:
    - IntegrityError on a duplicate entry_number.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.enums import JournalEntrySource, JournalEntryStatus

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntry(TenantScopedBase):
    """
    Journal entry header.

    Contract:
        Manual entries are created DRAFT inside an OPEN period and posted
        later.  Automatic entries (source != MANUAL) are created POSTED and
        may have no period when none covers their date.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("tenant_id", "entry_number", name="uq_journal_tenant_number"),
        Index("idx_journal_period_status", "period_id", "status"),
        Index("idx_journal_tenant_date", "tenant_id", "entry_date"),
    )

    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    source: Mapped[JournalEntrySource] = mapped_column(
        String(30),
        default=JournalEntrySource.MANUAL,
        nullable=False,
    )

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(20),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounting_periods.id"),
        nullable=True,
    )

    total_debit: Mapped[Decimal] = mapped_column(nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(nullable=False)

    created_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Set on EXPENSE_PAID entries
    expense_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    lines: Mapped[list["JournalEntryLine"]] = relationship(
        "JournalEntryLine",
        back_populates="entry",
        order_by="JournalEntryLine.line_number",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number}: {self.status}>"


class JournalEntryLine(TenantScopedBase):
    """
    One side of a journal entry.

    Contract:
        Exactly one of debit/credit is positive; the other is zero.
    """

    __tablename__ = "journal_entry_lines"

    __table_args__ = (
        Index("idx_journal_line_entry", "entry_id"),
        Index("idx_journal_line_account", "account_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    debit: Mapped[Decimal] = mapped_column(nullable=False)

    credit: Mapped[Decimal] = mapped_column(nullable=False)

    entry: Mapped["JournalEntry"] = relationship(
        "JournalEntry",
        back_populates="lines",
    )

    account: Mapped["Account"] = relationship(
        "Account",
        back_populates="lines",
    )
