"""
Module: ledger_kernel.models.period
Responsibility: ORM persistence for accounting periods -- the date ranges
    that accept journal drafts and postings.
Architecture position: Kernel > Models.  May import from db/ and domain/enums
    only.

Invariants enforced:
    - end_date > start_date (PeriodService).
    - No two periods of a tenant overlap (PeriodService).
    - closed_at / closed_by are written once, on close.  CLOSED is terminal.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.enums import PeriodStatus


class AccountingPeriod(TenantScopedBase):
    """
    Accounting period.

    Non-goals:
        - The model does not check overlap or draft counts; PeriodService
          does both before writing.
    """

    __tablename__ = "accounting_periods"

    __table_args__ = (
        Index("idx_period_tenant_dates", "tenant_id", "start_date", "end_date"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def __repr__(self) -> str:
        return f"<AccountingPeriod {self.name}: {self.status}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    def contains_date(self, check_date: date) -> bool:
        """Check if a date falls within this period (both ends inclusive)."""
        return self.start_date <= check_date <= self.end_date
