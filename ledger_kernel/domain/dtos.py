"""
Data Transfer Objects returned by ledger kernel services.

All DTOs are frozen dataclasses.  Services convert ORM rows into these before
returning, so callers never hold a live ORM object bound to the service's
session.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.enums import (
    AccountNature,
    AccountType,
    CashRegisterStatus,
    ExpenseCategory,
    ExpenseStatus,
    JournalEntrySource,
    JournalEntryStatus,
    MovementType,
    PaymentMethod,
    PeriodStatus,
    ReportKind,
    SessionStatus,
)


# =============================================================================
# Chart of accounts
# =============================================================================


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    code: str
    name: str
    account_type: AccountType
    nature: AccountNature
    parent_id: UUID | None
    level: int
    is_active: bool


@dataclass(frozen=True)
class AccountNode:
    """An account with its sub-accounts, for tree views."""

    account: AccountInfo
    children: tuple["AccountNode", ...] = ()


# =============================================================================
# Periods and journal
# =============================================================================


@dataclass(frozen=True)
class PeriodInfo:
    id: UUID
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    closed_at: datetime | None
    closed_by: UUID | None
    notes: str | None

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN


@dataclass(frozen=True)
class LineSpec:
    """
    Input for one journal line.

    Exactly one of ``debit``/``credit`` must be positive.  ``account_id`` or
    ``account_code`` identifies the account; ``account_id`` wins when both
    are given.
    """

    account_id: UUID | None = None
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: str | None = None
    account_code: str | None = None


@dataclass(frozen=True)
class JournalLineInfo:
    id: UUID
    line_number: int
    account_id: UUID
    account_code: str
    description: str | None
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class JournalEntryInfo:
    id: UUID
    entry_number: str
    entry_date: date
    description: str
    source: JournalEntrySource
    status: JournalEntryStatus
    period_id: UUID | None
    total_debit: Decimal
    total_credit: Decimal
    posted_at: datetime | None
    voided_at: datetime | None
    void_reason: str | None
    expense_id: UUID | None
    lines: tuple[JournalLineInfo, ...]


# =============================================================================
# POS
# =============================================================================


@dataclass(frozen=True)
class SessionInfo:
    id: UUID
    cash_register_id: UUID
    user_id: UUID
    status: SessionStatus
    opening_amount: Decimal
    closing_amount: Decimal | None
    expected_amount: Decimal | None
    difference: Decimal | None
    opened_at: datetime
    closed_at: datetime | None
    notes: str | None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


@dataclass(frozen=True)
class MovementInfo:
    id: UUID
    session_id: UUID
    movement_type: MovementType
    amount: Decimal
    payment_method: PaymentMethod | None
    reference: str | None
    notes: str | None
    sale_id: UUID | None
    created_at: datetime | None


@dataclass(frozen=True)
class CashRegisterInfo:
    id: UUID
    code: str
    name: str
    status: CashRegisterStatus


@dataclass(frozen=True)
class PaymentSpec:
    method: PaymentMethod
    amount: Decimal


@dataclass(frozen=True)
class SaleInfo:
    id: UUID
    sale_number: str
    session_id: UUID
    user_id: UUID
    total: Decimal
    reference: str | None
    is_voided: bool
    voided_at: datetime | None
    void_reason: str | None
    payments: tuple[PaymentSpec, ...]


@dataclass(frozen=True)
class SalesByMethod:
    method: PaymentMethod
    count: int
    total: Decimal


@dataclass(frozen=True)
class CashReport:
    """
    X or Z report for one session.

    ``declared_cash_amount`` and ``difference`` are None on X reports.
    """

    kind: ReportKind
    session_id: UUID
    cash_register_code: str
    cash_register_name: str
    user_id: UUID
    opened_at: datetime
    closed_at: datetime | None
    opening_amount: Decimal
    total_cash_sales: Decimal
    total_card_sales: Decimal
    total_other_sales: Decimal
    total_sales_amount: Decimal
    total_cash_in: Decimal
    total_cash_out: Decimal
    expected_cash_amount: Decimal
    declared_cash_amount: Decimal | None
    difference: Decimal | None
    transaction_count: int
    sales_by_method: tuple[SalesByMethod, ...]
    generated_at: datetime


# =============================================================================
# Withholding certificates
# =============================================================================


@dataclass(frozen=True)
class CertificateInfo:
    id: UUID
    supplier_id: UUID
    supplier_name: str
    year: int
    withholding_type: str
    certificate_number: str
    total_base: Decimal
    total_withheld: Decimal
    generated_at: datetime
    pdf_url: str | None


@dataclass(frozen=True)
class GenerateAllResult:
    """Outcome of a batch run; failed suppliers are left out of both fields."""

    generated: int
    certificates: tuple[CertificateInfo, ...] = ()


@dataclass(frozen=True)
class TypeTotals:
    withholding_type: str
    count: int
    total_base: Decimal
    total_withheld: Decimal


@dataclass(frozen=True)
class CertificateStats:
    year: int
    count: int
    total_base: Decimal
    total_withheld: Decimal
    by_type: tuple[TypeTotals, ...] = ()


# =============================================================================
# Expenses
# =============================================================================


@dataclass(frozen=True)
class ExpenseInfo:
    id: UUID
    expense_number: str
    category: ExpenseCategory
    description: str
    supplier_id: UUID | None
    account_id: UUID | None
    cost_center_id: UUID | None
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    rete_fuente: Decimal
    total: Decimal
    status: ExpenseStatus
    issue_date: date
    due_date: date | None
    invoice_number: str | None
    approved_at: datetime | None
    approved_by: UUID | None
    payment_method: PaymentMethod | None
    payment_reference: str | None
    payment_date: date | None


@dataclass(frozen=True)
class ExpenseStats:
    """Month-to-date figures; totals exclude CANCELLED expenses."""

    month_start: date
    count_by_status: dict[str, int] = field(default_factory=dict)
    total_by_category: dict[str, Decimal] = field(default_factory=dict)
    month_total: Decimal = Decimal("0")
