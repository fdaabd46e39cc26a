"""
Enums -- closed status and classification types for every ledger entity.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models/ for column
    values and by domain/services for comparisons.  Values are stored as
    their string form in String columns.
"""

from enum import Enum


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"
    COGS = "COGS"


class AccountNature(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class PeriodStatus(str, Enum):
    """Lifecycle status of an accounting period. CLOSED is terminal."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class JournalEntryStatus(str, Enum):
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOIDED = "VOIDED"


class JournalEntrySource(str, Enum):
    MANUAL = "MANUAL"
    INVOICE_SALE = "INVOICE_SALE"
    INVOICE_CANCEL = "INVOICE_CANCEL"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PURCHASE_RECEIVED = "PURCHASE_RECEIVED"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    PERIOD_CLOSE = "PERIOD_CLOSE"
    EXPENSE_PAID = "EXPENSE_PAID"


class CashRegisterStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    SUSPENDED = "SUSPENDED"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    SUSPENDED = "SUSPENDED"


class MovementType(str, Enum):
    OPENING = "OPENING"
    CLOSING = "CLOSING"
    SALE = "SALE"
    REFUND = "REFUND"
    CASH_IN = "CASH_IN"
    CASH_OUT = "CASH_OUT"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    PSE = "PSE"
    NEQUI = "NEQUI"
    DAVIPLATA = "DAVIPLATA"
    OTHER = "OTHER"


class ReportKind(str, Enum):
    """X: intraday snapshot. Z: end-of-session report."""

    X = "X"
    Z = "Z"


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    CONFIRMED = "CONFIRMED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class WithholdingType(str, Enum):
    RENTA = "RENTA"
    ICA = "ICA"
    IVA = "IVA"


class ExpenseStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class ExpenseCategory(str, Enum):
    SERVICIOS_PUBLICOS = "SERVICIOS_PUBLICOS"
    ARRIENDO = "ARRIENDO"
    HONORARIOS = "HONORARIOS"
    SEGUROS = "SEGUROS"
    PAPELERIA = "PAPELERIA"
    MANTENIMIENTO = "MANTENIMIENTO"
    TRANSPORTE = "TRANSPORTE"
    PUBLICIDAD = "PUBLICIDAD"
    IMPUESTOS_TASAS = "IMPUESTOS_TASAS"
    ASEO_CAFETERIA = "ASEO_CAFETERIA"
    OTROS = "OTROS"


def enum_value(value: Enum | str) -> str:
    """Plain string value of an enum member or a raw string."""
    if isinstance(value, Enum):
        return value.value
    return value
