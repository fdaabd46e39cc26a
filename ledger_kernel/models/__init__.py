"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account, level_for_code
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine
from ledger_kernel.models.parties import PurchaseOrder, Supplier, User
from ledger_kernel.models.period import AccountingPeriod
from ledger_kernel.models.pos import (
    CashRegister,
    CashRegisterMovement,
    POSSale,
    POSSession,
    SalePayment,
)
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.models.withholding import WithholdingCertificate

__all__ = [
    "Account",
    "level_for_code",
    "AccountingPeriod",
    "JournalEntry",
    "JournalEntryLine",
    "CashRegister",
    "POSSession",
    "CashRegisterMovement",
    "POSSale",
    "SalePayment",
    "User",
    "Supplier",
    "PurchaseOrder",
    "WithholdingCertificate",
    "Expense",
    "SequenceCounter",
]
