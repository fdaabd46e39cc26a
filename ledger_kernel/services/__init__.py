"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.cash_session_service import CashSessionService
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.identity_service import IdentityService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.ledger_bridge import LedgerBridge
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.post_commit import PostCommitHooks
from ledger_kernel.services.sale_service import SaleService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.withholding_service import WithholdingService

__all__ = [
    "AccountService",
    "CashSessionService",
    "ExpenseService",
    "IdentityService",
    "JournalService",
    "LedgerBridge",
    "PeriodService",
    "PostCommitHooks",
    "SaleService",
    "SequenceService",
    "WithholdingService",
]
