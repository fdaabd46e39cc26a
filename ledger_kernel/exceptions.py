"""
Typed exception hierarchy for the ledger kernel.

Every error raised by a kernel operation is an instance of a typed class with
a machine-readable ``code`` and the structured data a caller needs to act on
it.  Callers catch by type, never by message.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- TenantNotBoundError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- PeriodNotFoundError
    |   +-- JournalEntryNotFoundError
    |   +-- CashRegisterNotFoundError
    |   +-- SessionNotFoundError
    |   +-- SaleNotFoundError
    |   +-- SupplierNotFoundError
    |   +-- CertificateNotFoundError
    |   +-- ExpenseNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidPeriodRangeError
    |   +-- PeriodHasDraftEntriesError
    |   +-- UnbalancedEntryError
    |   +-- InvalidEntryLineError
    |   +-- LineAccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- InvalidAccountCodeError
    |   +-- InvalidAccountParentError
    |   +-- VoidReasonRequiredError
    |   +-- InvalidAmountError
    |   +-- InvalidMovementTypeError
    |   +-- PaymentMismatchError
    |   +-- NoReceivedPurchaseOrdersError
    |
    +-- ConflictError
    |   +-- PeriodOverlapError
    |   +-- DuplicateAccountCodeError
    |   +-- ActiveSessionExistsError
    |   +-- ExpenseNotEditableError
    |
    +-- StateError
    |   +-- InvalidTransitionError
    |   +-- PeriodAlreadyClosedError
    |   +-- ClosedPeriodError
    |   +-- EntryNotDraftError
    |   +-- EntryAlreadyVoidedError
    |   +-- SessionNotActiveError
    |   +-- SessionNotClosedError
    |   +-- NoActiveSessionError
    |   +-- SaleAlreadyVoidedError
    |
    +-- ForbiddenError
        +-- SessionAccessDeniedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                         | When Raised
------------|------------------------------|--------------------------------------
Tenant      | TENANT_NOT_BOUND             | Operation without a bound tenant
NotFound    | *_NOT_FOUND                  | Entity absent or owned by another tenant
Validation  | INVALID_PERIOD_RANGE         | end_date <= start_date
            | PERIOD_HAS_DRAFT_ENTRIES     | Close blocked by DRAFT entries
            | UNBALANCED_ENTRY             | Debits != credits
            | INVALID_ENTRY_LINE           | Line with both or neither side
            | ACCOUNT_INACTIVE             | Posting to a deactivated account
            | NO_RECEIVED_PURCHASE_ORDERS  | Nothing to certify for the year
Conflict    | PERIOD_OVERLAP               | Date ranges intersect
            | ACTIVE_SESSION_EXISTS        | Register already has an ACTIVE session
            | EXPENSE_NOT_EDITABLE         | Edit/delete outside DRAFT
State       | PERIOD_ALREADY_CLOSED        | Second close attempt
            | CLOSED_PERIOD                | Posting into a CLOSED period
            | ENTRY_NOT_DRAFT              | Posting a non-DRAFT entry
            | SESSION_NOT_ACTIVE           | Mutating a closed session
            | SESSION_NOT_CLOSED           | Z report on an open session
Forbidden   | SESSION_ACCESS_DENIED        | Not owner and not ADMIN/MANAGER
"""

from datetime import date
from decimal import Decimal


class LedgerKernelError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_KERNEL_ERROR"


class TenantNotBoundError(LedgerKernelError):
    """An operation ran without a tenant bound to its context."""

    code: str = "TENANT_NOT_BOUND"

    def __init__(self):
        super().__init__("No tenant is bound to the current operation")


# =============================================================================
# Error kinds
# =============================================================================


class NotFoundError(LedgerKernelError):
    """Referenced entity is absent or belongs to another tenant."""

    code: str = "NOT_FOUND"
    entity: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity} not found: {entity_id}")


class ValidationError(LedgerKernelError):
    """Malformed input."""

    code: str = "VALIDATION_ERROR"


class ConflictError(LedgerKernelError):
    """Operation collides with existing data."""

    code: str = "CONFLICT"


class StateError(LedgerKernelError):
    """Operation is illegal for the entity's current status."""

    code: str = "STATE_ERROR"


class ForbiddenError(LedgerKernelError):
    """Ownership or role check failed."""

    code: str = "FORBIDDEN"


# =============================================================================
# Not found
# =============================================================================


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"
    entity = "Account"


class PeriodNotFoundError(NotFoundError):
    code: str = "PERIOD_NOT_FOUND"
    entity = "Accounting period"


class JournalEntryNotFoundError(NotFoundError):
    code: str = "JOURNAL_ENTRY_NOT_FOUND"
    entity = "Journal entry"


class CashRegisterNotFoundError(NotFoundError):
    code: str = "CASH_REGISTER_NOT_FOUND"
    entity = "Cash register"


class SessionNotFoundError(NotFoundError):
    code: str = "SESSION_NOT_FOUND"
    entity = "POS session"


class SaleNotFoundError(NotFoundError):
    code: str = "SALE_NOT_FOUND"
    entity = "POS sale"


class SupplierNotFoundError(NotFoundError):
    code: str = "SUPPLIER_NOT_FOUND"
    entity = "Supplier"


class CertificateNotFoundError(NotFoundError):
    code: str = "CERTIFICATE_NOT_FOUND"
    entity = "Withholding certificate"


class ExpenseNotFoundError(NotFoundError):
    code: str = "EXPENSE_NOT_FOUND"
    entity = "Expense"


# =============================================================================
# Validation
# =============================================================================


class InvalidPeriodRangeError(ValidationError):
    """end_date must be strictly after start_date."""

    code: str = "INVALID_PERIOD_RANGE"

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Period end date {end_date} must be after start date {start_date}"
        )


class PeriodHasDraftEntriesError(ValidationError):
    """Period close blocked by unposted journal entries."""

    code: str = "PERIOD_HAS_DRAFT_ENTRIES"

    def __init__(self, period_id: str, draft_count: int):
        self.period_id = str(period_id)
        self.draft_count = draft_count
        super().__init__(
            f"Cannot close period {period_id}: "
            f"{draft_count} journal entries are still in DRAFT"
        )


class UnbalancedEntryError(ValidationError):
    """Debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(
            f"Entry is unbalanced: debits={debits}, credits={credits}"
        )


class InvalidEntryLineError(ValidationError):
    """A line must carry exactly one positive side."""

    code: str = "INVALID_ENTRY_LINE"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Line {line_number}: {reason}")


class LineAccountNotFoundError(ValidationError):
    """A journal line references an account the tenant does not have."""

    code: str = "LINE_ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = str(account_ref)
        super().__init__(f"Journal line account does not exist: {account_ref}")


class AccountInactiveError(ValidationError):
    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str):
        self.account_id = str(account_id)
        super().__init__(f"Account is inactive: {account_id}")


class InvalidAccountCodeError(ValidationError):
    """Account codes are 1-10 digits."""

    code: str = "INVALID_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            f"Account code must be 1 to 10 digits, got {account_code!r}"
        )


class InvalidAccountParentError(ValidationError):
    """Parent is missing from the tenant, or is the account itself."""

    code: str = "INVALID_ACCOUNT_PARENT"

    def __init__(self, parent_id: str, reason: str):
        self.parent_id = str(parent_id)
        self.reason = reason
        super().__init__(f"Invalid parent account {parent_id}: {reason}")


class VoidReasonRequiredError(ValidationError):
    code: str = "VOID_REASON_REQUIRED"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"A non-empty reason is required to void {entity_id}")


class InvalidAmountError(ValidationError):
    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Decimal):
        self.field = field
        self.amount = str(amount)
        super().__init__(f"Invalid {field}: {amount}")


class InvalidMovementTypeError(ValidationError):
    """Manual drawer movements are limited to CASH_IN and CASH_OUT."""

    code: str = "INVALID_MOVEMENT_TYPE"

    def __init__(self, movement_type: str):
        self.movement_type = movement_type
        super().__init__(
            f"Manual cash movements must be CASH_IN or CASH_OUT, got {movement_type}"
        )


class InvalidReportKindError(ValidationError):
    """Cash reports are X (intraday) or Z (closing)."""

    code: str = "INVALID_REPORT_KIND"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Report kind must be X or Z, got {kind}")


class PaymentMismatchError(ValidationError):
    """Sale payments do not add up to the sale total."""

    code: str = "PAYMENT_MISMATCH"

    def __init__(self, total: Decimal, paid: Decimal):
        self.total = str(total)
        self.paid = str(paid)
        super().__init__(f"Payments ({paid}) do not match sale total ({total})")


class NoReceivedPurchaseOrdersError(ValidationError):
    code: str = "NO_RECEIVED_PURCHASE_ORDERS"

    def __init__(self, supplier_id: str, year: int):
        self.supplier_id = str(supplier_id)
        self.year = year
        super().__init__(
            f"No received purchase orders for supplier {supplier_id} in {year}"
        )


# =============================================================================
# Conflict
# =============================================================================


class PeriodOverlapError(ConflictError):
    code: str = "PERIOD_OVERLAP"

    def __init__(self, new_name: str, existing_name: str):
        self.new_name = new_name
        self.existing_name = existing_name
        super().__init__(
            f"Period '{new_name}' overlaps existing period '{existing_name}'"
        )


class DuplicateAccountCodeError(ConflictError):
    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class ActiveSessionExistsError(ConflictError):
    code: str = "ACTIVE_SESSION_EXISTS"

    def __init__(self, cash_register_id: str):
        self.cash_register_id = str(cash_register_id)
        super().__init__(
            f"Cash register {cash_register_id} already has an active session"
        )


class ExpenseNotEditableError(ConflictError):
    code: str = "EXPENSE_NOT_EDITABLE"

    def __init__(self, expense_id: str, status: str):
        self.expense_id = str(expense_id)
        self.status = status
        super().__init__(
            f"Expense {expense_id} cannot be modified in status {status}"
        )


# =============================================================================
# State
# =============================================================================


class InvalidTransitionError(StateError):
    """Requested status change is not in the entity's transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity: str, entity_id: str, current: str, target: str):
        self.entity = entity
        self.entity_id = str(entity_id)
        self.current = current
        self.target = target
        super().__init__(
            f"{entity} {entity_id} cannot move from {current} to {target}"
        )


class PeriodAlreadyClosedError(StateError):
    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, period_id: str):
        self.period_id = str(period_id)
        super().__init__(f"Period is already closed: {period_id}")


class ClosedPeriodError(StateError):
    """Write attempted against a CLOSED period."""

    code: str = "CLOSED_PERIOD"

    def __init__(self, period_id: str, period_name: str):
        self.period_id = str(period_id)
        self.period_name = period_name
        super().__init__(f"Period '{period_name}' is closed")


class EntryNotDraftError(StateError):
    code: str = "ENTRY_NOT_DRAFT"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = str(entry_id)
        self.status = status
        super().__init__(
            f"Only DRAFT entries can be posted; entry {entry_id} is {status}"
        )


class EntryAlreadyVoidedError(StateError):
    code: str = "ENTRY_ALREADY_VOIDED"

    def __init__(self, entry_id: str):
        self.entry_id = str(entry_id)
        super().__init__(f"Journal entry is already voided: {entry_id}")


class SessionNotActiveError(StateError):
    code: str = "SESSION_NOT_ACTIVE"

    def __init__(self, session_id: str, status: str):
        self.session_id = str(session_id)
        self.status = status
        super().__init__(f"POS session {session_id} is not active ({status})")


class SessionNotClosedError(StateError):
    code: str = "SESSION_NOT_CLOSED"

    def __init__(self, session_id: str, status: str):
        self.session_id = str(session_id)
        self.status = status
        super().__init__(
            f"Z report requires a closed session; {session_id} is {status}"
        )


class NoActiveSessionError(StateError):
    """The user has no ACTIVE POS session to record a sale in."""

    code: str = "NO_ACTIVE_SESSION"

    def __init__(self, user_id: str):
        self.user_id = str(user_id)
        super().__init__(f"User {user_id} has no active POS session")


class SaleAlreadyVoidedError(StateError):
    code: str = "SALE_ALREADY_VOIDED"

    def __init__(self, sale_id: str):
        self.sale_id = str(sale_id)
        super().__init__(f"POS sale is already voided: {sale_id}")


# =============================================================================
# Forbidden
# =============================================================================


class SessionAccessDeniedError(ForbiddenError):
    """Caller neither owns the session nor holds a privileged role."""

    code: str = "SESSION_ACCESS_DENIED"

    def __init__(self, session_id: str, user_id: str):
        self.session_id = str(session_id)
        self.user_id = str(user_id)
        super().__init__(
            f"User {user_id} may not operate POS session {session_id}"
        )
