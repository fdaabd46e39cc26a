"""
Transitions -- exhaustive status transition tables.

Every status enum has an entry for every member; terminal states map to an
empty frozenset.  Services call ``ensure_transition`` before mutating a
status, so an illegal move is rejected from the table instead of from an ad
hoc comparison.
"""

from enum import Enum
from typing import TypeVar

from ledger_kernel.domain.enums import (
    ExpenseStatus,
    JournalEntryStatus,
    PeriodStatus,
    SessionStatus,
)
from ledger_kernel.exceptions import InvalidTransitionError

S = TypeVar("S", bound=Enum)

PERIOD_TRANSITIONS: dict[PeriodStatus, frozenset[PeriodStatus]] = {
    PeriodStatus.OPEN: frozenset({PeriodStatus.CLOSED}),
    # No reopen
    PeriodStatus.CLOSED: frozenset(),
}

JOURNAL_TRANSITIONS: dict[JournalEntryStatus, frozenset[JournalEntryStatus]] = {
    JournalEntryStatus.DRAFT: frozenset({
        JournalEntryStatus.POSTED, JournalEntryStatus.VOIDED,
    }),
    JournalEntryStatus.POSTED: frozenset({JournalEntryStatus.VOIDED}),
    JournalEntryStatus.VOIDED: frozenset(),
}

SESSION_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset({SessionStatus.CLOSED}),
    SessionStatus.SUSPENDED: frozenset(),
    SessionStatus.CLOSED: frozenset(),
}

EXPENSE_TRANSITIONS: dict[ExpenseStatus, frozenset[ExpenseStatus]] = {
    ExpenseStatus.DRAFT: frozenset({
        ExpenseStatus.APPROVED, ExpenseStatus.CANCELLED,
    }),
    ExpenseStatus.APPROVED: frozenset({
        ExpenseStatus.PAID, ExpenseStatus.CANCELLED,
    }),
    ExpenseStatus.PAID: frozenset(),
    ExpenseStatus.CANCELLED: frozenset(),
}


def can_transition(table: dict[S, frozenset[S]], current: S, target: S) -> bool:
    return target in table[current]


def ensure_transition(
    table: dict[S, frozenset[S]],
    entity: str,
    entity_id: object,
    current: S,
    target: S,
) -> None:
    """
    Raise unless ``current -> target`` is listed in ``table``.

    Raises:
        InvalidTransitionError: If the transition is not allowed.
    """
    if not can_transition(table, current, target):
        raise InvalidTransitionError(
            entity, str(entity_id), current.value, target.value
        )
