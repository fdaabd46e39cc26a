"""
Pure domain layer.

Status enums, transition tables, DTOs, and the pure computations behind
expected cash, withholding amounts, expense amounts and document numbers.
Nothing here touches the database or the system clock.
"""

from ledger_kernel.domain.cash import CashMovementView, classify_sales, expected_cash
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.numbering import format_number, parse_number, sequence_name
from ledger_kernel.domain.transitions import ensure_transition

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "CashMovementView",
    "expected_cash",
    "classify_sales",
    "format_number",
    "parse_number",
    "sequence_name",
    "ensure_transition",
]
