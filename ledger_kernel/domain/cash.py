"""
Cash -- pure expected-cash replay and sales classification.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    CashSessionService when closing a session and building X/Z reports.

Invariants enforced:
    - Expected cash is a sum of signed contributions, so the result does
      not depend on movement order.
    - Only CASH sales and refunds touch the drawer; CLOSING and card or
      transfer movements contribute nothing.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ledger_kernel.domain.enums import MovementType, PaymentMethod

ZERO = Decimal("0")

_ALWAYS_ADD = frozenset({MovementType.OPENING, MovementType.CASH_IN})
_ALWAYS_SUBTRACT = frozenset({MovementType.CASH_OUT})


@dataclass(frozen=True)
class CashMovementView:
    """The fields of a movement that matter for the drawer balance."""

    movement_type: MovementType
    amount: Decimal
    payment_method: PaymentMethod | None = None


def cash_contribution(movement: CashMovementView) -> Decimal:
    """Signed effect of one movement on the cash drawer."""
    movement_type = MovementType(movement.movement_type)
    method = (
        PaymentMethod(movement.payment_method)
        if movement.payment_method is not None else None
    )

    if movement_type in _ALWAYS_ADD:
        return movement.amount
    if movement_type in _ALWAYS_SUBTRACT:
        return -movement.amount
    if movement_type == MovementType.SALE and method == PaymentMethod.CASH:
        return movement.amount
    if movement_type == MovementType.REFUND and method == PaymentMethod.CASH:
        return -movement.amount
    return ZERO


def expected_cash(movements: Iterable[CashMovementView]) -> Decimal:
    """
    Replay movements into the amount of cash that should be in the drawer.

    OPENING and CASH_IN add, CASH_OUT subtracts, SALE adds and REFUND
    subtracts only when paid in cash.  Everything else is ignored.
    """
    return sum((cash_contribution(m) for m in movements), ZERO)


@dataclass(frozen=True)
class MethodTotal:
    method: PaymentMethod
    count: int
    total: Decimal


@dataclass(frozen=True)
class SalesBreakdown:
    """Sales split into cash, card and everything else."""

    cash: Decimal
    card: Decimal
    other: Decimal
    by_method: tuple[MethodTotal, ...]

    @property
    def total(self) -> Decimal:
        return self.cash + self.card + self.other


def classify_sales(
    payments: Iterable[tuple[PaymentMethod, Decimal]],
    card_methods: frozenset[str],
) -> SalesBreakdown:
    """
    Aggregate sale payments by method.

    ``by_method`` lists only methods with at least one payment, in
    ``PaymentMethod`` declaration order.
    """
    counts: dict[PaymentMethod, int] = {}
    totals: dict[PaymentMethod, Decimal] = {}
    for method, amount in payments:
        method = PaymentMethod(method)
        counts[method] = counts.get(method, 0) + 1
        totals[method] = totals.get(method, ZERO) + amount

    cash = card = other = ZERO
    for method, total in totals.items():
        if method == PaymentMethod.CASH:
            cash += total
        elif method.value in card_methods:
            card += total
        else:
            other += total

    by_method = tuple(
        MethodTotal(method=m, count=counts[m], total=totals[m])
        for m in PaymentMethod
        if counts.get(m, 0) > 0
    )
    return SalesBreakdown(cash=cash, card=card, other=other, by_method=by_method)
