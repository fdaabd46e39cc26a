"""
Module: ledger_kernel.selectors.purchase_order_selector
Responsibility: Read model over the purchasing subsystem's received purchase
    orders, as consumed by the withholding certificate generator.
Architecture position: Kernel > Selectors.  Read-only.

A year range is ``[Jan 1 of year, Jan 1 of year + 1)`` on received_date.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.enums import PurchaseOrderStatus
from ledger_kernel.models.parties import PurchaseOrder
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ReceivedPurchaseOrder:
    supplier_id: UUID
    subtotal: Decimal
    tax: Decimal


def year_range(year: int) -> tuple[date, date]:
    """Half-open [start, end) bounds of a calendar year."""
    return date(year, 1, 1), date(year + 1, 1, 1)


class PurchaseOrderSelector(BaseSelector):
    """Selector for RECEIVED purchase orders."""

    def _received_in(self, year: int):
        start, end = year_range(year)
        return (
            PurchaseOrder.tenant_id == self.tenant_id,
            PurchaseOrder.status == PurchaseOrderStatus.RECEIVED.value,
            PurchaseOrder.received_date >= start,
            PurchaseOrder.received_date < end,
        )

    def find_received(
        self,
        year: int,
        supplier_id: UUID | None = None,
    ) -> list[ReceivedPurchaseOrder]:
        """RECEIVED orders of the year, optionally for one supplier."""
        stmt = select(
            PurchaseOrder.supplier_id,
            PurchaseOrder.subtotal,
            PurchaseOrder.tax,
        ).where(*self._received_in(year))
        if supplier_id is not None:
            stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)

        return [
            ReceivedPurchaseOrder(supplier_id=row.supplier_id, subtotal=row.subtotal, tax=row.tax)
            for row in self.session.execute(stmt)
        ]

    def suppliers_with_received(self, year: int) -> list[UUID]:
        """Distinct suppliers with at least one RECEIVED order in the year."""
        rows = self.session.execute(
            select(PurchaseOrder.supplier_id)
            .where(*self._received_in(year))
            .distinct()
        ).scalars().all()
        return sorted(rows, key=str)
