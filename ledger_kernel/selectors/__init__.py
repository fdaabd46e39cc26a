"""Read-only query selectors."""

from ledger_kernel.selectors.purchase_order_selector import (
    PurchaseOrderSelector,
    ReceivedPurchaseOrder,
)

__all__ = ["PurchaseOrderSelector", "ReceivedPurchaseOrder"]
