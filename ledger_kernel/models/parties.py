"""
Module: ledger_kernel.models.parties
Responsibility: Collaborator records the ledger reads but does not manage:
    users (for the POS role check), suppliers, and received purchase orders.
Architecture position: Kernel > Models.  May import from db/ and domain/enums
    only.

Non-goals:
    - CRUD for these records lives outside the ledger kernel.  The kernel
      only reads them, always filtered by tenant_id.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.enums import PurchaseOrderStatus, UserRole


class User(TenantScopedBase):
    """Application user as seen by the ledger (name and role only)."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    email: Mapped[str | None] = mapped_column(String(200), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        String(20),
        default=UserRole.EMPLOYEE,
        nullable=False,
    )


class Supplier(TenantScopedBase):
    __tablename__ = "suppliers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    document_number: Mapped[str | None] = mapped_column(String(30), nullable=True)


class PurchaseOrder(TenantScopedBase):
    """
    Purchase order header, owned by the purchasing subsystem.

    The withholding generator reads RECEIVED orders by received_date.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index(
            "idx_purchase_order_supplier_status",
            "tenant_id",
            "supplier_id",
            "status",
            "received_date",
        ),
    )

    order_number: Mapped[str] = mapped_column(String(30), nullable=False)

    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("suppliers.id"),
        nullable=False,
    )

    status: Mapped[PurchaseOrderStatus] = mapped_column(
        String(20),
        default=PurchaseOrderStatus.DRAFT,
        nullable=False,
    )

    received_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    tax: Mapped[Decimal] = mapped_column(nullable=False)

    total: Mapped[Decimal] = mapped_column(nullable=False)
