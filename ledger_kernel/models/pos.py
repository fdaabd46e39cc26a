"""
Module: ledger_kernel.models.pos
Responsibility: ORM persistence for point-of-sale cash handling: registers,
    sessions, the append-only movement trail, and sales with their payments.
Architecture position: Kernel > Models.  May import from db/ and domain/enums
    only.

Invariants enforced:
    - At most one ACTIVE session per register: partial unique index
      uq_pos_session_active_register, backed by a locked check in
      CashSessionService.
    - Movements are append-only; no service updates or deletes them.
    - sale_number is unique per tenant.

Failure modes:
    - IntegrityError on a second ACTIVE session for a register (mapped to
      ActiveSessionExistsError by CashSessionService).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.enums import (
    CashRegisterStatus,
    MovementType,
    PaymentMethod,
    SessionStatus,
)


class CashRegister(TenantScopedBase):
    """A physical till."""

    __tablename__ = "cash_registers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_cash_register_tenant_code"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[CashRegisterStatus] = mapped_column(
        String(20),
        default=CashRegisterStatus.CLOSED,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CashRegister {self.code}: {self.status}>"


class POSSession(TenantScopedBase):
    """
    One operator shift on one register.

    Contract:
        expected_amount and difference are written once, on close, from a
        replay of the session's movements.
    """

    __tablename__ = "pos_sessions"

    __table_args__ = (
        Index(
            "uq_pos_session_active_register",
            "cash_register_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
        Index("idx_pos_session_user_status", "tenant_id", "user_id", "status"),
    )

    cash_register_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cash_registers.id"),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        default=SessionStatus.ACTIVE,
        nullable=False,
    )

    opening_amount: Mapped[Decimal] = mapped_column(nullable=False)

    closing_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    expected_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    # closing_amount - expected_amount; positive is a surplus
    difference: Mapped[Decimal | None] = mapped_column(nullable=True)

    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    cash_register: Mapped["CashRegister"] = relationship("CashRegister")

    movements: Mapped[list["CashRegisterMovement"]] = relationship(
        "CashRegisterMovement",
        back_populates="session",
        order_by="CashRegisterMovement.created_at",
    )

    def __repr__(self) -> str:
        return f"<POSSession {self.id}: {self.status}>"


class CashRegisterMovement(TenantScopedBase):
    """Append-only record of money entering or leaving a session."""

    __tablename__ = "cash_register_movements"

    __table_args__ = (
        Index("idx_movement_session", "session_id"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pos_sessions.id"),
        nullable=False,
    )

    sale_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("pos_sales.id"),
        nullable=True,
    )

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Only meaningful for SALE and REFUND
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        String(20),
        nullable=True,
    )

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    session: Mapped["POSSession"] = relationship(
        "POSSession",
        back_populates="movements",
    )


class POSSale(TenantScopedBase):
    """A sale rung up in a session."""

    __tablename__ = "pos_sales"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sale_number", name="uq_pos_sale_tenant_number"),
        Index("idx_pos_sale_session", "session_id"),
    )

    sale_number: Mapped[str] = mapped_column(String(30), nullable=False)

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pos_sessions.id"),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    total: Mapped[Decimal] = mapped_column(nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_voided: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    payments: Mapped[list["SalePayment"]] = relationship(
        "SalePayment",
        back_populates="sale",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<POSSale {self.sale_number}: {self.total}>"


class SalePayment(TenantScopedBase):
    """One tender of a sale (split payments produce several rows)."""

    __tablename__ = "pos_sale_payments"

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pos_sales.id"),
        nullable=False,
        index=True,
    )

    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    sale: Mapped["POSSale"] = relationship(
        "POSSale",
        back_populates="payments",
    )
