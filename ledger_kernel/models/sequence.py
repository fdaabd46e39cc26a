"""
Module: ledger_kernel.models.sequence
Responsibility: Counter rows backing every document number series
    (CE, GTO, POS, CRT-{year}).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (tenant_id, name) (uq_sequence_tenant_name).
    - current_value only grows, and only under SELECT ... FOR UPDATE
      (SequenceService).
"""

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase


class SequenceCounter(TenantScopedBase):
    """
    Named per-tenant counter.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_sequence_tenant_name"),
    )

    # Series name, e.g. "GTO" or "CRT-2025"
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
