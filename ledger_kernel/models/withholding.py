"""
Module: ledger_kernel.models.withholding
Responsibility: ORM persistence for supplier withholding certificates.
Architecture position: Kernel > Models.  May import from db/ and domain/enums
    only.

Invariants enforced:
    - One certificate per (tenant, supplier, year, withholding_type)
      (uq_certificate_key).  Regeneration updates the row in place.
    - certificate_number is unique per tenant (uq_certificate_tenant_number)
      and is never rewritten after insert.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.models.parties import Supplier


class WithholdingCertificate(TenantScopedBase):
    __tablename__ = "withholding_certificates"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "supplier_id",
            "year",
            "withholding_type",
            name="uq_certificate_key",
        ),
        UniqueConstraint(
            "tenant_id",
            "certificate_number",
            name="uq_certificate_tenant_number",
        ),
    )

    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("suppliers.id"),
        nullable=False,
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Free-form: RENTA, ICA, IVA or any other type (which uses the RENTA rate)
    withholding_type: Mapped[str] = mapped_column(String(20), nullable=False)

    certificate_number: Mapped[str] = mapped_column(String(30), nullable=False)

    total_base: Mapped[Decimal] = mapped_column(nullable=False)

    total_withheld: Mapped[Decimal] = mapped_column(nullable=False)

    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Rendering is handled elsewhere and writes the URL back
    pdf_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    supplier: Mapped["Supplier"] = relationship("Supplier")

    def __repr__(self) -> str:
        return f"<WithholdingCertificate {self.certificate_number}>"
