"""
WithholdingService -- supplier withholding certificates.

Responsibility:
    Aggregates a supplier's RECEIVED purchase orders for a calendar year,
    computes the withheld amount and stores exactly one certificate per
    (tenant, supplier, year, withholding_type).  Regenerating a certificate
    updates its totals in place and keeps its number.

Architecture position:
    Kernel > Services -- imperative shell.
    Reads purchase orders through PurchaseOrderSelector; amounts come from
    the pure ``domain.withholding`` module; numbers from SequenceService.

Invariants enforced:
    - Certificate numbers (``CRT-{year}-NNNNN``) are allocated only when a
      new certificate row is inserted, from the per tenant+year counter.
    - The insert runs in a savepoint; losing a race on uq_certificate_key
      falls back to updating the winner's row.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - SupplierNotFoundError: supplier unknown to the tenant.
    - NoReceivedPurchaseOrdersError: no RECEIVED orders in the year.
    - CertificateNotFoundError: remove/get of an unknown certificate.

Audit relevance:
    Generation, regeneration and removal are logged with the certificate
    number.  Per-supplier failures during generate_all are logged with the
    traceback and skipped.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ledger_kernel.config import NumberingSettings, WithholdingSettings
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import (
    CertificateInfo,
    CertificateStats,
    GenerateAllResult,
    TypeTotals,
)
from ledger_kernel.domain.enums import WithholdingType, enum_value
from ledger_kernel.domain.withholding import calculate_withholding, summarize_orders
from ledger_kernel.exceptions import (
    CertificateNotFoundError,
    LedgerKernelError,
    NoReceivedPurchaseOrdersError,
    SupplierNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.parties import Supplier
from ledger_kernel.models.withholding import WithholdingCertificate
from ledger_kernel.selectors.purchase_order_selector import PurchaseOrderSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.withholding")


def certificate_to_dto(certificate: WithholdingCertificate) -> CertificateInfo:
    return CertificateInfo(
        id=certificate.id,
        supplier_id=certificate.supplier_id,
        supplier_name=certificate.supplier.name,
        year=certificate.year,
        withholding_type=certificate.withholding_type,
        certificate_number=certificate.certificate_number,
        total_base=certificate.total_base,
        total_withheld=certificate.total_withheld,
        generated_at=certificate.generated_at,
        pdf_url=certificate.pdf_url,
    )


class WithholdingService(BaseService[WithholdingCertificate]):
    """
    Service for generating withholding certificates.

    Contract:
        ``generate`` is idempotent per key: calling it twice for the same
        supplier, year and type leaves one certificate with fresh totals.

    Guarantees:
        - The existing certificate row is locked ``FOR UPDATE`` before it is
          updated, so concurrent regenerations serialize.
        - A failed supplier in ``generate_all`` rolls back only its own
          savepoint.

    Non-goals:
        - Does NOT render PDFs; ``pdf_url`` stays None.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session,
        tenant,
        settings: WithholdingSettings,
        numbering: NumberingSettings,
        purchase_orders: PurchaseOrderSelector,
        sequences: SequenceService,
        clock=None,
    ):
        super().__init__(session, tenant, clock)
        self._settings = settings
        self._numbering = numbering
        self._purchase_orders = purchase_orders
        self._sequences = sequences

    def calculate(
        self,
        total_base: Decimal,
        withholding_type: str = WithholdingType.RENTA,
        total_tax: Decimal = ZERO,
    ) -> Decimal:
        """Withheld amount for a base/tax pair, without persisting anything."""
        return calculate_withholding(
            total_base, enum_value(withholding_type), total_tax, self._settings
        )

    def _load(self, certificate_id: UUID) -> WithholdingCertificate:
        certificate = self.session.execute(
            select(WithholdingCertificate)
            .where(
                WithholdingCertificate.id == certificate_id,
                WithholdingCertificate.tenant_id == self.tenant_id,
            )
            .options(selectinload(WithholdingCertificate.supplier))
        ).scalar_one_or_none()
        if certificate is None:
            raise CertificateNotFoundError(str(certificate_id))
        return certificate

    def _locked_existing(
        self, supplier_id: UUID, year: int, withholding_type: str
    ) -> WithholdingCertificate | None:
        return self.session.execute(
            select(WithholdingCertificate)
            .where(
                WithholdingCertificate.tenant_id == self.tenant_id,
                WithholdingCertificate.supplier_id == supplier_id,
                WithholdingCertificate.year == year,
                WithholdingCertificate.withholding_type == withholding_type,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert(
        self,
        supplier_id: UUID,
        year: int,
        withholding_type: str,
        total_base: Decimal,
        total_withheld: Decimal,
    ) -> WithholdingCertificate | None:
        """Insert a new certificate; None when another writer got there first."""
        prefix = self._numbering.certificate_prefix
        savepoint = self.session.begin_nested()
        try:
            number = self._sequences.next_number(
                prefix,
                self._numbering.width,
                scope=year,
                seed=self._sequences.seed_from_existing(
                    WithholdingCertificate,
                    WithholdingCertificate.certificate_number,
                    prefix,
                    scope=year,
                ),
            )
            certificate = WithholdingCertificate(
                tenant_id=self.tenant_id,
                supplier_id=supplier_id,
                year=year,
                withholding_type=withholding_type,
                certificate_number=number,
                total_base=total_base,
                total_withheld=total_withheld,
                generated_at=self.clock.now(),
            )
            self.session.add(certificate)
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "certificate_insert_race",
                extra={"supplier_id": str(supplier_id), "year": year},
            )
            return None
        savepoint.commit()
        return certificate

    def generate(
        self,
        supplier_id: UUID,
        year: int,
        withholding_type: str = WithholdingType.RENTA,
    ) -> CertificateInfo:
        """
        Generate or refresh the certificate for a supplier and year.

        Postconditions:
            - total_base is the sum of subtotals of the supplier's RECEIVED
              orders in ``[Jan 1 year, Jan 1 year+1)``.
            - total_withheld follows ``calculate_withholding``.

        Raises:
            SupplierNotFoundError: Unknown supplier.
            NoReceivedPurchaseOrdersError: No RECEIVED orders in the year.
        """
        withholding_type = enum_value(withholding_type)
        supplier = self.session.execute(
            select(Supplier).where(
                Supplier.id == supplier_id,
                Supplier.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if supplier is None:
            raise SupplierNotFoundError(str(supplier_id))

        orders = self._purchase_orders.find_received(year, supplier_id=supplier_id)
        if not orders:
            logger.warning(
                "certificate_generation_rejected",
                extra={
                    "supplier_id": str(supplier_id),
                    "year": year,
                    "reason": "no_received_purchase_orders",
                },
            )
            raise NoReceivedPurchaseOrdersError(str(supplier_id), year)

        totals = summarize_orders(
            ((o.subtotal, o.tax) for o in orders), withholding_type, self._settings
        )

        certificate = self._locked_existing(supplier_id, year, withholding_type)
        created = False
        if certificate is None:
            certificate = self._insert(
                supplier_id,
                year,
                withholding_type,
                totals.total_base,
                totals.total_withheld,
            )
            created = certificate is not None
            if certificate is None:
                certificate = self._locked_existing(supplier_id, year, withholding_type)
                if certificate is None:
                    raise LedgerKernelError(
                        f"Certificate for supplier {supplier_id} year {year} "
                        f"vanished during generation"
                    )

        if not created:
            certificate.total_base = totals.total_base
            certificate.total_withheld = totals.total_withheld
            certificate.generated_at = self.clock.now()
            self.session.flush()

        logger.info(
            "certificate_generated" if created else "certificate_regenerated",
            extra={
                "certificate_number": certificate.certificate_number,
                "supplier_id": str(supplier_id),
                "year": year,
                "withholding_type": withholding_type,
                "total_base": totals.total_base,
                "total_withheld": totals.total_withheld,
            },
        )
        certificate.supplier = supplier
        return certificate_to_dto(certificate)

    def generate_all(
        self,
        year: int,
        withholding_type: str = WithholdingType.RENTA,
    ) -> GenerateAllResult:
        """
        Generate certificates for every supplier with RECEIVED orders.

        Each supplier runs in its own savepoint.  A supplier that fails is
        logged and skipped; the others still generate.
        """
        withholding_type = enum_value(withholding_type)
        generated: list[CertificateInfo] = []

        for supplier_id in self._purchase_orders.suppliers_with_received(year):
            savepoint = self.session.begin_nested()
            try:
                certificate = self.generate(supplier_id, year, withholding_type)
            except Exception:
                savepoint.rollback()
                logger.exception(
                    "certificate_generation_failed",
                    extra={"supplier_id": str(supplier_id), "year": year},
                )
                continue
            savepoint.commit()
            generated.append(certificate)

        logger.info(
            "certificates_generated",
            extra={
                "year": year,
                "withholding_type": withholding_type,
                "generated": len(generated),
            },
        )
        return GenerateAllResult(generated=len(generated), certificates=tuple(generated))

    def remove(self, certificate_id: UUID) -> None:
        """Hard-delete a certificate.  Raises CertificateNotFoundError."""
        certificate = self._load(certificate_id)
        number = certificate.certificate_number
        self.session.delete(certificate)
        self.session.flush()
        logger.info("certificate_removed", extra={"certificate_number": number})

    def get(self, certificate_id: UUID) -> CertificateInfo:
        return certificate_to_dto(self._load(certificate_id))

    def list_certificates(
        self,
        year: int | None = None,
        supplier_id: UUID | None = None,
        withholding_type: str | None = None,
    ) -> list[CertificateInfo]:
        stmt = (
            select(WithholdingCertificate)
            .where(WithholdingCertificate.tenant_id == self.tenant_id)
            .options(selectinload(WithholdingCertificate.supplier))
        )
        if year is not None:
            stmt = stmt.where(WithholdingCertificate.year == year)
        if supplier_id is not None:
            stmt = stmt.where(WithholdingCertificate.supplier_id == supplier_id)
        if withholding_type is not None:
            stmt = stmt.where(
                WithholdingCertificate.withholding_type == enum_value(withholding_type)
            )
        certificates = self.session.execute(
            stmt.order_by(
                WithholdingCertificate.year.desc(),
                WithholdingCertificate.certificate_number,
            )
        ).scalars().all()
        return [certificate_to_dto(c) for c in certificates]

    def stats(self, year: int) -> CertificateStats:
        """Count and totals of the year's certificates, overall and per type."""
        rows = self.session.execute(
            select(
                WithholdingCertificate.withholding_type,
                func.count(WithholdingCertificate.id),
                func.sum(WithholdingCertificate.total_base),
                func.sum(WithholdingCertificate.total_withheld),
            )
            .where(
                WithholdingCertificate.tenant_id == self.tenant_id,
                WithholdingCertificate.year == year,
            )
            .group_by(WithholdingCertificate.withholding_type)
            .order_by(WithholdingCertificate.withholding_type)
        ).all()

        by_type = tuple(
            TypeTotals(
                withholding_type=w_type,
                count=count,
                total_base=Decimal(str(base or 0)),
                total_withheld=Decimal(str(withheld or 0)),
            )
            for w_type, count, base, withheld in rows
        )
        return CertificateStats(
            year=year,
            count=sum(t.count for t in by_type),
            total_base=sum((t.total_base for t in by_type), ZERO),
            total_withheld=sum((t.total_withheld for t in by_type), ZERO),
            by_type=by_type,
        )
