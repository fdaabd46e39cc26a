"""
SaleService -- POS sales and voids as seen by the cash drawer.

Responsibility:
    Records a sale in the seller's ACTIVE session with one SALE movement per
    payment, and voids a sale by appending one REFUND movement per payment.
    Sale numbers (``POS-NNNNN``) come from the locked counter.

Architecture position:
    Kernel > Services -- imperative shell.  Shares session loading and the
    ownership/role check with CashSessionService.

Invariants enforced:
    - Payments add up to the sale total within the configured tolerance.
    - Movements are only appended, never edited; a void leaves the SALE
      movements in place and offsets them with REFUND movements.
    - Voiding a sale of a session that is no longer ACTIVE requires a
      privileged role.

Failure modes:
    - NoActiveSessionError: seller has no ACTIVE session.
    - PaymentMismatchError / InvalidAmountError: bad amounts.
    - SaleNotFoundError / SaleAlreadyVoidedError.
    - SessionAccessDeniedError: void in a closed session by a non-privileged
      user.
    - VoidReasonRequiredError: empty void reason.

Non-goals:
    - Line items, stock and invoicing belong to the sales subsystem.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ledger_kernel.config import NumberingSettings, PosSettings
from ledger_kernel.db.types import ZERO, to_decimal
from ledger_kernel.domain.dtos import PaymentSpec, SaleInfo
from ledger_kernel.domain.enums import MovementType, PaymentMethod, SessionStatus
from ledger_kernel.exceptions import (
    InvalidAmountError,
    NoActiveSessionError,
    PaymentMismatchError,
    SaleAlreadyVoidedError,
    SaleNotFoundError,
    SessionAccessDeniedError,
    VoidReasonRequiredError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.pos import CashRegisterMovement, POSSale, POSSession, SalePayment
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.cash_session_service import CashSessionService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.sale")


def sale_to_dto(sale: POSSale) -> SaleInfo:
    return SaleInfo(
        id=sale.id,
        sale_number=sale.sale_number,
        session_id=sale.session_id,
        user_id=sale.user_id,
        total=sale.total,
        reference=sale.reference,
        is_voided=sale.is_voided,
        voided_at=sale.voided_at,
        void_reason=sale.void_reason,
        payments=tuple(
            PaymentSpec(method=PaymentMethod(p.method), amount=p.amount)
            for p in sale.payments
        ),
    )


class SaleService(BaseService[POSSale]):
    """Service for POS sales."""

    def __init__(
        self,
        session,
        tenant,
        settings: PosSettings,
        numbering: NumberingSettings,
        sequences: SequenceService,
        cash_sessions: CashSessionService,
        clock=None,
    ):
        super().__init__(session, tenant, clock)
        self._settings = settings
        self._numbering = numbering
        self._sequences = sequences
        self._cash_sessions = cash_sessions

    def _load(self, sale_id: UUID, for_update: bool = False) -> POSSale:
        stmt = (
            select(POSSale)
            .where(POSSale.id == sale_id, POSSale.tenant_id == self.tenant_id)
            .options(selectinload(POSSale.payments))
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        sale = self.session.execute(stmt).scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(str(sale_id))
        return sale

    def record_sale(
        self,
        user_id: UUID,
        total,
        payments: Sequence[PaymentSpec],
        reference: str | None = None,
    ) -> SaleInfo:
        """
        Record a sale in the user's ACTIVE session.

        Raises:
            InvalidAmountError: total or a payment is not positive.
            PaymentMismatchError: payments differ from total beyond tolerance.
            NoActiveSessionError: the user has no ACTIVE session.
        """
        total = to_decimal(total)
        if total <= ZERO:
            raise InvalidAmountError("total", total)
        if not payments:
            raise PaymentMismatchError(total, ZERO)

        paid = ZERO
        for payment in payments:
            amount = to_decimal(payment.amount)
            if amount <= ZERO:
                raise InvalidAmountError("payment amount", amount)
            paid += amount
        if abs(paid - total) > self._settings.payment_tolerance:
            raise PaymentMismatchError(total, paid)

        pos_session = self.session.execute(
            select(POSSession)
            .where(
                POSSession.tenant_id == self.tenant_id,
                POSSession.user_id == user_id,
                POSSession.status == SessionStatus.ACTIVE.value,
            )
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if pos_session is None:
            raise NoActiveSessionError(str(user_id))

        sale_number = self._sequences.next_number(
            self._numbering.sale_prefix,
            self._numbering.width,
            seed=self._sequences.seed_from_existing(
                POSSale, POSSale.sale_number, self._numbering.sale_prefix
            ),
        )
        sale = POSSale(
            tenant_id=self.tenant_id,
            sale_number=sale_number,
            session_id=pos_session.id,
            user_id=user_id,
            total=total,
            reference=reference,
            is_voided=False,
        )
        for payment in payments:
            sale.payments.append(
                SalePayment(
                    tenant_id=self.tenant_id,
                    method=PaymentMethod(payment.method),
                    amount=to_decimal(payment.amount),
                )
            )
        self.session.add(sale)
        self.session.flush()

        for payment in sale.payments:
            self.session.add(
                CashRegisterMovement(
                    tenant_id=self.tenant_id,
                    session_id=pos_session.id,
                    sale_id=sale.id,
                    movement_type=MovementType.SALE,
                    amount=payment.amount,
                    payment_method=payment.method,
                    reference=sale_number,
                )
            )
        self.session.flush()

        with LogContext.bind(session_id=pos_session.id):
            logger.info(
                "sale_recorded",
                extra={"sale_number": sale_number, "total": total},
            )
        return sale_to_dto(sale)

    def void_sale(self, sale_id: UUID, user_id: UUID, reason: str) -> SaleInfo:
        """
        Void a sale: mark it voided and append a REFUND per payment.

        Raises:
            VoidReasonRequiredError: reason is empty.
            SaleNotFoundError / SaleAlreadyVoidedError.
            SessionAccessDeniedError: the sale's session is not ACTIVE and the
                user holds no privileged role.
        """
        if not reason or not reason.strip():
            raise VoidReasonRequiredError(str(sale_id))

        sale = self._load(sale_id, for_update=True)
        if sale.is_voided:
            raise SaleAlreadyVoidedError(str(sale_id))

        pos_session = self._cash_sessions.load_session(sale.session_id)
        if SessionStatus(pos_session.status) != SessionStatus.ACTIVE:
            if not self._cash_sessions.is_privileged(user_id):
                logger.warning(
                    "sale_void_rejected",
                    extra={"sale_number": sale.sale_number, "user_id": str(user_id)},
                )
                raise SessionAccessDeniedError(str(pos_session.id), str(user_id))

        sale.is_voided = True
        sale.voided_at = self.clock.now()
        sale.void_reason = reason.strip()

        for payment in sale.payments:
            self.session.add(
                CashRegisterMovement(
                    tenant_id=self.tenant_id,
                    session_id=pos_session.id,
                    sale_id=sale.id,
                    movement_type=MovementType.REFUND,
                    amount=payment.amount,
                    payment_method=payment.method,
                    reference=sale.sale_number,
                    notes=f"Refund for voided sale: {reason.strip()}",
                )
            )
        self.session.flush()

        with LogContext.bind(session_id=pos_session.id):
            logger.info(
                "sale_voided",
                extra={"sale_number": sale.sale_number, "user_id": str(user_id)},
            )
        return sale_to_dto(sale)

    def get(self, sale_id: UUID) -> SaleInfo:
        return sale_to_dto(self._load(sale_id))

    def list_sales(self, session_id: UUID) -> list[SaleInfo]:
        sales = self.session.execute(
            select(POSSale)
            .where(POSSale.tenant_id == self.tenant_id, POSSale.session_id == session_id)
            .options(selectinload(POSSale.payments))
            .order_by(POSSale.sale_number)
        ).scalars().all()
        return [sale_to_dto(s) for s in sales]
