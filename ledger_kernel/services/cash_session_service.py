"""
CashSessionService -- point-of-sale cash session lifecycle and X/Z reports.

Responsibility:
    Opens and closes operator sessions on cash registers, records manual
    drawer movements (CASH_IN / CASH_OUT), reconciles the declared closing
    cash against the amount expected from the movement trail, and builds
    X (intraday) and Z (closing) reports.

Architecture position:
    Kernel > Services -- imperative shell over the pure replay in
    ``ledger_kernel.domain.cash``.

State machine (per register):
    no session --open--> ACTIVE --close--> CLOSED

Invariants enforced:
    - At most one ACTIVE session per register: the register row is locked
      (SELECT ... FOR UPDATE), checked, and the partial unique index
      uq_pos_session_active_register backs the check.
    - Open and close each write session, movement and register status in
      the caller's single transaction.
    - Movements are append-only.
    - expected_amount comes from replaying the movements; difference is
      declared - expected (signed, informational only).
    - Only the session owner or a privileged role (ADMIN/MANAGER) may add
      movements to or close a session.

Failure modes:
    - CashRegisterNotFoundError / SessionNotFoundError.
    - ActiveSessionExistsError: register already has an ACTIVE session.
    - SessionNotActiveError: movement or close on a non-ACTIVE session.
    - SessionNotClosedError: Z report on a session that is not CLOSED.
    - SessionAccessDeniedError: not owner and not privileged.
    - InvalidAmountError / InvalidMovementTypeError: bad input.

Audit relevance:
    Open, movement and close are logged with session and register ids;
    close logs expected, declared and difference.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ledger_kernel.config import PosSettings
from ledger_kernel.db.types import ZERO, to_decimal
from ledger_kernel.domain.cash import CashMovementView, classify_sales, expected_cash
from ledger_kernel.domain.dtos import (
    CashReport,
    MovementInfo,
    SalesByMethod,
    SessionInfo,
)
from ledger_kernel.domain.enums import (
    CashRegisterStatus,
    MovementType,
    PaymentMethod,
    ReportKind,
    SessionStatus,
)
from ledger_kernel.domain.transitions import SESSION_TRANSITIONS, ensure_transition
from ledger_kernel.exceptions import (
    ActiveSessionExistsError,
    CashRegisterNotFoundError,
    InvalidAmountError,
    InvalidMovementTypeError,
    InvalidReportKindError,
    SessionAccessDeniedError,
    SessionNotActiveError,
    SessionNotClosedError,
    SessionNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.pos import (
    CashRegister,
    CashRegisterMovement,
    POSSale,
    POSSession,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.identity_service import IdentityService

logger = get_logger("services.cash_session")

MANUAL_MOVEMENTS = frozenset({MovementType.CASH_IN, MovementType.CASH_OUT})


def session_to_dto(session: POSSession) -> SessionInfo:
    return SessionInfo(
        id=session.id,
        cash_register_id=session.cash_register_id,
        user_id=session.user_id,
        status=SessionStatus(session.status),
        opening_amount=session.opening_amount,
        closing_amount=session.closing_amount,
        expected_amount=session.expected_amount,
        difference=session.difference,
        opened_at=session.opened_at,
        closed_at=session.closed_at,
        notes=session.notes,
    )


def movement_to_dto(movement: CashRegisterMovement) -> MovementInfo:
    return MovementInfo(
        id=movement.id,
        session_id=movement.session_id,
        movement_type=MovementType(movement.movement_type),
        amount=movement.amount,
        payment_method=(
            PaymentMethod(movement.payment_method)
            if movement.payment_method is not None else None
        ),
        reference=movement.reference,
        notes=movement.notes,
        sale_id=movement.sale_id,
        created_at=movement.created_at,
    )


class CashSessionService(BaseService[POSSession]):
    """
    Service for POS cash sessions.

    Contract:
        Mutations flush within the caller's transaction; the caller commits
        once, so a failure anywhere leaves no partial session, movement or
        register change behind.

    Non-goals:
        - Does NOT record sales (SaleService) or post to the journal.
        - Does NOT enforce a threshold on the closing difference.
    """

    def __init__(
        self,
        session,
        tenant,
        settings: PosSettings,
        identity: IdentityService,
        clock=None,
    ):
        super().__init__(session, tenant, clock)
        self._settings = settings
        self._identity = identity

    # -------------------------------------------------------------------------
    # Loading and checks
    # -------------------------------------------------------------------------

    def _load_register(self, cash_register_id: UUID, for_update: bool = False) -> CashRegister:
        stmt = select(CashRegister).where(
            CashRegister.id == cash_register_id,
            CashRegister.tenant_id == self.tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        register = self.session.execute(stmt).scalar_one_or_none()
        if register is None:
            raise CashRegisterNotFoundError(str(cash_register_id))
        return register

    def load_session(self, session_id: UUID, for_update: bool = False) -> POSSession:
        stmt = select(POSSession).where(
            POSSession.id == session_id,
            POSSession.tenant_id == self.tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        pos_session = self.session.execute(stmt).scalar_one_or_none()
        if pos_session is None:
            raise SessionNotFoundError(str(session_id))
        return pos_session

    def _require_active(self, pos_session: POSSession) -> None:
        status = SessionStatus(pos_session.status)
        if status != SessionStatus.ACTIVE:
            raise SessionNotActiveError(str(pos_session.id), status.value)

    def is_privileged(self, user_id: UUID) -> bool:
        return self._identity.has_any_role(user_id, self._settings.privileged_roles)

    def ensure_can_operate(self, pos_session: POSSession, user_id: UUID) -> None:
        """
        Owner, or a user holding a privileged role.

        Raises:
            SessionAccessDeniedError: Otherwise, including unknown users.
        """
        if pos_session.user_id == user_id:
            return
        if self.is_privileged(user_id):
            return
        logger.warning(
            "session_access_denied",
            extra={"session_id": str(pos_session.id), "user_id": str(user_id)},
        )
        raise SessionAccessDeniedError(str(pos_session.id), str(user_id))

    def _movements(self, session_id: UUID) -> list[CashRegisterMovement]:
        return list(
            self.session.execute(
                select(CashRegisterMovement)
                .where(
                    CashRegisterMovement.tenant_id == self.tenant_id,
                    CashRegisterMovement.session_id == session_id,
                )
                .order_by(CashRegisterMovement.created_at)
            ).scalars()
        )

    def _append_movement(
        self,
        pos_session: POSSession,
        movement_type: MovementType,
        amount,
        payment_method: PaymentMethod | None = None,
        reference: str | None = None,
        notes: str | None = None,
        sale_id: UUID | None = None,
    ) -> CashRegisterMovement:
        movement = CashRegisterMovement(
            tenant_id=self.tenant_id,
            session_id=pos_session.id,
            movement_type=movement_type,
            amount=amount,
            payment_method=payment_method,
            reference=reference,
            notes=notes,
            sale_id=sale_id,
        )
        self.session.add(movement)
        return movement

    def expected_amount(self, session_id: UUID) -> Decimal:
        """Cash that should be in the drawer now, from the movement trail."""
        return expected_cash(
            CashMovementView(
                movement_type=MovementType(m.movement_type),
                amount=m.amount,
                payment_method=m.payment_method,
            )
            for m in self._movements(session_id)
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open_session(
        self,
        cash_register_id: UUID,
        opening_amount,
        user_id: UUID,
        notes: str | None = None,
    ) -> SessionInfo:
        """
        Open a session: ACTIVE session, OPENING movement, register OPEN.

        Raises:
            InvalidAmountError: opening_amount is negative.
            CashRegisterNotFoundError: Register unknown to the tenant.
            ActiveSessionExistsError: Register already has an ACTIVE session.
        """
        opening_amount = to_decimal(opening_amount)
        if opening_amount < ZERO:
            raise InvalidAmountError("opening_amount", opening_amount)

        # Lock serializes concurrent opens on the same register
        register = self._load_register(cash_register_id, for_update=True)

        active = self.session.execute(
            select(POSSession.id).where(
                POSSession.tenant_id == self.tenant_id,
                POSSession.cash_register_id == register.id,
                POSSession.status == SessionStatus.ACTIVE.value,
            )
        ).first()
        if active is not None:
            logger.warning(
                "session_open_rejected",
                extra={"cash_register_id": str(register.id), "reason": "active_session_exists"},
            )
            raise ActiveSessionExistsError(str(register.id))

        pos_session = POSSession(
            tenant_id=self.tenant_id,
            cash_register_id=register.id,
            user_id=user_id,
            status=SessionStatus.ACTIVE,
            opening_amount=opening_amount,
            opened_at=self.clock.now(),
            notes=notes,
        )
        self.session.add(pos_session)
        try:
            self._flush_in_savepoint()
        except IntegrityError as exc:
            raise ActiveSessionExistsError(str(register.id)) from exc

        self._append_movement(
            pos_session,
            MovementType.OPENING,
            opening_amount,
            notes="Opening cash",
        )
        register.status = CashRegisterStatus.OPEN
        self.session.flush()

        with LogContext.bind(session_id=pos_session.id):
            logger.info(
                "session_opened",
                extra={
                    "cash_register_id": str(register.id),
                    "user_id": str(user_id),
                    "opening_amount": opening_amount,
                },
            )
        return session_to_dto(pos_session)

    def register_cash_movement(
        self,
        session_id: UUID,
        action: MovementType,
        amount,
        user_id: UUID,
        reference: str | None = None,
        notes: str | None = None,
    ) -> MovementInfo:
        """
        Record a manual CASH_IN or CASH_OUT.  Session totals stay derived.

        Raises:
            InvalidMovementTypeError: action is not CASH_IN or CASH_OUT.
            InvalidAmountError: amount is not positive.
            SessionNotFoundError / SessionNotActiveError.
            SessionAccessDeniedError: Not owner and not privileged.
        """
        try:
            action = MovementType(action)
        except ValueError:
            raise InvalidMovementTypeError(str(action)) from None
        if action not in MANUAL_MOVEMENTS:
            raise InvalidMovementTypeError(action.value)
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountError("amount", amount)

        pos_session = self.load_session(session_id, for_update=True)
        self._require_active(pos_session)
        self.ensure_can_operate(pos_session, user_id)

        movement = self._append_movement(
            pos_session,
            action,
            amount,
            payment_method=PaymentMethod.CASH,
            reference=reference,
            notes=notes,
        )
        self.session.flush()

        with LogContext.bind(session_id=pos_session.id):
            logger.info(
                "cash_movement_recorded",
                extra={
                    "movement_type": action.value,
                    "amount": amount,
                    "user_id": str(user_id),
                },
            )
        return movement_to_dto(movement)

    def close_session(
        self,
        session_id: UUID,
        declared_amount,
        user_id: UUID,
        notes: str | None = None,
    ) -> SessionInfo:
        """
        Close a session: CLOSING movement, session totals, register CLOSED.

        Postconditions:
            - expected_amount is the movement replay before the CLOSING
              movement; difference = declared_amount - expected_amount.

        Raises:
            InvalidAmountError: declared_amount is negative.
            SessionNotFoundError / SessionNotActiveError.
            SessionAccessDeniedError: Not owner and not privileged.
        """
        declared_amount = to_decimal(declared_amount)
        if declared_amount < ZERO:
            raise InvalidAmountError("declared_amount", declared_amount)

        pos_session = self.load_session(session_id, for_update=True)
        self._require_active(pos_session)
        self.ensure_can_operate(pos_session, user_id)

        expected = self.expected_amount(pos_session.id)
        difference = declared_amount - expected

        ensure_transition(
            SESSION_TRANSITIONS,
            "POSSession",
            pos_session.id,
            SessionStatus(pos_session.status),
            SessionStatus.CLOSED,
        )

        self._append_movement(
            pos_session,
            MovementType.CLOSING,
            declared_amount,
            notes=notes or "Closing cash",
        )
        pos_session.status = SessionStatus.CLOSED
        pos_session.closing_amount = declared_amount
        pos_session.expected_amount = expected
        pos_session.difference = difference
        pos_session.closed_at = self.clock.now()
        if notes:
            pos_session.notes = f"{pos_session.notes}\n{notes}" if pos_session.notes else notes

        register = self._load_register(pos_session.cash_register_id, for_update=True)
        register.status = CashRegisterStatus.CLOSED
        self.session.flush()

        with LogContext.bind(session_id=pos_session.id):
            logger.info(
                "session_closed",
                extra={
                    "user_id": str(user_id),
                    "expected_amount": expected,
                    "declared_amount": declared_amount,
                    "difference": difference,
                },
            )
        return session_to_dto(pos_session)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def generate_report(self, session_id: UUID, kind: ReportKind) -> CashReport:
        """
        Build an X or Z report.

        X works on ACTIVE and CLOSED sessions and leaves the declared amount
        and difference empty.  Z requires a CLOSED session and reports the
        declared, expected and difference stored at close.

        Raises:
            InvalidReportKindError: kind is not X or Z.
            SessionNotFoundError.
            SessionNotClosedError: Z requested on a session that is not CLOSED.
        """
        try:
            kind = ReportKind(kind)
        except ValueError:
            raise InvalidReportKindError(str(kind)) from None
        pos_session = self.load_session(session_id)
        status = SessionStatus(pos_session.status)
        if kind == ReportKind.Z and status != SessionStatus.CLOSED:
            raise SessionNotClosedError(str(pos_session.id), status.value)

        register = self._load_register(pos_session.cash_register_id)
        movements = self._movements(pos_session.id)

        sales = self.session.execute(
            select(POSSale)
            .where(
                POSSale.tenant_id == self.tenant_id,
                POSSale.session_id == pos_session.id,
                POSSale.is_voided.is_(False),
            )
            .options(selectinload(POSSale.payments))
        ).scalars().all()

        breakdown = classify_sales(
            ((p.method, p.amount) for sale in sales for p in sale.payments),
            self._settings.card_methods,
        )

        total_cash_in = sum(
            (m.amount for m in movements if m.movement_type == MovementType.CASH_IN.value),
            ZERO,
        )
        total_cash_out = sum(
            (m.amount for m in movements if m.movement_type == MovementType.CASH_OUT.value),
            ZERO,
        )

        if kind == ReportKind.Z:
            expected = pos_session.expected_amount
            declared = pos_session.closing_amount
            difference = pos_session.difference
        else:
            expected = expected_cash(
                CashMovementView(
                    movement_type=MovementType(m.movement_type),
                    amount=m.amount,
                    payment_method=m.payment_method,
                )
                for m in movements
            )
            declared = None
            difference = None

        report = CashReport(
            kind=kind,
            session_id=pos_session.id,
            cash_register_code=register.code,
            cash_register_name=register.name,
            user_id=pos_session.user_id,
            opened_at=pos_session.opened_at,
            closed_at=pos_session.closed_at,
            opening_amount=pos_session.opening_amount,
            total_cash_sales=breakdown.cash,
            total_card_sales=breakdown.card,
            total_other_sales=breakdown.other,
            total_sales_amount=breakdown.total,
            total_cash_in=total_cash_in,
            total_cash_out=total_cash_out,
            expected_cash_amount=expected,
            declared_cash_amount=declared,
            difference=difference,
            transaction_count=len(sales),
            sales_by_method=tuple(
                SalesByMethod(method=m.method, count=m.count, total=m.total)
                for m in breakdown.by_method
            ),
            generated_at=self.clock.now(),
        )

        logger.info(
            "cash_report_generated",
            extra={"session_id": str(pos_session.id), "report_kind": kind.value},
        )
        return report

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def current_session(self, user_id: UUID) -> SessionInfo | None:
        """The user's ACTIVE session, if any."""
        pos_session = self.session.execute(
            select(POSSession)
            .where(
                POSSession.tenant_id == self.tenant_id,
                POSSession.user_id == user_id,
                POSSession.status == SessionStatus.ACTIVE.value,
            )
            .order_by(POSSession.opened_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return session_to_dto(pos_session) if pos_session is not None else None

    def get_session(self, session_id: UUID) -> SessionInfo:
        return session_to_dto(self.load_session(session_id))

    def list_sessions(
        self,
        status: SessionStatus | None = None,
        cash_register_id: UUID | None = None,
        user_id: UUID | None = None,
    ) -> list[SessionInfo]:
        """Sessions matching every given filter, most recently opened first."""
        stmt = select(POSSession).where(POSSession.tenant_id == self.tenant_id)
        if status is not None:
            stmt = stmt.where(POSSession.status == SessionStatus(status).value)
        if cash_register_id is not None:
            stmt = stmt.where(POSSession.cash_register_id == cash_register_id)
        if user_id is not None:
            stmt = stmt.where(POSSession.user_id == user_id)
        sessions = self.session.execute(
            stmt.order_by(POSSession.opened_at.desc())
        ).scalars().all()
        return [session_to_dto(s) for s in sessions]

    def list_movements(self, session_id: UUID) -> list[MovementInfo]:
        pos_session = self.load_session(session_id)
        return [movement_to_dto(m) for m in self._movements(pos_session.id)]
