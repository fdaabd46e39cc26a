"""
POS cash sessions: open, manual movements, close and X/Z reports.

Verifies:
- One ACTIVE session per register (ConflictError on a second open)
- Only the owner or ADMIN/MANAGER may move cash or close
- Expected cash is replayed from the movement trail at close
- Z reports need a CLOSED session
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import PaymentSpec
from ledger_kernel.domain.enums import (
    CashRegisterStatus,
    MovementType,
    PaymentMethod,
    ReportKind,
    SessionStatus,
    UserRole,
)
from ledger_kernel.exceptions import (
    ActiveSessionExistsError,
    CashRegisterNotFoundError,
    ConflictError,
    ForbiddenError,
    InvalidAmountError,
    InvalidMovementTypeError,
    InvalidReportKindError,
    SessionAccessDeniedError,
    SessionNotActiveError,
    SessionNotClosedError,
    SessionNotFoundError,
    ValidationError,
)
from ledger_kernel.models.pos import CashRegister


@pytest.fixture
def open_session(cash_session_service, register, cashier):
    return cash_session_service.open_session(register.id, Decimal("100000"), cashier.id)


def _register_status(session, register_id):
    return CashRegisterStatus(session.get(CashRegister, register_id).status)


class TestOpen:

    def test_open_creates_active_session_and_opening_movement(
        self, session, cash_session_service, register, cashier, captured_logs
    ):
        opened = cash_session_service.open_session(register.id, Decimal("100000"), cashier.id, notes="Turno AM")

        assert opened.status == SessionStatus.ACTIVE
        assert opened.is_active
        assert opened.opening_amount == Decimal("100000")
        assert _register_status(session, register.id) == CashRegisterStatus.OPEN

        movements = cash_session_service.list_movements(opened.id)
        assert [(m.movement_type, m.amount) for m in movements] == [
            (MovementType.OPENING, Decimal("100000"))
        ]
        opened_logs = [r for r in captured_logs() if r["message"] == "session_opened"]
        assert opened_logs and opened_logs[0]["session_id"] == str(opened.id)

    def test_second_active_session_conflicts(self, cash_session_service, register, open_session, manager):
        with pytest.raises(ActiveSessionExistsError) as exc_info:
            cash_session_service.open_session(register.id, Decimal("0"), manager.id)
        assert isinstance(exc_info.value, ConflictError)

    def test_reopen_after_close(self, cash_session_service, register, open_session, cashier):
        cash_session_service.close_session(open_session.id, Decimal("100000"), cashier.id)
        again = cash_session_service.open_session(register.id, Decimal("50000"), cashier.id)
        assert again.is_active

    def test_unknown_register(self, cash_session_service, cashier):
        with pytest.raises(CashRegisterNotFoundError):
            cash_session_service.open_session(uuid4(), Decimal("0"), cashier.id)

    def test_other_tenant_register_is_not_found(self, other_ledger, register, cashier):
        with pytest.raises(CashRegisterNotFoundError):
            other_ledger.cash_sessions.open_session(register.id, Decimal("0"), cashier.id)

    def test_negative_opening_rejected(self, cash_session_service, register, cashier):
        with pytest.raises(InvalidAmountError):
            cash_session_service.open_session(register.id, Decimal("-1"), cashier.id)

    def test_current_session(self, cash_session_service, open_session, cashier, manager):
        assert cash_session_service.current_session(cashier.id).id == open_session.id
        assert cash_session_service.current_session(manager.id) is None


class TestCashMovements:

    def test_owner_records_cash_in(self, cash_session_service, open_session, cashier):
        movement = cash_session_service.register_cash_movement(
            open_session.id, MovementType.CASH_IN, Decimal("20000"), cashier.id, reference="Base extra"
        )
        assert movement.movement_type == MovementType.CASH_IN
        assert movement.payment_method == PaymentMethod.CASH
        assert cash_session_service.expected_amount(open_session.id) == Decimal("120000")

    def test_manager_may_operate_foreign_session(self, cash_session_service, open_session, manager):
        cash_session_service.register_cash_movement(
            open_session.id, MovementType.CASH_OUT, Decimal("10000"), manager.id
        )
        assert cash_session_service.expected_amount(open_session.id) == Decimal("90000")

    def test_other_employee_forbidden(self, cash_session_service, open_session, create_user):
        intruder = create_user(name="Otro cajero")
        with pytest.raises(SessionAccessDeniedError) as exc_info:
            cash_session_service.register_cash_movement(
                open_session.id, MovementType.CASH_IN, Decimal("1"), intruder.id
            )
        assert isinstance(exc_info.value, ForbiddenError)

    def test_unknown_user_forbidden(self, cash_session_service, open_session):
        with pytest.raises(SessionAccessDeniedError):
            cash_session_service.register_cash_movement(
                open_session.id, MovementType.CASH_IN, Decimal("1"), uuid4()
            )

    def test_unknown_movement_type(self, cash_session_service, open_session, cashier):
        with pytest.raises(InvalidMovementTypeError) as exc_info:
            cash_session_service.register_cash_movement(open_session.id, "FOO", Decimal("1"), cashier.id)
        assert exc_info.value.movement_type == "FOO"
        assert isinstance(exc_info.value, ValidationError)

    @pytest.mark.parametrize("action", [MovementType.SALE, MovementType.OPENING, MovementType.CLOSING])
    def test_only_manual_types(self, cash_session_service, open_session, cashier, action):
        with pytest.raises(InvalidMovementTypeError):
            cash_session_service.register_cash_movement(open_session.id, action, Decimal("1"), cashier.id)

    def test_closed_session_is_state_error_before_ownership(
        self, cash_session_service, open_session, cashier, create_user
    ):
        cash_session_service.close_session(open_session.id, Decimal("100000"), cashier.id)
        intruder = create_user(name="Otro cajero")
        with pytest.raises(SessionNotActiveError):
            cash_session_service.register_cash_movement(
                open_session.id, MovementType.CASH_IN, Decimal("1"), intruder.id
            )

    def test_unknown_session(self, cash_session_service, cashier):
        with pytest.raises(SessionNotFoundError):
            cash_session_service.register_cash_movement(uuid4(), MovementType.CASH_IN, Decimal("1"), cashier.id)


class TestClose:

    def test_close_reconciles_against_replay(
        self, session, cash_session_service, sale_service, register, open_session, cashier, deterministic_clock
    ):
        sale_service.record_sale(cashier.id, Decimal("50000"), [PaymentSpec(PaymentMethod.CASH, Decimal("50000"))])
        sale_service.record_sale(
            cashier.id, Decimal("30000"), [PaymentSpec(PaymentMethod.CREDIT_CARD, Decimal("30000"))]
        )
        voided = sale_service.record_sale(
            cashier.id, Decimal("5000"), [PaymentSpec(PaymentMethod.CASH, Decimal("5000"))]
        )
        cash_session_service.register_cash_movement(open_session.id, MovementType.CASH_IN, Decimal("20000"), cashier.id)
        cash_session_service.register_cash_movement(open_session.id, MovementType.CASH_OUT, Decimal("10000"), cashier.id)
        sale_service.void_sale(voided.id, cashier.id, "Cliente desistio")

        closed = cash_session_service.close_session(open_session.id, Decimal("158000"), cashier.id, notes="Faltante")

        assert closed.status == SessionStatus.CLOSED
        assert closed.expected_amount == Decimal("160000")
        assert closed.closing_amount == Decimal("158000")
        assert closed.difference == Decimal("-2000")
        assert closed.closed_at == deterministic_clock.now()
        assert _register_status(session, register.id) == CashRegisterStatus.CLOSED
        assert MovementType.CLOSING in {m.movement_type for m in cash_session_service.list_movements(open_session.id)}

    def test_non_owner_non_privileged_close_forbidden(self, cash_session_service, open_session, create_user):
        intruder = create_user(name="Otro cajero")
        with pytest.raises(SessionAccessDeniedError):
            cash_session_service.close_session(open_session.id, Decimal("100000"), intruder.id)
        assert cash_session_service.get_session(open_session.id).is_active

    def test_admin_may_close(self, cash_session_service, open_session, create_user):
        admin = create_user(UserRole.ADMIN, "Admin")
        closed = cash_session_service.close_session(open_session.id, Decimal("100500"), admin.id)
        assert closed.difference == Decimal("500")

    def test_close_twice_is_state_error(self, cash_session_service, open_session, cashier):
        cash_session_service.close_session(open_session.id, Decimal("100000"), cashier.id)
        with pytest.raises(SessionNotActiveError):
            cash_session_service.close_session(open_session.id, Decimal("100000"), cashier.id)


class TestReports:

    def test_x_report_on_active_session(self, cash_session_service, sale_service, open_session, cashier):
        sale_service.record_sale(
            cashier.id,
            Decimal("45000"),
            [
                PaymentSpec(PaymentMethod.CASH, Decimal("20000")),
                PaymentSpec(PaymentMethod.DEBIT_CARD, Decimal("15000")),
                PaymentSpec(PaymentMethod.NEQUI, Decimal("10000")),
            ],
        )
        report = cash_session_service.generate_report(open_session.id, ReportKind.X)

        assert report.kind == ReportKind.X
        assert report.cash_register_code == "CAJA-01"
        assert report.total_cash_sales == Decimal("20000")
        assert report.total_card_sales == Decimal("15000")
        assert report.total_other_sales == Decimal("10000")
        assert report.total_sales_amount == Decimal("45000")
        assert report.expected_cash_amount == Decimal("120000")
        assert report.declared_cash_amount is None
        assert report.difference is None
        assert report.transaction_count == 1
        assert [m.method for m in report.sales_by_method] == [
            PaymentMethod.CASH, PaymentMethod.DEBIT_CARD, PaymentMethod.NEQUI,
        ]

    @pytest.mark.parametrize("kind", ["Y", ""])
    def test_unknown_report_kind(self, cash_session_service, open_session, kind):
        with pytest.raises(InvalidReportKindError) as exc_info:
            cash_session_service.generate_report(open_session.id, kind)
        assert isinstance(exc_info.value, ValidationError)

    def test_z_report_on_active_session_is_state_error(self, cash_session_service, open_session):
        with pytest.raises(SessionNotClosedError):
            cash_session_service.generate_report(open_session.id, ReportKind.Z)

    def test_z_report_uses_close_figures(self, cash_session_service, sale_service, open_session, cashier):
        sale_service.record_sale(cashier.id, Decimal("1000"), [PaymentSpec(PaymentMethod.CASH, Decimal("1000"))])
        cash_session_service.register_cash_movement(open_session.id, MovementType.CASH_OUT, Decimal("300"), cashier.id)
        cash_session_service.close_session(open_session.id, Decimal("100700"), cashier.id)

        report = cash_session_service.generate_report(open_session.id, ReportKind.Z)
        assert report.expected_cash_amount == Decimal("100700")
        assert report.declared_cash_amount == Decimal("100700")
        assert report.difference == Decimal("0")
        assert report.total_cash_out == Decimal("300")
        assert report.closed_at is not None

    def test_voided_sales_are_excluded(self, cash_session_service, sale_service, open_session, cashier):
        sale = sale_service.record_sale(cashier.id, Decimal("800"), [PaymentSpec(PaymentMethod.CASH, Decimal("800"))])
        sale_service.void_sale(sale.id, cashier.id, "error")
        report = cash_session_service.generate_report(open_session.id, ReportKind.X)
        assert report.transaction_count == 0
        assert report.total_sales_amount == Decimal("0")
        assert report.expected_cash_amount == Decimal("100000")


class TestListing:

    def test_list_sessions_filters(self, cash_session_service, create_register, open_session, manager):
        second_register = create_register("CAJA-02", "Caja 2")
        other = cash_session_service.open_session(second_register.id, Decimal("0"), manager.id)

        assert {s.id for s in cash_session_service.list_sessions()} == {open_session.id, other.id}
        assert [s.id for s in cash_session_service.list_sessions(user_id=manager.id)] == [other.id]
        assert [s.id for s in cash_session_service.list_sessions(cash_register_id=second_register.id)] == [other.id]
