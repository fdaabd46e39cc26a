"""
Row-lock behaviour under real concurrent transactions.

Besides allocation races, these check that writers on a period or POS
session wait for a concurrent close and then see the CLOSED status.

Each worker thread runs its own ``kernel.transaction()`` against PostgreSQL
and commits, so these tests clean up their tenant's rows afterwards.

Run with: DATABASE_URL=postgresql://... pytest tests/concurrency -v
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker

from ledger_kernel.db.base import Base
from ledger_kernel.domain.dtos import LineSpec, PaymentSpec
from ledger_kernel.domain.enums import (
    AccountNature,
    AccountType,
    CashRegisterStatus,
    MovementType,
    PaymentMethod,
    PurchaseOrderStatus,
    UserRole,
)
from ledger_kernel.exceptions import (
    ActiveSessionExistsError,
    ClosedPeriodError,
    NoActiveSessionError,
    SessionNotActiveError,
)
from ledger_kernel.kernel import LedgerKernel
from ledger_kernel.models.parties import PurchaseOrder, Supplier, User
from ledger_kernel.models.pos import CashRegister
from ledger_kernel.tenancy import TenantContext

pytestmark = pytest.mark.postgres


@pytest.fixture
def committed_kernel(db_engine, db_tables, settings, deterministic_clock):
    return LedgerKernel(sessionmaker(bind=db_engine, expire_on_commit=False), settings, deterministic_clock)


@pytest.fixture
def live_tenant(committed_kernel):
    tenant = TenantContext(uuid4())
    yield tenant
    with committed_kernel.transaction(tenant) as ledger:
        for table in reversed(Base.metadata.sorted_tables):
            if "tenant_id" in table.c:
                ledger.session.execute(delete(table).where(table.c.tenant_id == tenant.tenant_id))


def _run_parallel(fn, workers):
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(fn) for _ in range(workers)]
        return [f.exception() or f.result() for f in futures]


def test_sequence_allocations_are_unique(committed_kernel, live_tenant):
    def allocate():
        with committed_kernel.transaction(live_tenant) as ledger:
            return ledger.sequences.next_value("GTO")

    values = _run_parallel(allocate, 20)

    assert sorted(values) == list(range(1, 21))


def test_one_active_session_per_register(committed_kernel, live_tenant):
    with committed_kernel.transaction(live_tenant) as ledger:
        register = CashRegister(
            tenant_id=live_tenant.tenant_id, code="CAJA-01", name="Caja", status=CashRegisterStatus.CLOSED
        )
        users = [
            User(tenant_id=live_tenant.tenant_id, name=f"Cajero {i}", role=UserRole.EMPLOYEE)
            for i in range(8)
        ]
        ledger.session.add_all([register, *users])
        ledger.session.flush()
        register_id = register.id
        user_ids = [u.id for u in users]

    pending = iter(user_ids)

    def open_one():
        user_id = next(pending)
        with committed_kernel.transaction(live_tenant) as ledger:
            return ledger.cash_sessions.open_session(register_id, Decimal("0"), user_id)

    outcomes = _run_parallel(open_one, len(user_ids))

    opened = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(opened) == 1
    assert all(isinstance(o, ActiveSessionExistsError) for o in outcomes if isinstance(o, Exception))


def test_concurrent_certificate_generation_keeps_one_row(committed_kernel, live_tenant):
    with committed_kernel.transaction(live_tenant) as ledger:
        supplier = Supplier(tenant_id=live_tenant.tenant_id, name="Proveedor")
        ledger.session.add(supplier)
        ledger.session.flush()
        ledger.session.add(
            PurchaseOrder(
                tenant_id=live_tenant.tenant_id,
                order_number="OC-00001",
                supplier_id=supplier.id,
                status=PurchaseOrderStatus.RECEIVED,
                received_date=date(2025, 3, 1),
                subtotal=Decimal("10000"),
                tax=Decimal("0"),
                total=Decimal("10000"),
            )
        )
        supplier_id = supplier.id

    def generate():
        with committed_kernel.transaction(live_tenant) as ledger:
            return ledger.withholding.generate(supplier_id, 2025)

    results = _run_parallel(generate, 6)

    assert all(not isinstance(r, Exception) for r in results)
    assert {r.certificate_number for r in results} == {"CRT-2025-00001"}
    with committed_kernel.transaction(live_tenant) as ledger:
        assert len(ledger.withholding.list_certificates(year=2025)) == 1


def _blocked_until_commit(committed_kernel, tenant, holder, contender):
    """
    Run ``holder`` in an open transaction, start ``contender`` in another
    thread, and check it waits for the holder's commit.  Returns the
    contender's future.
    """
    with ThreadPoolExecutor(max_workers=1) as executor:
        with committed_kernel.transaction(tenant) as ledger:
            holder(ledger)
            future = executor.submit(contender)
            with pytest.raises(FuturesTimeout):
                future.result(timeout=0.5)
        future.exception(timeout=10)
        return future


def test_draft_waits_for_period_close(committed_kernel, live_tenant):
    with committed_kernel.transaction(live_tenant) as ledger:
        ledger.accounts.create("110505", "Caja general", AccountType.ASSET, AccountNature.DEBIT)
        ledger.accounts.create("4135", "Comercio", AccountType.REVENUE, AccountNature.CREDIT)
        period_id = ledger.periods.create("Enero 2025", date(2025, 1, 1), date(2025, 1, 31)).id

    lines = [
        LineSpec(account_code="110505", debit=Decimal("100")),
        LineSpec(account_code="4135", credit=Decimal("100")),
    ]

    def create_draft():
        with committed_kernel.transaction(live_tenant) as ledger:
            return ledger.journal.create_draft(period_id, lines)

    future = _blocked_until_commit(
        committed_kernel,
        live_tenant,
        lambda ledger: ledger.periods.close(period_id, uuid4()),
        create_draft,
    )

    assert isinstance(future.exception(), ClosedPeriodError)
    with committed_kernel.transaction(live_tenant) as ledger:
        assert ledger.journal.list_entries() == []


def _active_session(committed_kernel, tenant):
    with committed_kernel.transaction(tenant) as ledger:
        register = CashRegister(
            tenant_id=tenant.tenant_id, code="CAJA-01", name="Caja", status=CashRegisterStatus.CLOSED
        )
        cashier = User(tenant_id=tenant.tenant_id, name="Cajero", role=UserRole.EMPLOYEE)
        ledger.session.add_all([register, cashier])
        ledger.session.flush()
        opened = ledger.cash_sessions.open_session(register.id, Decimal("1000"), cashier.id)
        return opened.id, cashier.id


def test_cash_movement_waits_for_session_close(committed_kernel, live_tenant):
    session_id, cashier_id = _active_session(committed_kernel, live_tenant)

    def cash_in():
        with committed_kernel.transaction(live_tenant) as ledger:
            return ledger.cash_sessions.register_cash_movement(
                session_id, MovementType.CASH_IN, Decimal("50"), cashier_id
            )

    future = _blocked_until_commit(
        committed_kernel,
        live_tenant,
        lambda ledger: ledger.cash_sessions.close_session(session_id, Decimal("1000"), cashier_id),
        cash_in,
    )

    assert isinstance(future.exception(), SessionNotActiveError)
    with committed_kernel.transaction(live_tenant) as ledger:
        movements = ledger.cash_sessions.list_movements(session_id)
        assert MovementType.CASH_IN not in {m.movement_type for m in movements}


def test_sale_waits_for_session_close(committed_kernel, live_tenant):
    session_id, cashier_id = _active_session(committed_kernel, live_tenant)

    def sell():
        with committed_kernel.transaction(live_tenant) as ledger:
            return ledger.sales.record_sale(
                cashier_id, Decimal("50"), [PaymentSpec(PaymentMethod.CASH, Decimal("50"))]
            )

    future = _blocked_until_commit(
        committed_kernel,
        live_tenant,
        lambda ledger: ledger.cash_sessions.close_session(session_id, Decimal("1000"), cashier_id),
        sell,
    )

    assert isinstance(future.exception(), NoActiveSessionError)
    with committed_kernel.transaction(live_tenant) as ledger:
        assert ledger.sales.list_sales(session_id) == []
