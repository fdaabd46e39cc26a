"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A session-scoped engine and schema, with per-test isolation by rolling
  back an outer transaction
- Tenant, clock, settings and service fixtures
- Factories for collaborator records (users, registers, suppliers,
  purchase orders) and a standard chart of accounts

Environment Variables:
- DATABASE_URL: SQLAlchemy URL.  Defaults to in-memory SQLite.  Tests
  marked ``postgres`` are skipped unless it points at PostgreSQL.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from ledger_kernel.config import load_settings
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.enums import (
    AccountNature,
    AccountType,
    CashRegisterStatus,
    PurchaseOrderStatus,
    UserRole,
)
from ledger_kernel.kernel import LedgerKernel
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.parties import PurchaseOrder, Supplier, User
from ledger_kernel.models.pos import CashRegister
from ledger_kernel.tenancy import TenantContext

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _is_postgres_url(url: str) -> bool:
    return make_url(url).get_backend_name() == "postgresql"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if _is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, period_service):
            period_service.close(period_id, actor_id)
            logs = captured_logs()
            assert any(r["message"] == "period_closed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def db_connection(db_tables, db_engine):
    """A connection holding an outer transaction that is rolled back."""
    conn = db_engine.connect()
    trans = conn.begin()
    yield conn
    try:
        trans.rollback()
    finally:
        conn.close()


@pytest.fixture(scope="function")
def session_factory(db_connection):
    """
    Factory of sessions joined to the test's outer transaction.

    ``commit()`` on these sessions releases a SAVEPOINT; nothing reaches the
    database past the end of the test.
    """
    opened: list[Session] = []

    def _factory() -> Session:
        sess = Session(
            bind=db_connection,
            join_transaction_mode="create_savepoint",
            expire_on_commit=False,
        )
        opened.append(sess)
        return sess

    yield _factory
    for sess in opened:
        sess.close()


@pytest.fixture(scope="function")
def session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for testing."""
    yield session_factory()


# =============================================================================
# Tenancy, clock and settings
# =============================================================================


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def tenant(tenant_id) -> TenantContext:
    return TenantContext(tenant_id)


@pytest.fixture
def other_tenant() -> TenantContext:
    return TenantContext(uuid4())


@pytest.fixture
def test_actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock fixed at 2025-01-15 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture(scope="session")
def settings():
    return load_settings()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def kernel(session_factory, settings, deterministic_clock) -> LedgerKernel:
    return LedgerKernel(session_factory, settings, deterministic_clock)


@pytest.fixture
def ledger(kernel, session, tenant):
    """All services bound to the test session and tenant."""
    return kernel.build(session, tenant)


@pytest.fixture
def other_ledger(kernel, session, other_tenant):
    return kernel.build(session, other_tenant)


@pytest.fixture
def sequence_service(ledger):
    return ledger.sequences


@pytest.fixture
def account_service(ledger):
    return ledger.accounts


@pytest.fixture
def period_service(ledger):
    return ledger.periods


@pytest.fixture
def journal_service(ledger):
    return ledger.journal


@pytest.fixture
def cash_session_service(ledger):
    return ledger.cash_sessions


@pytest.fixture
def sale_service(ledger):
    return ledger.sales


@pytest.fixture
def withholding_service(ledger):
    return ledger.withholding


@pytest.fixture
def expense_service(ledger):
    return ledger.expenses


# =============================================================================
# Test data generators
# =============================================================================


@pytest.fixture
def create_user(session: Session, tenant_id: UUID):
    """Factory fixture to create users with a role."""

    def _create_user(role: UserRole = UserRole.EMPLOYEE, name: str = "Cajero") -> User:
        user = User(tenant_id=tenant_id, name=name, role=role)
        session.add(user)
        session.flush()
        return user

    return _create_user


@pytest.fixture
def cashier(create_user) -> User:
    return create_user(UserRole.EMPLOYEE, "Cajero Uno")


@pytest.fixture
def manager(create_user) -> User:
    return create_user(UserRole.MANAGER, "Gerente")


@pytest.fixture
def create_register(session: Session, tenant_id: UUID):
    """Factory fixture to create cash registers."""

    def _create_register(code: str = "CAJA-01", name: str = "Caja principal") -> CashRegister:
        register = CashRegister(
            tenant_id=tenant_id,
            code=code,
            name=name,
            status=CashRegisterStatus.CLOSED,
        )
        session.add(register)
        session.flush()
        return register

    return _create_register


@pytest.fixture
def register(create_register) -> CashRegister:
    return create_register()


@pytest.fixture
def create_supplier(session: Session, tenant_id: UUID):
    """Factory fixture to create suppliers."""

    def _create_supplier(name: str = "Proveedor SAS", document_number: str | None = "900123456") -> Supplier:
        supplier = Supplier(tenant_id=tenant_id, name=name, document_number=document_number)
        session.add(supplier)
        session.flush()
        return supplier

    return _create_supplier


@pytest.fixture
def create_purchase_order(session: Session, tenant_id: UUID):
    """Factory fixture to create purchase orders."""
    counter = {"n": 0}

    def _create_purchase_order(
        supplier: Supplier,
        subtotal: Decimal,
        tax: Decimal = Decimal("0"),
        received_date: date | None = date(2025, 3, 10),
        status: PurchaseOrderStatus = PurchaseOrderStatus.RECEIVED,
    ) -> PurchaseOrder:
        counter["n"] += 1
        order = PurchaseOrder(
            tenant_id=supplier.tenant_id,
            order_number=f"OC-{counter['n']:05d}",
            supplier_id=supplier.id,
            status=status,
            received_date=received_date,
            subtotal=Decimal(subtotal),
            tax=Decimal(tax),
            total=Decimal(subtotal) + Decimal(tax),
        )
        session.add(order)
        session.flush()
        return order

    return _create_purchase_order


STANDARD_ACCOUNTS = (
    ("110505", "Caja general", AccountType.ASSET, AccountNature.DEBIT),
    ("111005", "Bancos", AccountType.ASSET, AccountNature.DEBIT),
    ("236540", "Retencion en la fuente por pagar", AccountType.LIABILITY, AccountNature.CREDIT),
    ("241205", "IVA descontable", AccountType.ASSET, AccountNature.DEBIT),
    ("4135", "Comercio al por mayor y menor", AccountType.REVENUE, AccountNature.CREDIT),
    ("5195", "Gastos diversos", AccountType.EXPENSE, AccountNature.DEBIT),
    ("5110", "Honorarios", AccountType.EXPENSE, AccountNature.DEBIT),
)


@pytest.fixture
def standard_accounts(account_service) -> dict:
    """Chart of accounts used by journal and ledger bridge tests, by code."""
    return {
        code: account_service.create(code, name, account_type, nature)
        for code, name, account_type, nature in STANDARD_ACCOUNTS
    }


@pytest.fixture
def january_period(period_service):
    """OPEN period covering the deterministic clock's date."""
    return period_service.create("Enero 2025", date(2025, 1, 1), date(2025, 1, 31))
