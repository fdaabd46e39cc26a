"""
LedgerKernel -- composition root.

Responsibility:
    Wires settings, clock and a session factory into per-transaction service
    bundles.  ``transaction(tenant)`` opens one unit of work, commits it, and
    only then runs the post-commit hooks the services queued.

Architecture position:
    Kernel -- outermost layer.  The only place that commits.

Usage:
    kernel = LedgerKernel(get_session_factory(), load_settings())
    with kernel.transaction(TenantContext(tenant_id)) as ledger:
        ledger.periods.close(period_id, actor_id)
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generator
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.config import LedgerSettings, load_settings
from ledger_kernel.db.engine import get_session_factory, session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.purchase_order_selector import PurchaseOrderSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.cash_session_service import CashSessionService
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.identity_service import IdentityService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.ledger_bridge import LedgerBridge
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.post_commit import PostCommitHooks
from ledger_kernel.services.sale_service import SaleService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.withholding_service import WithholdingService
from ledger_kernel.tenancy import TenantContext

logger = get_logger("kernel")


@dataclass(frozen=True)
class LedgerServices:
    """Services bound to one session and one tenant."""

    session: Session
    tenant: TenantContext
    hooks: PostCommitHooks
    sequences: SequenceService
    accounts: AccountService
    periods: PeriodService
    journal: JournalService
    identity: IdentityService
    cash_sessions: CashSessionService
    sales: SaleService
    withholding: WithholdingService
    expenses: ExpenseService
    bridge: LedgerBridge


class LedgerKernel:
    """
    Builds service bundles and owns transaction boundaries.

    Contract:
        Services never commit.  ``transaction()`` commits on normal exit,
        rolls back on exception, and runs post-commit hooks only after a
        successful commit.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self.settings = settings or load_settings()
        self.clock = clock or SystemClock()

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory or get_session_factory()

    def build(
        self,
        session: Session,
        tenant: TenantContext,
        hooks: PostCommitHooks | None = None,
    ) -> LedgerServices:
        """Wire every service onto an existing session."""
        cfg = self.settings
        clock = self.clock
        hooks = hooks if hooks is not None else PostCommitHooks()

        sequences = SequenceService(session, tenant, clock)
        journal = JournalService(
            session, tenant, cfg.journal, cfg.numbering, sequences, clock
        )
        identity = IdentityService(session, tenant, clock)
        cash_sessions = CashSessionService(session, tenant, cfg.pos, identity, clock)

        return LedgerServices(
            session=session,
            tenant=tenant,
            hooks=hooks,
            sequences=sequences,
            accounts=AccountService(session, tenant, clock),
            periods=PeriodService(session, tenant, clock),
            journal=journal,
            identity=identity,
            cash_sessions=cash_sessions,
            sales=SaleService(
                session, tenant, cfg.pos, cfg.numbering, sequences, cash_sessions, clock
            ),
            withholding=WithholdingService(
                session,
                tenant,
                cfg.withholding,
                cfg.numbering,
                PurchaseOrderSelector(session, tenant),
                sequences,
                clock,
            ),
            expenses=ExpenseService(
                session,
                tenant,
                cfg.expenses,
                cfg.numbering,
                sequences,
                hooks=hooks,
                on_paid=lambda expense_id: self.notify_expense_paid(tenant, expense_id),
                clock=clock,
            ),
            bridge=LedgerBridge(session, tenant, cfg.ledger_bridge, journal),
        )

    @contextmanager
    def transaction(self, tenant: TenantContext) -> Generator[LedgerServices, None, None]:
        """One unit of work for a tenant; post-commit hooks run after commit."""
        tenant_id = tenant.require_tenant_id()
        hooks = PostCommitHooks()
        with LogContext.bind(tenant_id=tenant_id):
            try:
                with session_scope(self.session_factory) as session:
                    yield self.build(session, tenant, hooks)
            except Exception:
                hooks.discard()
                raise
            hooks.run()

    def notify_expense_paid(self, tenant: TenantContext, expense_id: UUID) -> None:
        """Post the EXPENSE_PAID journal entry in its own transaction."""
        with session_scope(self.session_factory) as session:
            self.build(session, tenant).bridge.on_expense_paid(expense_id)
