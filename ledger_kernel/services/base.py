"""
BaseService -- abstract base for all ledger kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service.  All concrete services receive a SQLAlchemy ``Session``
    and the request's ``TenantContext``, and persist with
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The caller
      (LedgerKernel.transaction(), session_scope(), or a test harness)
      owns commit/rollback, so a multi-row mutation is all or nothing.
    - Tenant filtering: every query a service runs is filtered by
      ``self.tenant_id``, which fails fast when no tenant is bound.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.tenancy import TenantContext

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for ledger kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and a ``TenantContext`` from the
        caller and uses ``session.flush()`` to persist changes within the
        active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        tenant: TenantContext,
        clock: Clock | None = None,
    ):
        self.session = session
        self.tenant = tenant
        self.clock = clock or SystemClock()

    @property
    def tenant_id(self) -> UUID:
        """The bound tenant.  Raises TenantNotBoundError when unbound."""
        return self.tenant.require_tenant_id()

    def _flush_in_savepoint(self) -> None:
        """
        Flush pending changes inside a SAVEPOINT.

        On IntegrityError only the savepoint is rolled back, so the caller's
        transaction stays usable, and the error is re-raised for the caller
        to translate.
        """
        savepoint = self.session.begin_nested()
        try:
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            raise
        savepoint.commit()
