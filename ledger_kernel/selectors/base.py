"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - Tenant filtering: every query is filtered by the bound tenant.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.tenancy import TenantContext


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session and a TenantContext from the caller,
        perform read-only queries, and return DTOs.
    """

    def __init__(self, session: Session, tenant: TenantContext):
        self.session = session
        self.tenant = tenant

    @property
    def tenant_id(self) -> UUID:
        return self.tenant.require_tenant_id()
