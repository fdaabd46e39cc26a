"""
Tenant context.

The active tenant is an explicit immutable value handed to every service
constructor.  There is no process-wide "current tenant": two concurrent
requests hold two different ``TenantContext`` instances and cannot see each
other's binding.
"""

from dataclasses import dataclass
from uuid import UUID

from ledger_kernel.exceptions import TenantNotBoundError


@dataclass(frozen=True)
class TenantContext:
    """Tenant binding for one request."""

    tenant_id: UUID | None = None

    @property
    def is_bound(self) -> bool:
        return self.tenant_id is not None

    def require_tenant_id(self) -> UUID:
        """Return the bound tenant id or fail fast.

        Raises:
            TenantNotBoundError: If no tenant is bound.
        """
        if self.tenant_id is None:
            raise TenantNotBoundError()
        return self.tenant_id

    @classmethod
    def unbound(cls) -> "TenantContext":
        return cls(tenant_id=None)
