"""
IdentityService -- role lookup for ownership checks.

The ledger does not manage users; it only asks for the role of the user
acting on a POS session.  Lookups are filtered by tenant, so a user of
another tenant has no role here.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.enums import UserRole
from ledger_kernel.models.parties import User
from ledger_kernel.services.base import BaseService


class IdentityService(BaseService[User]):

    def role_of(self, user_id: UUID) -> UserRole | None:
        """The user's role, or None when the tenant has no such user."""
        role = self.session.execute(
            select(User.role).where(
                User.id == user_id,
                User.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        return UserRole(role) if role is not None else None

    def has_any_role(self, user_id: UUID, roles: frozenset[str]) -> bool:
        role = self.role_of(user_id)
        return role is not None and role.value in roles
