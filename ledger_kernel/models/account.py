"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the tenant chart of accounts -- the target
    of every journal line.
Architecture position: Kernel > Models.  May import from db/ and domain/enums
    only.

Invariants enforced:
    - Account code is unique per tenant (uq_account_tenant_code).
    - The parent, when set, belongs to the same tenant and is not the
      account itself (checked by AccountService).
    - level is derived from the code length, never supplied by callers.

Failure modes:
    - IntegrityError on a duplicate (tenant_id, code) pair.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString
from ledger_kernel.domain.enums import AccountNature, AccountType

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalEntryLine


def level_for_code(code: str) -> int:
    """Hierarchy level implied by a code: 1, 2, 3-4 and 5+ digits."""
    length = len(code)
    if length <= 2:
        return length
    if length <= 4:
        return 3
    return 4


class Account(TenantScopedBase):
    """
    Chart of accounts entry.

    Contract:
        Accounts are never deleted once referenced by journal lines; they
        are deactivated instead.  Inactive accounts reject new lines.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_parent", "parent_id"),
        Index("idx_account_type", "tenant_id", "account_type"),
    )

    code: Mapped[str] = mapped_column(String(10), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    nature: Mapped[AccountNature] = mapped_column(String(10), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # 1..4, from level_for_code()
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    parent: Mapped["Account | None"] = relationship(
        "Account",
        remote_side="Account.id",
        back_populates="children",
    )

    children: Mapped[list["Account"]] = relationship(
        "Account",
        back_populates="parent",
    )

    lines: Mapped[list["JournalEntryLine"]] = relationship(
        "JournalEntryLine",
        back_populates="account",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
