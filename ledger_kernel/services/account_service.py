"""
AccountService -- tenant chart of accounts.

Responsibility:
    Creates and updates accounts, derives their level from the code, and
    serves lookups and the account tree used by the journal engine and the
    ledger bridge.

Invariants enforced:
    - Code is 1-10 digits and unique per tenant.
    - level is derived from the code length (1, 2, 3-4, 5+ -> 1..4).
    - parent exists in the same tenant and is never the account itself.

Failure modes:
    - InvalidAccountCodeError: code is not 1-10 digits.
    - DuplicateAccountCodeError: code already used in the tenant.
    - AccountNotFoundError: account or parent id unknown to the tenant.
    - InvalidAccountParentError: parent is the account itself.
"""

import re
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.dtos import AccountInfo, AccountNode
from ledger_kernel.domain.enums import AccountNature, AccountType
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateAccountCodeError,
    InvalidAccountCodeError,
    InvalidAccountParentError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, level_for_code
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")

_CODE_PATTERN = re.compile(r"^\d{1,10}$")

_UNSET = object()


class AccountService(BaseService[Account]):
    """
    Service for the chart of accounts.

    Guarantees:
        - All public methods return frozen ``AccountInfo`` DTOs.
        - Every query is filtered by the bound tenant.
    """

    def _to_dto(self, account: Account) -> AccountInfo:
        return AccountInfo(
            id=account.id,
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            nature=AccountNature(account.nature),
            parent_id=account.parent_id,
            level=account.level,
            is_active=account.is_active,
        )

    def _load(self, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(
                Account.id == account_id,
                Account.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _load_by_code(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.tenant_id == self.tenant_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def _check_parent(self, parent_id: UUID, account_id: UUID | None) -> None:
        if account_id is not None and parent_id == account_id:
            raise InvalidAccountParentError(
                str(parent_id), "an account cannot be its own parent"
            )
        # Raises AccountNotFoundError for a parent outside the tenant
        self._load(parent_id)

    def create(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        nature: AccountNature,
        parent_id: UUID | None = None,
        is_active: bool = True,
    ) -> AccountInfo:
        """
        Create an account.

        Raises:
            InvalidAccountCodeError: If code is not 1-10 digits.
            DuplicateAccountCodeError: If the tenant already uses the code.
            AccountNotFoundError: If parent_id is unknown to the tenant.
        """
        if not _CODE_PATTERN.match(code or ""):
            raise InvalidAccountCodeError(code)

        if self._load_by_code(code) is not None:
            raise DuplicateAccountCodeError(code)

        if parent_id is not None:
            self._check_parent(parent_id, None)

        account = Account(
            tenant_id=self.tenant_id,
            code=code,
            name=name,
            account_type=AccountType(account_type),
            nature=AccountNature(nature),
            parent_id=parent_id,
            level=level_for_code(code),
            is_active=is_active,
        )
        self.session.add(account)
        try:
            self._flush_in_savepoint()
        except IntegrityError as exc:
            raise DuplicateAccountCodeError(code) from exc

        logger.info(
            "account_created",
            extra={"account_code": code, "level": account.level},
        )
        return self._to_dto(account)

    def update(
        self,
        account_id: UUID,
        *,
        name: str | None = None,
        account_type: AccountType | None = None,
        nature: AccountNature | None = None,
        parent_id: UUID | None | object = _UNSET,
        is_active: bool | None = None,
    ) -> AccountInfo:
        """
        Update mutable account fields.  The code is immutable.

        Pass ``parent_id=None`` to detach an account from its parent; leave
        it out to keep the current parent.

        Raises:
            AccountNotFoundError: If the account or the new parent is unknown.
            InvalidAccountParentError: If the account would be its own parent.
        """
        account = self._load(account_id)

        if parent_id is not _UNSET:
            if parent_id is not None:
                self._check_parent(parent_id, account.id)
            account.parent_id = parent_id
        if name is not None:
            account.name = name
        if account_type is not None:
            account.account_type = AccountType(account_type)
        if nature is not None:
            account.nature = AccountNature(nature)
        if is_active is not None:
            account.is_active = is_active

        self.session.flush()
        logger.info("account_updated", extra={"account_code": account.code})
        return self._to_dto(account)

    def get(self, account_id: UUID) -> AccountInfo:
        return self._to_dto(self._load(account_id))

    def find_by_code(self, code: str) -> AccountInfo | None:
        account = self._load_by_code(code)
        return self._to_dto(account) if account is not None else None

    def list_accounts(
        self,
        account_type: AccountType | None = None,
        active_only: bool = False,
        search: str | None = None,
    ) -> list[AccountInfo]:
        """Accounts ordered by code, optionally filtered."""
        stmt = select(Account).where(Account.tenant_id == self.tenant_id)
        if account_type is not None:
            stmt = stmt.where(Account.account_type == AccountType(account_type).value)
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Account.code.like(pattern), Account.name.like(pattern)))
        accounts = self.session.execute(stmt.order_by(Account.code)).scalars().all()
        return [self._to_dto(a) for a in accounts]

    def tree(self, active_only: bool = False) -> list[AccountNode]:
        """
        The chart of accounts as a forest, roots and children ordered by code.

        An account whose parent is filtered out (inactive) becomes a root.
        """
        accounts = self.list_accounts(active_only=active_only)
        ids = {a.id for a in accounts}
        children: dict[UUID | None, list[AccountInfo]] = {}
        for account in accounts:
            key = account.parent_id if account.parent_id in ids else None
            children.setdefault(key, []).append(account)

        def build(account: AccountInfo) -> AccountNode:
            return AccountNode(
                account=account,
                children=tuple(build(c) for c in children.get(account.id, [])),
            )

        return [build(root) for root in children.get(None, [])]
