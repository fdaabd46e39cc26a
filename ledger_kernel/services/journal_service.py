"""
JournalService -- double-entry journal entries.

Responsibility:
    Creates manual DRAFT entries, posts and voids them, and records
    automatic POSTED entries on behalf of other subsystems (the ledger
    bridge).  Every entry carries a per-tenant ``CE-NNNNN`` number.

Architecture position:
    Kernel > Services -- imperative shell.
    Uses PeriodService rules (period must be OPEN) and SequenceService for
    entry numbers.

Invariants enforced:
    - Balance: sum(debit) == sum(credit), within the configured tolerance,
      at creation.  Never re-validated afterwards: amounts are immutable.
    - Each line has exactly one positive side and no negative amounts.
    - Every line account exists in the tenant and is active.
    - Post requires DRAFT status and an OPEN period.
    - Void keeps every row; it only sets status, voided_at, void_reason.

Failure modes:
    - InvalidEntryLineError, UnbalancedEntryError,
      LineAccountNotFoundError, AccountInactiveError (validation).
    - PeriodNotFoundError / JournalEntryNotFoundError.
    - ClosedPeriodError, EntryNotDraftError, EntryAlreadyVoidedError.
    - VoidReasonRequiredError: empty void reason.

Audit relevance:
    Creation, posting and voiding are logged with the entry number.
    Rejected entries are logged at WARNING level with their totals.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ledger_kernel.config import JournalSettings, NumberingSettings
from ledger_kernel.db.types import ZERO, to_decimal
from ledger_kernel.domain.dtos import JournalEntryInfo, JournalLineInfo, LineSpec
from ledger_kernel.domain.enums import (
    JournalEntrySource,
    JournalEntryStatus,
    PeriodStatus,
)
from ledger_kernel.domain.transitions import JOURNAL_TRANSITIONS, ensure_transition
from ledger_kernel.exceptions import (
    AccountInactiveError,
    ClosedPeriodError,
    EntryAlreadyVoidedError,
    EntryNotDraftError,
    InvalidEntryLineError,
    JournalEntryNotFoundError,
    LineAccountNotFoundError,
    PeriodNotFoundError,
    UnbalancedEntryError,
    VoidReasonRequiredError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalEntryLine
from ledger_kernel.models.period import AccountingPeriod
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")


@dataclass(frozen=True)
class _ResolvedLine:
    account: Account
    debit: Decimal
    credit: Decimal
    description: str | None


class JournalService(BaseService[JournalEntry]):
    """
    Service for journal entries.

    Contract:
        All methods flush within the caller's transaction and return frozen
        ``JournalEntryInfo`` DTOs.

    Non-goals:
        - Does NOT compute account balances; those are derived reads.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session,
        tenant,
        settings: JournalSettings,
        numbering: NumberingSettings,
        sequences: SequenceService,
        clock=None,
    ):
        super().__init__(session, tenant, clock)
        self._settings = settings
        self._numbering = numbering
        self._sequences = sequences

    # -------------------------------------------------------------------------
    # DTO conversion and loading
    # -------------------------------------------------------------------------

    def _to_dto(self, entry: JournalEntry) -> JournalEntryInfo:
        return JournalEntryInfo(
            id=entry.id,
            entry_number=entry.entry_number,
            entry_date=entry.entry_date,
            description=entry.description,
            source=JournalEntrySource(entry.source),
            status=JournalEntryStatus(entry.status),
            period_id=entry.period_id,
            total_debit=entry.total_debit,
            total_credit=entry.total_credit,
            posted_at=entry.posted_at,
            voided_at=entry.voided_at,
            void_reason=entry.void_reason,
            expense_id=entry.expense_id,
            lines=tuple(
                JournalLineInfo(
                    id=line.id,
                    line_number=line.line_number,
                    account_id=line.account_id,
                    account_code=line.account.code,
                    description=line.description,
                    debit=line.debit,
                    credit=line.credit,
                )
                for line in entry.lines
            ),
        )

    def _load(self, entry_id: UUID, for_update: bool = False) -> JournalEntry:
        stmt = (
            select(JournalEntry)
            .where(
                JournalEntry.id == entry_id,
                JournalEntry.tenant_id == self.tenant_id,
            )
            .options(selectinload(JournalEntry.lines).selectinload(JournalEntryLine.account))
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        entry = self.session.execute(stmt).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def _load_period(self, period_id: UUID, for_update: bool = False) -> AccountingPeriod:
        """Load a tenant period; with for_update, writers serialize against close()."""
        stmt = select(AccountingPeriod).where(
            AccountingPeriod.id == period_id,
            AccountingPeriod.tenant_id == self.tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        period = self.session.execute(stmt).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def _require_open(self, period: AccountingPeriod) -> None:
        if PeriodStatus(period.status) != PeriodStatus.OPEN:
            logger.warning(
                "journal_closed_period_rejected",
                extra={"period_id": str(period.id), "period_name": period.name},
            )
            raise ClosedPeriodError(str(period.id), period.name)

    # -------------------------------------------------------------------------
    # Line validation
    # -------------------------------------------------------------------------

    def _validate_amounts(self, lines: Sequence[LineSpec]) -> tuple[Decimal, Decimal]:
        """Check each line's sides and the entry balance; return the totals."""
        if not lines:
            raise InvalidEntryLineError(0, "an entry needs at least one line")

        total_debit = ZERO
        total_credit = ZERO
        for number, line in enumerate(lines, start=1):
            debit = to_decimal(line.debit)
            credit = to_decimal(line.credit)
            if debit < ZERO or credit < ZERO:
                raise InvalidEntryLineError(number, "amounts cannot be negative")
            if debit > ZERO and credit > ZERO:
                raise InvalidEntryLineError(number, "a line carries a debit or a credit, not both")
            if debit == ZERO and credit == ZERO:
                raise InvalidEntryLineError(number, "a line needs a debit or a credit")
            total_debit += debit
            total_credit += credit

        if abs(total_debit - total_credit) > self._settings.balance_tolerance:
            logger.warning(
                "journal_unbalanced_rejected",
                extra={"total_debit": total_debit, "total_credit": total_credit},
            )
            raise UnbalancedEntryError(total_debit, total_credit)

        return total_debit, total_credit

    def _resolve_accounts(self, lines: Sequence[LineSpec]) -> list[_ResolvedLine]:
        """Load every line account from the tenant; all must exist and be active."""
        ids = {l.account_id for l in lines if l.account_id is not None}
        codes = {l.account_code for l in lines if l.account_id is None and l.account_code}

        by_id: dict[UUID, Account] = {}
        by_code: dict[str, Account] = {}
        if ids:
            for account in self.session.execute(
                select(Account).where(
                    Account.tenant_id == self.tenant_id,
                    Account.id.in_(ids),
                )
            ).scalars():
                by_id[account.id] = account
        if codes:
            for account in self.session.execute(
                select(Account).where(
                    Account.tenant_id == self.tenant_id,
                    Account.code.in_(codes),
                )
            ).scalars():
                by_code[account.code] = account

        resolved = []
        for line in lines:
            if line.account_id is not None:
                account = by_id.get(line.account_id)
                ref = line.account_id
            else:
                account = by_code.get(line.account_code) if line.account_code else None
                ref = line.account_code
            if account is None:
                raise LineAccountNotFoundError(str(ref))
            if not account.is_active:
                raise AccountInactiveError(str(account.id))
            resolved.append(
                _ResolvedLine(
                    account=account,
                    debit=to_decimal(line.debit),
                    credit=to_decimal(line.credit),
                    description=line.description,
                )
            )
        return resolved

    def _build_entry(
        self,
        *,
        entry_date: date,
        description: str,
        source: JournalEntrySource,
        status: JournalEntryStatus,
        period_id: UUID | None,
        lines: list[_ResolvedLine],
        total_debit: Decimal,
        total_credit: Decimal,
        created_by: UUID | None,
        expense_id: UUID | None,
    ) -> JournalEntry:
        entry_number = self._sequences.next_number(
            self._numbering.journal_entry_prefix,
            self._numbering.width,
            seed=self._sequences.seed_from_existing(
                JournalEntry,
                JournalEntry.entry_number,
                self._numbering.journal_entry_prefix,
            ),
        )
        entry = JournalEntry(
            tenant_id=self.tenant_id,
            entry_number=entry_number,
            entry_date=entry_date,
            description=description,
            source=source,
            status=status,
            period_id=period_id,
            total_debit=total_debit,
            total_credit=total_credit,
            created_by=created_by,
            expense_id=expense_id,
            posted_at=self.clock.now() if status == JournalEntryStatus.POSTED else None,
        )
        for number, line in enumerate(lines, start=1):
            entry.lines.append(
                JournalEntryLine(
                    tenant_id=self.tenant_id,
                    account=line.account,
                    account_id=line.account.id,
                    line_number=number,
                    description=line.description,
                    debit=line.debit,
                    credit=line.credit,
                )
            )
        self.session.add(entry)
        self.session.flush()
        return entry

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def create_draft(
        self,
        period_id: UUID,
        lines: Sequence[LineSpec],
        description: str = "",
        entry_date: date | None = None,
        created_by: UUID | None = None,
    ) -> JournalEntryInfo:
        """
        Create a MANUAL entry in DRAFT status.

        Raises:
            InvalidEntryLineError: A line has both, neither or a negative side.
            UnbalancedEntryError: Debits and credits differ.
            PeriodNotFoundError: period_id is unknown to the tenant.
            ClosedPeriodError: The period is CLOSED.
            LineAccountNotFoundError / AccountInactiveError: Bad line account.
        """
        total_debit, total_credit = self._validate_amounts(lines)

        period = self._load_period(period_id, for_update=True)
        self._require_open(period)

        resolved = self._resolve_accounts(lines)

        entry = self._build_entry(
            entry_date=entry_date or self.clock.today(),
            description=description,
            source=JournalEntrySource.MANUAL,
            status=JournalEntryStatus.DRAFT,
            period_id=period.id,
            lines=resolved,
            total_debit=total_debit,
            total_credit=total_credit,
            created_by=created_by,
            expense_id=None,
        )

        logger.info(
            "journal_entry_created",
            extra={
                "entry_number": entry.entry_number,
                "period_id": str(period.id),
                "total_debit": total_debit,
                "line_count": len(resolved),
            },
        )
        return self._to_dto(entry)

    def create_auto_entry(
        self,
        entry_date: date,
        description: str,
        source: JournalEntrySource,
        lines: Sequence[LineSpec],
        expense_id: UUID | None = None,
        created_by: UUID | None = None,
    ) -> JournalEntryInfo:
        """
        Record a system-generated entry, POSTED immediately.

        The period is the tenant period containing ``entry_date``; when none
        does, the entry is stored without a period.

        Raises:
            Same validation errors as create_draft.
            ClosedPeriodError: The covering period is CLOSED.
        """
        total_debit, total_credit = self._validate_amounts(lines)

        period = self.session.execute(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.tenant_id == self.tenant_id,
                AccountingPeriod.start_date <= entry_date,
                AccountingPeriod.end_date >= entry_date,
            )
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is not None:
            self._require_open(period)

        resolved = self._resolve_accounts(lines)

        entry = self._build_entry(
            entry_date=entry_date,
            description=description,
            source=JournalEntrySource(source),
            status=JournalEntryStatus.POSTED,
            period_id=period.id if period is not None else None,
            lines=resolved,
            total_debit=total_debit,
            total_credit=total_credit,
            created_by=created_by,
            expense_id=expense_id,
        )

        logger.info(
            "journal_auto_entry_created",
            extra={
                "entry_number": entry.entry_number,
                "source": JournalEntrySource(source).value,
                "total_debit": total_debit,
            },
        )
        return self._to_dto(entry)

    def post(self, entry_id: UUID) -> JournalEntryInfo:
        """
        Post a DRAFT entry.  From here on the entry is an immutable ledger fact.

        Raises:
            JournalEntryNotFoundError: Unknown entry.
            EntryNotDraftError: Entry is POSTED or VOIDED.
            ClosedPeriodError: The entry's period is CLOSED.
        """
        entry = self._load(entry_id, for_update=True)

        status = JournalEntryStatus(entry.status)
        if status != JournalEntryStatus.DRAFT:
            raise EntryNotDraftError(str(entry_id), status.value)

        if entry.period_id is not None:
            self._require_open(self._load_period(entry.period_id, for_update=True))

        ensure_transition(
            JOURNAL_TRANSITIONS, "JournalEntry", entry.id, status, JournalEntryStatus.POSTED
        )
        entry.status = JournalEntryStatus.POSTED
        entry.posted_at = self.clock.now()
        self.session.flush()

        logger.info("journal_entry_posted", extra={"entry_number": entry.entry_number})
        return self._to_dto(entry)

    def void(self, entry_id: UUID, reason: str) -> JournalEntryInfo:
        """
        Void an entry.  Rows are kept; amounts are untouched.

        Raises:
            JournalEntryNotFoundError: Unknown entry.
            VoidReasonRequiredError: reason is empty.
            EntryAlreadyVoidedError: Entry is already VOIDED.
        """
        entry = self._load(entry_id, for_update=True)

        status = JournalEntryStatus(entry.status)
        if status == JournalEntryStatus.VOIDED:
            raise EntryAlreadyVoidedError(str(entry_id))
        if not reason or not reason.strip():
            raise VoidReasonRequiredError(str(entry_id))

        ensure_transition(
            JOURNAL_TRANSITIONS, "JournalEntry", entry.id, status, JournalEntryStatus.VOIDED
        )
        entry.status = JournalEntryStatus.VOIDED
        entry.voided_at = self.clock.now()
        entry.void_reason = reason.strip()
        self.session.flush()

        logger.info(
            "journal_entry_voided",
            extra={"entry_number": entry.entry_number, "previous_status": status.value},
        )
        return self._to_dto(entry)

    def get(self, entry_id: UUID) -> JournalEntryInfo:
        return self._to_dto(self._load(entry_id))

    def list_entries(
        self,
        status: JournalEntryStatus | None = None,
        period_id: UUID | None = None,
        source: JournalEntrySource | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[JournalEntryInfo]:
        """Entries matching every given filter, newest number first."""
        stmt = (
            select(JournalEntry)
            .where(JournalEntry.tenant_id == self.tenant_id)
            .options(selectinload(JournalEntry.lines).selectinload(JournalEntryLine.account))
        )
        if status is not None:
            stmt = stmt.where(JournalEntry.status == JournalEntryStatus(status).value)
        if period_id is not None:
            stmt = stmt.where(JournalEntry.period_id == period_id)
        if source is not None:
            stmt = stmt.where(JournalEntry.source == JournalEntrySource(source).value)
        if date_from is not None:
            stmt = stmt.where(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(JournalEntry.entry_date <= date_to)
        entries = self.session.execute(
            stmt.order_by(JournalEntry.entry_number.desc())
        ).scalars().all()
        return [self._to_dto(e) for e in entries]
