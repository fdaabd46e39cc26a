"""
PeriodService -- accounting period lifecycle.

Responsibility:
    Creates accounting periods and closes them.  A period accepts manual
    journal drafts and postings while OPEN; closing is blocked while any
    DRAFT entry still references it, and CLOSED is terminal.

Architecture position:
    Kernel > Services -- imperative shell.
    Consulted by JournalService before every draft, post and automatic
    entry.

Invariants enforced:
    - end_date > start_date.
    - No two periods of a tenant overlap.  Two ranges overlap if
      existing.start <= new.end AND existing.end >= new.start.
    - A period with DRAFT entries cannot close.
    - No reopen: the transition table has no edge out of CLOSED.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidPeriodRangeError: end_date <= start_date.
    - PeriodOverlapError: date range intersects an existing period.
    - PeriodNotFoundError: id unknown to the tenant.
    - PeriodAlreadyClosedError: second close attempt.
    - PeriodHasDraftEntriesError: DRAFT entries still reference the period.

Audit relevance:
    Creation and close are logged with the period name, dates and actor.
    Rejected closes are logged at WARNING level.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import PeriodInfo
from ledger_kernel.domain.enums import JournalEntryStatus, PeriodStatus
from ledger_kernel.domain.transitions import PERIOD_TRANSITIONS, ensure_transition
from ledger_kernel.exceptions import (
    InvalidPeriodRangeError,
    PeriodAlreadyClosedError,
    PeriodHasDraftEntriesError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.models.period import AccountingPeriod
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[AccountingPeriod]):
    """
    Service for managing accounting period lifecycle.

    Contract:
        Lifecycle methods flush within the caller's transaction and return
        frozen ``PeriodInfo`` DTOs.

    Guarantees:
        - Concurrent close attempts serialize on ``SELECT ... FOR UPDATE``
          of the period row, so exactly one succeeds.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT offer a reopen operation.
    """

    def _to_dto(self, period: AccountingPeriod) -> PeriodInfo:
        return PeriodInfo(
            id=period.id,
            name=period.name,
            start_date=period.start_date,
            end_date=period.end_date,
            status=PeriodStatus(period.status),
            closed_at=period.closed_at,
            closed_by=period.closed_by,
            notes=period.notes,
        )

    def _load(self, period_id: UUID, for_update: bool = False) -> AccountingPeriod:
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

    def create(
        self,
        name: str,
        start_date: date,
        end_date: date,
        notes: str | None = None,
    ) -> PeriodInfo:
        """
        Create a new OPEN period.

        Raises:
            InvalidPeriodRangeError: If end_date <= start_date.
            PeriodOverlapError: If the range intersects an existing period.
        """
        if end_date <= start_date:
            raise InvalidPeriodRangeError(start_date, end_date)

        self._validate_no_overlap(name, start_date, end_date)

        period = AccountingPeriod(
            tenant_id=self.tenant_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            notes=notes,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period_id": str(period.id),
                "period_name": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return self._to_dto(period)

    def _validate_no_overlap(self, name: str, start_date: date, end_date: date) -> None:
        overlapping = self.session.execute(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.tenant_id == self.tenant_id,
                AccountingPeriod.start_date <= end_date,
                AccountingPeriod.end_date >= start_date,
            )
            .limit(1)
        ).scalar_one_or_none()

        if overlapping is not None:
            logger.warning(
                "period_overlap_rejected",
                extra={"period_name": name, "existing_period": overlapping.name},
            )
            raise PeriodOverlapError(name, overlapping.name)

    def draft_count(self, period_id: UUID) -> int:
        """Number of DRAFT journal entries referencing the period."""
        return self.session.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.tenant_id == self.tenant_id,
                JournalEntry.period_id == period_id,
                JournalEntry.status == JournalEntryStatus.DRAFT.value,
            )
        ).scalar_one()

    def close(self, period_id: UUID, actor_id: UUID) -> PeriodInfo:
        """
        Close a period.

        Postconditions:
            - status is CLOSED, closed_at is the clock's now, closed_by is
              actor_id.

        Raises:
            PeriodNotFoundError: If the period doesn't exist in the tenant.
            PeriodAlreadyClosedError: If the period is already CLOSED.
            PeriodHasDraftEntriesError: If DRAFT entries reference it.
        """
        period = self._load(period_id, for_update=True)

        if PeriodStatus(period.status) == PeriodStatus.CLOSED:
            logger.warning(
                "period_close_rejected",
                extra={"period_id": str(period_id), "reason": "already_closed"},
            )
            raise PeriodAlreadyClosedError(str(period_id))

        drafts = self.draft_count(period.id)
        if drafts > 0:
            logger.warning(
                "period_close_rejected",
                extra={
                    "period_id": str(period_id),
                    "reason": "draft_entries",
                    "draft_count": drafts,
                },
            )
            raise PeriodHasDraftEntriesError(str(period_id), drafts)

        ensure_transition(
            PERIOD_TRANSITIONS,
            "AccountingPeriod",
            period.id,
            PeriodStatus(period.status),
            PeriodStatus.CLOSED,
        )
        period.status = PeriodStatus.CLOSED
        period.closed_at = self.clock.now()
        period.closed_by = actor_id
        self.session.flush()

        logger.info(
            "period_closed",
            extra={
                "period_id": str(period.id),
                "period_name": period.name,
                "actor_id": str(actor_id),
            },
        )
        return self._to_dto(period)

    def get(self, period_id: UUID) -> PeriodInfo:
        return self._to_dto(self._load(period_id))

    def list_periods(self, status: PeriodStatus | None = None) -> list[PeriodInfo]:
        """Periods ordered by start date, newest first."""
        stmt = select(AccountingPeriod).where(
            AccountingPeriod.tenant_id == self.tenant_id
        )
        if status is not None:
            stmt = stmt.where(AccountingPeriod.status == PeriodStatus(status).value)
        periods = self.session.execute(
            stmt.order_by(AccountingPeriod.start_date.desc())
        ).scalars().all()
        return [self._to_dto(p) for p in periods]

    def find_for_date(self, entry_date: date) -> PeriodInfo | None:
        """The tenant period containing ``entry_date``, if any."""
        period = self.session.execute(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.tenant_id == self.tenant_id,
                AccountingPeriod.start_date <= entry_date,
                AccountingPeriod.end_date >= entry_date,
            )
            .limit(1)
        ).scalar_one_or_none()
        return self._to_dto(period) if period is not None else None
