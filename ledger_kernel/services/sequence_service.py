"""
SequenceService -- monotonic document numbers via locked counter rows.

Responsibility:
    Provides strictly increasing per-tenant sequence values for every
    document series (journal entries, expenses, POS sales, withholding
    certificates per year).  Uses a dedicated counter table with row-level
    locking (``SELECT ... FOR UPDATE``) so two concurrent transactions can
    never compute the same "next" number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by JournalService, ExpenseService, SaleService and
    WithholdingService.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  The aggregate-max-plus-one query is never used to
      allocate.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value, so series stay
      gapless.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).

Audit relevance:
    Allocation is logged at DEBUG level with the series name and value.
"""

from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.numbering import format_number, parse_number, sequence_name
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")

# Returns the highest value already used by a series before its counter
# existed (0 when none), so numbering continues after imported documents.
SeedFn = Callable[[], int]


class SequenceService(BaseService[SequenceCounter]):
    """
    Service for generating transactional per-tenant sequence numbers.

    Contract:
        Accepts a series name and returns the next strictly-monotonic
        integer value for the bound tenant.  The increment is
        transactional -- it is only committed when the caller's
        transaction commits.

    Guarantees:
        - Concurrency safety: ``SELECT ... FOR UPDATE`` serializes
          concurrent allocations for the same (tenant, series).
        - Gapless under normal operation: on rollback the value is
          returned to the counter.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def _locked_counter(self, name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.tenant_id == self.tenant_id,
                SequenceCounter.name == name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, name: str, seed: SeedFn | None = None) -> int:
        """
        Get the next value for a named series.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for this (tenant, series).
            - The counter row stays locked until the transaction ends.

        Args:
            name: Series name, e.g. ``"GTO"`` or ``"CRT-2025"``.
            seed: Called once, only when the counter row does not exist
                yet, to start the series after pre-existing numbers.
        """
        counter = self._locked_counter(name)

        if counter is None:
            start = seed() if seed is not None else 0
            # Savepoint so a lost creation race does not roll back other work
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(
                    tenant_id=self.tenant_id,
                    name=name,
                    current_value=start + 1,
                )
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": name, "value": counter.current_value},
                )
                return counter.current_value
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked_counter(name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def next_number(
        self,
        prefix: str,
        width: int,
        scope: str | int | None = None,
        seed: SeedFn | None = None,
    ) -> str:
        """Allocate and format the next document number, e.g. ``CRT-2025-00001``."""
        value = self.next_value(sequence_name(prefix, scope), seed=seed)
        return format_number(prefix, value, width=width, scope=scope)

    def seed_from_existing(
        self,
        model: type,
        number_column,
        prefix: str,
        scope: str | int | None = None,
    ) -> SeedFn:
        """
        Seed that continues after the highest number already stored.

        Only consulted when a counter row is first created, under the
        counter's unique constraint, so it never races with allocation.
        """

        def _seed() -> int:
            series = sequence_name(prefix, scope)
            numbers = self.session.execute(
                select(number_column).where(
                    model.tenant_id == self.tenant_id,
                    number_column.like(f"{series}-%"),
                )
            ).scalars()
            values = [parse_number(n, prefix, scope) for n in numbers]
            return max((v for v in values if v is not None), default=0)

        return _seed

    def current_value(self, name: str) -> int | None:
        """Current value of a series without incrementing, or None."""
        return self.session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.tenant_id == self.tenant_id,
                SequenceCounter.name == name,
            )
        ).scalar_one_or_none()
