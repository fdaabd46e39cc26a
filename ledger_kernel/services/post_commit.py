"""
Post-commit hooks -- work that must only run once a transaction committed.

Responsibility:
    Collects callables during a unit of work and runs them after the
    transaction commits.  Used for the expense -> ledger notification.

Architecture position:
    Kernel > Services.  Filled by services, drained by
    ``LedgerKernel.transaction()`` after ``commit()``; discarded on rollback.

Failure modes:
    A failing hook is logged with its traceback and suppressed; the remaining
    hooks still run.  The committed transaction is never affected.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from ledger_kernel.logging_config import get_logger

logger = get_logger("services.post_commit")


@dataclass
class _Deferred:
    name: str
    fn: Callable[..., Any]
    args: tuple = ()


@dataclass
class PostCommitHooks:
    """Ordered queue of deferred callables for one unit of work."""

    _pending: list[_Deferred] = field(default_factory=list)

    def defer(self, name: str, fn: Callable[..., Any], *args: Any) -> None:
        self._pending.append(_Deferred(name=name, fn=fn, args=args))
        logger.debug("post_commit_hook_deferred", extra={"hook": name})

    @property
    def pending(self) -> int:
        return len(self._pending)

    def discard(self) -> None:
        """Drop every pending hook (the transaction rolled back)."""
        if self._pending:
            logger.debug(
                "post_commit_hooks_discarded",
                extra={"count": len(self._pending)},
            )
        self._pending.clear()

    def run(self) -> int:
        """
        Run and clear pending hooks in order.

        Returns:
            Number of hooks that completed without raising.
        """
        pending, self._pending = self._pending, []
        succeeded = 0
        for hook in pending:
            try:
                hook.fn(*hook.args)
            except Exception:
                logger.exception(
                    "post_commit_hook_failed",
                    extra={"hook": hook.name},
                )
                continue
            succeeded += 1
        return succeeded
