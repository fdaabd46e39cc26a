"""Database layer - engine, base classes and column types."""

from ledger_kernel.db.base import UUID, Base, TenantScopedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    run_in_transaction,
    session_scope,
)
from ledger_kernel.db.types import Money, round_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "create_tables",
    "session_scope",
    "run_in_transaction",
    "Base",
    "TenantScopedBase",
    "UUIDString",
    "UUID",
    "Money",
    "round_money",
]
