"""Database layer - engine, base classes and the transaction primitive."""

from dues_kernel.db.base import Base, LedgerBase, new_id
from dues_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    run_in_transaction,
    session_scope,
    translate_store_errors,
)

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "create_tables",
    "run_in_transaction",
    "session_scope",
    "translate_store_errors",
    "Base",
    "LedgerBase",
    "new_id",
]
