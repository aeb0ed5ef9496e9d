"""
Module: dues_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration and the record store's transaction primitive.
Architecture position: Kernel > DB.  May import from db/base.py, exceptions
    and logging_config.  MUST NOT import from services/, selectors/, domain/,
    or outer layers (except create_tables, which imports models).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (SELECT ... FOR UPDATE) where writers must be serialized.
    - SQLite is supported for local use and tests.  An in-memory URL shares
      one connection (StaticPool) so every session sees the same database.
    - On a SQLite file, pysqlite's own transaction handling is switched off
      and BEGIN is emitted by this module: DEFERRED for reads, IMMEDIATE for
      run_in_transaction(), so writers take the database write lock before
      their first read and concurrent writers serialize.
    - run_in_transaction() is all-or-nothing: commit on success, rollback on
      any failure.  Conflicts (serialization failure, deadlock, busy
      database) retry the WHOLE unit of work; nothing is retried piecemeal.
    - Every SQLAlchemy failure leaving this module is a StoreError.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - StoreError when the store is unreachable, a statement fails, or the
      conflict retry budget is exhausted.
"""

import atexit
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Generator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from dues_kernel.db.base import SINGLE_ACTIVE_SEMESTER_INDEX
from dues_kernel.exceptions import DuesKernelError, StoreError
from dues_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

T = TypeVar("T")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

# SQLSTATE codes for conflicts that are safe to retry as a whole transaction
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})

# Execution option naming how a SQLite transaction begins (DEFERRED or IMMEDIATE)
SQLITE_BEGIN_MODE = "dues_sqlite_begin"


def _install_sqlite_begin(engine: Engine) -> None:
    """
    Take over BEGIN from pysqlite (SQLAlchemy's pysqlite transaction recipe).

    pysqlite defers BEGIN until the first DML statement, so a SELECT ...
    FOR UPDATE (a no-op on SQLite) locks nothing.  A connection carrying the
    SQLITE_BEGIN_MODE execution option begins with that mode instead.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN_MODE, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level _engine and _SessionFactory are initialized.
        All subsequent get_engine/get_session calls use this engine.

    Args:
        database_url: PostgreSQL or SQLite URL.
        echo: If True, log all SQL statements.
        pool_size: Number of pooled connections (PostgreSQL only).
        max_overflow: Max connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use (PostgreSQL only).
        pool_timeout: Seconds to wait for a pooled connection.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            _engine = create_engine(
                database_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            _engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
            _install_sqlite_begin(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": echo,
        },
    )

    return _engine


_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The factory bound to the current engine; RuntimeError before init."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def translate_store_errors(operation: str) -> Generator[None, None, None]:
    """
    Re-raise any SQLAlchemy failure inside the block as StoreError.

    Conflicts keep a retryable flag so run_in_transaction can re-run the
    whole unit of work.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "store_operation_failed",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise StoreError(operation, str(exc), retryable=is_retryable_conflict(exc)) from exc


@contextmanager
def session_scope(
    session_factory: Callable[[], Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Session for a read or a single unit of work: commit on clean exit,
    rollback on any exception (re-raised), always closed.
    """
    session = (session_factory or get_session)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def is_retryable_conflict(exc: SQLAlchemyError) -> bool:
    """True for conflicts that a fresh attempt of the same transaction can clear."""
    if not isinstance(exc, DBAPIError):
        return False
    sqlstate = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    if isinstance(exc, IntegrityError):
        # A concurrent rollover activated a semester first; re-running sees it
        return SINGLE_ACTIVE_SEMESTER_INDEX in message or "semesters.is_active" in message
    return "deadlock" in message or "database is locked" in message


def run_in_transaction(
    work: Callable[[Session], T],
    *,
    operation: str,
    session_factory: Callable[[], Session] | None = None,
    max_retries: int = 3,
    retry_backoff_seconds: float = 0.05,
) -> T:
    """
    Run ``work(session)`` in one transaction and commit it.

    Every attempt gets a fresh session.  Ledger errors roll back and
    propagate unchanged.  A conflict, whether raw from SQLAlchemy or a
    StoreError already flagged ``retryable``, rolls back and re-runs the
    whole of ``work`` up to ``max_retries`` more times with linear backoff.
    Any other SQLAlchemy failure rolls back and raises StoreError.

    Returns:
        Whatever ``work`` returned on the attempt that committed.
    """
    factory = session_factory or get_session
    attempt = 1
    while True:
        session = factory()
        try:
            # Writers take the SQLite write lock up front; other dialects ignore this
            session.connection(execution_options={SQLITE_BEGIN_MODE: "IMMEDIATE"})
            result = work(session)
            session.commit()
            logger.debug("transaction_committed", extra={"operation": operation, "attempt": attempt})
            return result
        except StoreError as exc:
            session.rollback()
            if not (exc.retryable and attempt <= max_retries):
                raise
        except DuesKernelError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            if not (is_retryable_conflict(exc) and attempt <= max_retries):
                logger.error(
                    "transaction_failed",
                    extra={"operation": operation, "attempt": attempt, "error_type": type(exc).__name__},
                )
                raise StoreError(operation, str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.warning(
            "transaction_retry",
            extra={"operation": operation, "attempt": attempt, "max_retries": max_retries},
        )
        time.sleep(retry_backoff_seconds * attempt)
        attempt += 1


def _metadata():
    # Importing the models package registers every table on Base.metadata
    import dues_kernel.models  # noqa: F401
    from dues_kernel.db.base import Base

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    _metadata().create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every ledger table. Tests only."""
    _metadata().drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_at_exit() -> None:
    if _engine is not None:
        _engine.dispose()
