"""
Database engine and session management for the capital ledger.
This module is separate from the services to avoid circular imports.
Uses SQLModel on PostgreSQL in production and SQLite for local use.
SQLite connections run in Write-Ahead Logging (WAL) mode and open every
transaction with BEGIN IMMEDIATE, since SQLite has no row-level locks.
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional
import logging

from sqlalchemy import event, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import SQLModel, Session, create_engine, select

from config import get_settings
from errors import TransactionConflictError

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get or create the database engine for the configured store."""
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.is_sqlite:
            _engine = create_engine(
                settings.database_url,
                echo=settings.db_echo,
                connect_args={
                    "check_same_thread": False,  # Allow use across threads
                    "timeout": settings.lock_timeout_ms / 1000,
                }
            )
            _install_sqlite_locking(_engine, settings.lock_timeout_ms)
        elif settings.is_postgres:
            _engine = create_engine(
                settings.database_url,
                echo=settings.db_echo,
                pool_pre_ping=True,
                connect_args={
                    "options": f"-c lock_timeout={settings.lock_timeout_ms}",
                }
            )
        else:
            _engine = create_engine(settings.database_url, echo=settings.db_echo)
        logger.info(f"Database engine created for {_engine.url.get_backend_name()}")
    return _engine


def _install_sqlite_locking(engine: Engine, busy_timeout_ms: int):
    """Enable WAL mode and writer-locking transactions on every SQLite connection."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to the "begin" listener below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
            cursor.execute("PRAGMA journal_mode=WAL")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def reset_engine():
    """Dispose of the cached engine so the next call rebuilds it from settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def init_db():
    """Initialize the database and create all tables."""
    from models import UserCapital, Position, Transaction  # noqa: F401

    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database initialized")


def get_session() -> Session:
    """Get a new database session."""
    return Session(get_engine())


@contextmanager
def ledger_transaction() -> Iterator[Session]:
    """
    Run a block of ledger mutations as one database transaction.

    Commits when the block exits normally and rolls back on any error, so a
    balance change, a position change and their Transaction row either all
    persist or none do. Lock-wait timeouts, serialization failures and
    constraint violations reported by the store surface as
    TransactionConflictError. Nothing is retried here.

    Yields:
        Session whose objects stay readable after commit
    """
    session = Session(get_engine(), expire_on_commit=False)
    try:
        yield session
        session.commit()
    except (OperationalError, IntegrityError) as e:
        session.rollback()
        logger.error(f"Ledger transaction rolled back by the store: {e.orig}")
        raise TransactionConflictError(str(e.orig)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def insert_if_absent(session: Session, model, values: dict, conflict_columns: List[str]) -> bool:
    """
    Insert a row unless one with the same key already exists.

    Uses INSERT ... ON CONFLICT DO NOTHING on PostgreSQL and SQLite. A
    concurrent insert of the same key waits for the other transaction and
    then does nothing, so callers can follow up with a locking select
    instead of failing on the unique constraint.

    Args:
        session: Session of the ledger transaction
        model: SQLModel table class
        values: Column values of the new row
        conflict_columns: Columns of the primary key or unique constraint

    Returns:
        True if this call inserted the row
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        statement = postgresql.insert(model).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
    elif dialect == "sqlite":
        statement = sqlite.insert(model).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
    else:
        existing = select(model).where(*(getattr(model, column) == values[column] for column in conflict_columns))
        if session.exec(existing).first() is not None:
            return False
        statement = insert(model).values(**values)

    result = session.connection().execute(statement)
    return result.rowcount == 1
