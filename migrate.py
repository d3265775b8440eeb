"""
Database migration script for the capital ledger.
Brings databases created by earlier versions up to the current schema.
Every migration is idempotent.
"""

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError, ProgrammingError

from db_engine import get_engine, init_db

TRANSACTIONS_TABLE = "transactions"
TRANSACTIONS_INDEX = "ix_transactions_user_symbol_timestamp"


def _column_names(table: str) -> list:
    inspector = inspect(get_engine())
    return [col["name"] for col in inspector.get_columns(table)]


def _add_column_if_missing(table: str, column: str, ddl: str) -> bool:
    """Add a column to a table unless it already exists. Returns True if added."""
    inspector = inspect(get_engine())
    if not inspector.has_table(table):
        print(f"Table '{table}' does not exist. Nothing to migrate.")
        return False

    if column in _column_names(table):
        print(f"✓ Column '{column}' already exists in {table} table.")
        return False

    print(f"Adding '{column}' column to {table} table...")
    try:
        with get_engine().begin() as conn:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
    except (OperationalError, ProgrammingError) as e:
        print(f"Error during migration: {e}")
        raise
    print(f"✓ Added '{column}' column successfully.")
    return True


def migrate_transactions_add_asset_type() -> bool:
    """Add asset_type column to transactions table if it doesn't exist."""
    return _add_column_if_missing(TRANSACTIONS_TABLE, "asset_type", "VARCHAR NOT NULL DEFAULT 'stock'")


def migrate_transactions_add_notes() -> bool:
    """Add notes column to transactions table if it doesn't exist."""
    return _add_column_if_missing(TRANSACTIONS_TABLE, "notes", "VARCHAR")


def migrate_transactions_history_index() -> bool:
    """
    Create the (user_id, symbol, timestamp) index used by history queries.
    Returns True if the index was created.
    """
    inspector = inspect(get_engine())
    if not inspector.has_table(TRANSACTIONS_TABLE):
        print(f"Table '{TRANSACTIONS_TABLE}' does not exist. Nothing to migrate.")
        return False

    existing = {index["name"] for index in inspector.get_indexes(TRANSACTIONS_TABLE)}
    if TRANSACTIONS_INDEX in existing:
        print(f"✓ Index '{TRANSACTIONS_INDEX}' already exists.")
        return False

    print(f"Creating '{TRANSACTIONS_INDEX}' index...")
    with get_engine().begin() as conn:
        conn.execute(text(
            f"CREATE INDEX {TRANSACTIONS_INDEX} "
            f"ON {TRANSACTIONS_TABLE} (user_id, symbol, timestamp)"
        ))
    print(f"✓ Created '{TRANSACTIONS_INDEX}' index successfully.")
    return True


def run_all_migrations():
    """Create missing tables, then run all pending migrations."""
    print("=" * 60)
    print("Capital Ledger Database Migration")
    print("=" * 60)

    init_db()
    migrate_transactions_add_asset_type()
    migrate_transactions_add_notes()
    migrate_transactions_history_index()

    print("=" * 60)
    print("Migration complete!")
    print("=" * 60)


if __name__ == "__main__":
    run_all_migrations()
