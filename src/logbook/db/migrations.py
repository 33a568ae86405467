"""
Database migrations for the logbook store.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution and
(re)creates the display view. Each migration is idempotent: columns are only
added if absent, the view is dropped and recreated.

Called automatically from init_db() after create_all() so both fresh
installs and existing DBs are handled without manual steps.
"""
from sqlalchemy import text

# Display view: adds m_date (YYYYMMDD) so lists sort chronologically even
# though `date` is stored as DD/MM/YYYY.
LOGBOOK_VIEW = """
CREATE VIEW logbook_view AS
SELECT *,
       substr(date, 7, 4) || substr(date, 4, 2) || substr(date, 1, 2) AS m_date
FROM logbook
"""


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. Supports SQLite only (uses PRAGMA
    table_info).

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    with engine.connect() as conn:
        # Licensing: scanned document support came after the first schema
        _add_column_if_missing(conn, "licensing", "document_name", "VARCHAR DEFAULT ''")
        _add_column_if_missing(conn, "licensing", "document", "BLOB DEFAULT x''")

        # FlightRecord: simulator columns came after the first schema
        _add_column_if_missing(conn, "logbook", "sim_type", "VARCHAR DEFAULT ''")
        _add_column_if_missing(conn, "logbook", "sim_time", "VARCHAR DEFAULT ''")

        conn.execute(text("DROP VIEW IF EXISTS logbook_view"))
        conn.execute(text(LOGBOOK_VIEW))

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name, as SQLite stores it.
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "VARCHAR DEFAULT ''".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
