"""SQLModel engine singleton and store dependency."""
from sqlmodel import SQLModel, create_engine

from logbook.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},  # SQLite only; safe for FastAPI
        )
        init_db(_engine)
    return _engine


def init_db(engine) -> None:
    """Create all tables and apply pending migrations on the given engine."""
    # Import all models so metadata is populated before create_all
    from logbook.models.airport import Airport  # noqa
    from logbook.models.record import Attachment, FlightRecord, License  # noqa
    from logbook.models.sync import SyncLog  # noqa
    from logbook.models.tombstone import DeletedItem  # noqa
    SQLModel.metadata.create_all(engine)
    from logbook.db.migrations import run_migrations
    run_migrations(engine)


def get_store():
    """FastAPI dependency returning the store adapter over the shared engine."""
    from logbook.db.store import RecordStore
    return RecordStore(get_engine())
