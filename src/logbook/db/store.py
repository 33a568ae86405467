"""
RecordStore: the narrow interface SyncEngine uses against the local store.

Every method opens its own Session, so each call is atomic for one record
(or one chunk, for the airport refresh). Returned models are detached
copies; callers may keep and mutate them freely.

Expected failures raise StoreError subclasses:
  - DuplicateKeyError     insert of an existing id
  - RecordNotFoundError   update/delete of a missing id
  - StoreError            any other SQLAlchemy failure
Lookups return None for a missing id instead of raising.
"""
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from logbook.errors import DuplicateKeyError, RecordNotFoundError, StoreError
from logbook.models.airport import Airport
from logbook.models.record import (
    LICENSE_FIELDS,
    RECORD_FIELDS,
    Attachment,
    FlightRecord,
    License,
)
from logbook.models.sync import SyncLog
from logbook.models.tombstone import (
    KIND_ATTACHMENT,
    KIND_LICENSE,
    KIND_RECORD,
    DeletedItem,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SQLModel)

_KIND_MODELS = {
    KIND_RECORD: FlightRecord,
    KIND_LICENSE: License,
    KIND_ATTACHMENT: Attachment,
}


def now_ts() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _copy(obj: M) -> M:
    return type(obj)(**obj.model_dump())


def _display_date(column):
    """SQL expression turning DD/MM/YYYY into a sortable YYYYMMDD string."""
    return (
        func.substr(column, 7, 4)
        .concat(func.substr(column, 4, 2))
        .concat(func.substr(column, 1, 2))
    )


class RecordStore:
    """Local store adapter over an SQLAlchemy engine."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result) with
                    the logbook schema already created.
        """
        self.engine = engine

    # ─── Flight records ───────────────────────────────────────────────────────

    def count_records(self) -> int:
        with self._session() as s:
            return s.exec(select(func.count()).select_from(FlightRecord)).one()

    def list_records(self) -> List[FlightRecord]:
        """All records, newest first by flight date then departure time.

        Raises:
            StoreError: if the query fails; a partial list is never returned.
        """
        stmt = select(FlightRecord).order_by(
            _display_date(FlightRecord.date).desc(),
            FlightRecord.departure_time.desc(),
        )
        with self._session() as s:
            return list(s.exec(stmt).all())

    def get_record(self, record_id: str) -> Optional[FlightRecord]:
        return self._get(FlightRecord, record_id)

    def insert_record(self, record: FlightRecord) -> FlightRecord:
        return self._insert(record)

    def update_record(self, record: FlightRecord) -> FlightRecord:
        return self._update(record, RECORD_FIELDS)

    def delete_record(self, record_id: str, emit_tombstone: bool = True) -> None:
        self.delete_entity(KIND_RECORD, record_id, emit_tombstone=emit_tombstone)

    # ─── Licenses ─────────────────────────────────────────────────────────────

    def list_licenses(self) -> List[License]:
        stmt = select(License).order_by(License.category, License.name)
        with self._session() as s:
            return list(s.exec(stmt).all())

    def get_license(self, license_id: str) -> Optional[License]:
        return self._get(License, license_id)

    def insert_license(self, lic: License) -> License:
        return self._insert(lic)

    def update_license(self, lic: License) -> License:
        return self._update(lic, LICENSE_FIELDS)

    def delete_license(self, license_id: str, emit_tombstone: bool = True) -> None:
        self.delete_entity(KIND_LICENSE, license_id, emit_tombstone=emit_tombstone)

    # ─── Attachments ──────────────────────────────────────────────────────────

    def list_attachments(self, record_id: Optional[str] = None) -> List[Attachment]:
        stmt = select(Attachment)
        if record_id is not None:
            stmt = stmt.where(Attachment.record_id == record_id)
        with self._session() as s:
            return list(s.exec(stmt.order_by(Attachment.document_name)).all())

    def get_attachment(self, attachment_id: str) -> Optional[Attachment]:
        return self._get(Attachment, attachment_id)

    def insert_attachment(self, attachment: Attachment) -> Attachment:
        return self._insert(attachment)

    def delete_attachment(self, attachment_id: str, emit_tombstone: bool = True) -> None:
        self.delete_entity(KIND_ATTACHMENT, attachment_id, emit_tombstone=emit_tombstone)

    # ─── Deletion / tombstones ────────────────────────────────────────────────

    def delete_entity(self, kind: str, entity_id: str, emit_tombstone: bool = True) -> None:
        """
        Delete one entity by tombstone kind.

        The delete and the tombstone append commit together, so a tombstone
        never exists for a row that is still present.

        Raises:
            RecordNotFoundError: if no entity with that id exists.
            StoreError: on an unknown kind or a database failure.
        """
        model = _KIND_MODELS.get(kind)
        if model is None:
            raise StoreError(f"Unknown entity kind {kind!r}")

        with self._session() as s:
            existing = s.get(model, entity_id)
            if existing is None:
                raise RecordNotFoundError(f"{kind} {entity_id} not found")
            s.delete(existing)
            if emit_tombstone:
                s.add(DeletedItem(id=entity_id, entity_kind=kind, delete_time=str(now_ts())))
            s.commit()

    def list_tombstones(self) -> List[DeletedItem]:
        with self._session() as s:
            return list(s.exec(select(DeletedItem).order_by(DeletedItem.seq)).all())

    def append_tombstone(self, tombstone: DeletedItem) -> None:
        with self._session() as s:
            s.add(_copy(tombstone))
            s.commit()

    def clear_tombstones(self, ids: Optional[Iterable[str]] = None) -> None:
        """Remove all tombstones, or only those whose entity id is in `ids`."""
        stmt = delete(DeletedItem)
        if ids is not None:
            stmt = stmt.where(DeletedItem.id.in_(list(ids)))
        with self._session() as s:
            s.execute(stmt)
            s.commit()

    def clear_pushed_tombstones(self, tombstones: Iterable[DeletedItem]) -> None:
        """Remove exactly the given tombstone rows, matched by their log position.

        A tombstone for the same entity appended after `tombstones` were read
        keeps its own row and is left in place.
        """
        seqs = [t.seq for t in tombstones if t.seq is not None]
        if not seqs:
            return
        with self._session() as s:
            s.execute(delete(DeletedItem).where(DeletedItem.seq.in_(seqs)))
            s.commit()

    # ─── Airports ─────────────────────────────────────────────────────────────

    def count_airports(self) -> int:
        with self._session() as s:
            return s.exec(select(func.count()).select_from(Airport)).one()

    def get_airport(self, code: str) -> Optional[Airport]:
        """Look an airport up by ICAO or IATA code (case-insensitive)."""
        code = (code or "").strip().upper()
        if not code:
            return None
        with self._session() as s:
            airport = s.get(Airport, code)
            if airport is None:
                airport = s.exec(select(Airport).where(Airport.iata == code)).first()
            return airport

    def replace_airports(
        self,
        airports: Sequence[Airport],
        chunk_size: int = 1500,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> int:
        """
        Replace the airports table, committing every `chunk_size` rows.

        The old table is cleared in the same transaction as the first chunk.
        `progress(done, total)` is called after each committed chunk.

        Returns:
            Number of airports stored.
        """
        # Duplicate ICAO codes in the feed: last one wins
        unique = list({airport.icao: airport for airport in airports}.values())
        total = len(unique)
        done = 0
        with self._session() as s:
            s.execute(delete(Airport))
            if total == 0:
                s.commit()
            for start in range(0, total, chunk_size):
                s.add_all(_copy(airport) for airport in unique[start:start + chunk_size])
                s.commit()
                done = min(start + chunk_size, total)
                if progress is not None:
                    progress(done, total)
        logger.info("Stored %d airports", done)
        return done

    # ─── Sync audit log ───────────────────────────────────────────────────────

    def start_sync_log(self, category: str) -> SyncLog:
        log = SyncLog(category=category, started_at=_utcnow(), status="running")
        with self._session() as s:
            s.add(log)
            s.commit()
            s.refresh(log)
        return log

    def finish_sync_log(
        self,
        log: SyncLog,
        *,
        status: str,
        pulled: int = 0,
        updated: int = 0,
        pushed: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        with self._session() as s:
            db_log = s.get(SyncLog, log.id)
            db_log.status = status
            db_log.finished_at = _utcnow()
            db_log.pulled = pulled
            db_log.updated = updated
            db_log.pushed = pushed
            db_log.error_message = error_message
            s.add(db_log)
            s.commit()

    def latest_sync_log(self, category: Optional[str] = None) -> Optional[SyncLog]:
        stmt = select(SyncLog)
        if category is not None:
            stmt = stmt.where(SyncLog.category == category)
        with self._session() as s:
            return s.exec(stmt.order_by(SyncLog.id.desc())).first()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Session scope that turns SQLAlchemy failures into StoreError."""
        # Loaded attributes stay readable once the session is closed
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateKeyError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(str(exc)) from exc
        finally:
            session.close()

    def _get(self, model: Type[M], key: str) -> Optional[M]:
        with self._session() as s:
            return s.get(model, key)

    def _insert(self, obj: M) -> M:
        row = _copy(obj)
        if getattr(row, "update_time", None) == 0:
            row.update_time = now_ts()
        with self._session() as s:
            if s.get(type(row), row.id) is not None:
                raise DuplicateKeyError(f"{type(row).__tablename__} {row.id} already exists")
            s.add(row)
            s.commit()
        return row

    def _update(self, obj: M, fields: List[str]) -> M:
        with self._session() as s:
            existing = s.get(type(obj), obj.id)
            if existing is None:
                raise RecordNotFoundError(f"{type(obj).__tablename__} {obj.id} not found")
            for name in fields:
                setattr(existing, name, getattr(obj, name))
            if existing.update_time == 0:
                existing.update_time = now_ts()
            s.add(existing)
            s.commit()
            return existing
