"""
SyncEngine: reconciles the local logbook store with the sync server.

A full cycle (sync()) runs the categories in this order:
  1. Tombstones   pull remote deletions → apply locally → push local ones
  2. Records      pull flat records → last-write-wins merge → push nested
  3. Licenses     pull → last-write-wins merge → push
  4. Attachments  download missing → upload missing

Each category walks IDLE → PULLING → MERGING → PUSHING → IDLE and returns a
SyncReport. Any TransportError, DecodeError or StoreError moves the category
to FAILED, stops it, and aborts the rest of the cycle. Nothing raises out of
the engine; the report carries a short message naming the failing step.

Merges are committed per item, so a failed category may be partially
applied. Retries converge because every decision compares update_time:
  - remote id unknown locally          → insert verbatim
  - local.update_time < remote         → replace the whole record
  - local.update_time >= remote        → keep local (ties never overwrite)
Remote items whose id is tombstoned (pending locally, or deleted remotely in
this cycle) are never inserted, so a stale pull cannot resurrect them.

The engine owns no persistent state besides the SyncLog audit rows it asks
the store to write.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set

from logbook.db.store import RecordStore
from logbook.errors import (
    DecodeError,
    RecordNotFoundError,
    StoreError,
    TransportError,
)
from logbook.models.sync import SyncLog
from logbook.models.tombstone import (
    ENTITY_KINDS,
    KIND_ATTACHMENT,
    KIND_LICENSE,
    KIND_RECORD,
    DeletedItem,
)
from logbook.sync import wire
from logbook.sync.settings_store import SyncSettings
from logbook.sync.transport import RemoteTransport

logger = logging.getLogger(__name__)

SYNC_FLIGHT_RECORDS = "/sync/flightrecords"
SYNC_DELETED = "/sync/deleted"
SYNC_AIRPORTS = "/sync/airports"
SYNC_LICENSING = "/sync/licensing"
SYNC_ATTACHMENTS_ALL = "/sync/attachments/all"
SYNC_ATTACHMENT = "/sync/attachments/{id}"
SYNC_ATTACHMENTS_UPLOAD = "/sync/attachments/upload"

AIRPORTS_CHUNK_SIZE = 1500

# One cycle at a time against the local store
_cycle_lock = asyncio.Lock()


def sync_in_progress() -> bool:
    return _cycle_lock.locked()


class SyncState(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"
    MERGING = "merging"
    PUSHING = "pushing"
    FAILED = "failed"


_STEP_VERBS = {
    SyncState.PULLING: "downloading",
    SyncState.MERGING: "storing",
    SyncState.PUSHING: "uploading",
}


@dataclass
class SyncReport:
    """Outcome of one sync category run."""

    category: str
    state: SyncState = SyncState.IDLE
    pulled: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    pushed: int = 0
    deleted_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state != SyncState.FAILED

    @property
    def changed(self) -> int:
        return self.inserted + self.updated + self.deleted

    def fail(self, exc: Exception) -> None:
        verb = _STEP_VERBS.get(self.state, "syncing")
        self.error = f"Error {verb} {self.category}: {exc}"
        self.state = SyncState.FAILED


class SyncEngine:
    """Orchestrates one sync cycle between a RecordStore and the server."""

    def __init__(
        self,
        settings: SyncSettings,
        store: RecordStore,
        transport: Optional[RemoteTransport] = None,
        notify: Optional[Callable[[str], None]] = None,
        airports_chunk_size: int = AIRPORTS_CHUNK_SIZE,
    ):
        """
        Args:
            settings: Sync settings for this cycle.
            store: Local store adapter; used exclusively for the cycle.
            transport: RemoteTransport (or AsyncMock in tests). Built from
                       `settings` when omitted.
            notify: Receives short user-facing messages.
            airports_chunk_size: Rows per commit during the airport refresh.
        """
        self.settings = settings
        self.store = store
        self.transport = transport or RemoteTransport(settings)
        self.notify = notify
        self.airports_chunk_size = airports_chunk_size

    # ─── Full cycle ───────────────────────────────────────────────────────────

    async def sync(self) -> List[SyncReport]:
        """Run every category in order, stopping at the first failure."""
        reports: List[SyncReport] = []
        async with _cycle_lock:
            tombstones = await self.sync_deleted_items()
            reports.append(tombstones)
            if not tombstones.ok:
                return reports

            deleted = set(tombstones.deleted_ids)
            for step in (self.update_records, self.sync_licenses, self.sync_attachments):
                report = await step(skip_ids=deleted)
                reports.append(report)
                if not report.ok:
                    break
        return reports

    # ─── Tombstones ───────────────────────────────────────────────────────────

    async def sync_deleted_items(self) -> SyncReport:
        """Pull remote tombstones, apply them, then push local tombstones."""
        report = SyncReport(category="deleted items")
        log = self._start("tombstones")
        try:
            report.state = SyncState.PULLING
            payload = await self.transport.get(SYNC_DELETED)
            remote = wire.decode_list(_as_list(payload), wire.decode_tombstone)
            report.pulled = len(remote)

            report.state = SyncState.MERGING
            self.reconcile_tombstones(remote, report)

            report.state = SyncState.PUSHING
            local = self.store.list_tombstones()
            if local:
                await self.transport.post(
                    SYNC_DELETED, [wire.encode_tombstone(t) for t in local]
                )
                # Only reached on a 200 acknowledgement
                self.store.clear_pushed_tombstones(local)
                report.pushed = len(local)
                # The server may still list these entities until it applies them
                report.deleted_ids = sorted(set(report.deleted_ids) | {t.id for t in local})

            report.state = SyncState.IDLE
        except (TransportError, DecodeError, StoreError) as exc:
            report.fail(exc)

        self._finish(report, log)
        return report

    def reconcile_tombstones(
        self, tombstones: Iterable[DeletedItem], report: Optional[SyncReport] = None
    ) -> Set[str]:
        """
        Delete every local entity named by a remote tombstone.

        Deletions here never emit a local tombstone, otherwise the same
        deletion would bounce between peers forever.

        Returns:
            Ids of all tombstones of a known kind, deleted locally or not.
        """
        report = report or SyncReport(category="deleted items")
        applied: Set[str] = set()
        for item in tombstones:
            if item.entity_kind not in ENTITY_KINDS:
                logger.info("Ignoring tombstone %s of unknown kind %r", item.id, item.entity_kind)
                report.skipped += 1
                continue
            applied.add(item.id)
            try:
                self.store.delete_entity(item.entity_kind, item.id, emit_tombstone=False)
                report.deleted += 1
            except RecordNotFoundError:
                report.skipped += 1
        report.deleted_ids = sorted(set(report.deleted_ids) | applied)
        return applied

    # ─── Flight records ───────────────────────────────────────────────────────

    async def update_records(self, skip_ids: Iterable[str] = ()) -> SyncReport:
        """Pull flight records, merge them, push the merged local state."""
        report = SyncReport(category="flight records")
        log = self._start("records")
        try:
            report.state = SyncState.PULLING
            payload = await self.transport.get(SYNC_FLIGHT_RECORDS)
            remote = wire.decode_list(_as_list(payload), wire.decode_record)
            report.pulled = len(remote)
            self._notify(f"{len(remote)} record(s) downloaded, synchronizing...")

            report.state = SyncState.MERGING
            self.reconcile(remote, report, skip_ids=skip_ids, kind=KIND_RECORD)

            report.state = SyncState.PUSHING
            local = self.store.list_records()
            await self.transport.post(
                SYNC_FLIGHT_RECORDS, [wire.encode_nested_record(r) for r in local]
            )
            report.pushed = len(local)

            report.state = SyncState.IDLE
            self._notify(f"{report.inserted + report.updated} record(s) have been updated")
        except (TransportError, DecodeError, StoreError) as exc:
            report.fail(exc)

        self._finish(report, log)
        return report

    def reconcile(
        self,
        remote_items: Iterable,
        report: Optional[SyncReport] = None,
        skip_ids: Iterable[str] = (),
        kind: str = KIND_RECORD,
    ) -> SyncReport:
        """
        Last-write-wins merge of remote items into the local store.

        Items are merged one at a time; the first StoreError propagates and
        leaves earlier merges committed.

        Args:
            remote_items: Decoded FlightRecord or License instances.
            report: Report to accumulate counters into.
            skip_ids: Ids deleted remotely during this cycle.
            kind: KIND_RECORD or KIND_LICENSE.
        """
        report = report or SyncReport(category=kind)
        if kind == KIND_RECORD:
            get, insert, update = (
                self.store.get_record, self.store.insert_record, self.store.update_record
            )
        elif kind == KIND_LICENSE:
            get, insert, update = (
                self.store.get_license, self.store.insert_license, self.store.update_license
            )
        else:
            raise ValueError(f"Cannot merge entities of kind {kind!r}")

        skip = set(skip_ids) | self._pending_tombstone_ids(kind)
        for remote in remote_items:
            if remote.id in skip:
                report.skipped += 1
                continue
            local = get(remote.id)
            if local is None:
                insert(remote)
                report.inserted += 1
            elif local.update_time < remote.update_time:
                update(remote)
                report.updated += 1
            else:
                report.skipped += 1
        return report

    # ─── Licenses ─────────────────────────────────────────────────────────────

    async def sync_licenses(self, skip_ids: Iterable[str] = ()) -> SyncReport:
        report = SyncReport(category="licenses")
        log = self._start("licenses")
        try:
            report.state = SyncState.PULLING
            payload = await self.transport.get(SYNC_LICENSING)
            remote = wire.decode_list(_as_list(payload), wire.decode_license)
            report.pulled = len(remote)

            report.state = SyncState.MERGING
            self.reconcile(remote, report, skip_ids=skip_ids, kind=KIND_LICENSE)

            report.state = SyncState.PUSHING
            local = self.store.list_licenses()
            await self.transport.post(SYNC_LICENSING, [wire.encode_license(lic) for lic in local])
            report.pushed = len(local)

            report.state = SyncState.IDLE
        except (TransportError, DecodeError, StoreError) as exc:
            report.fail(exc)

        self._finish(report, log)
        return report

    # ─── Attachments ──────────────────────────────────────────────────────────

    async def sync_attachments(self, skip_ids: Iterable[str] = ()) -> SyncReport:
        """
        Attachments never change once created: download the ones missing
        locally, upload the ones the server does not list.
        """
        report = SyncReport(category="attachments")
        log = self._start("attachments")
        try:
            report.state = SyncState.PULLING
            payload = await self.transport.get(SYNC_ATTACHMENTS_ALL)
            listing = wire.decode_list(_as_list(payload), wire.decode_attachment)
            remote_ids = {a.id for a in listing}
            report.pulled = len(listing)

            report.state = SyncState.MERGING
            skip = set(skip_ids) | self._pending_tombstone_ids(KIND_ATTACHMENT)
            for meta in listing:
                if meta.id in skip or self.store.get_attachment(meta.id) is not None:
                    report.skipped += 1
                    continue
                report.state = SyncState.PULLING
                raw = await self.transport.get(SYNC_ATTACHMENT.format(id=meta.id))
                attachment = wire.decode_attachment(raw)
                report.state = SyncState.MERGING
                self.store.insert_attachment(attachment)
                report.inserted += 1

            report.state = SyncState.PUSHING
            for attachment in self.store.list_attachments():
                if attachment.id in remote_ids:
                    continue
                await self.transport.post(
                    SYNC_ATTACHMENTS_UPLOAD, wire.encode_attachment(attachment)
                )
                report.pushed += 1

            report.state = SyncState.IDLE
        except (TransportError, DecodeError, StoreError) as exc:
            report.fail(exc)

        self._finish(report, log)
        return report

    # ─── Airports ─────────────────────────────────────────────────────────────

    async def update_airports_db(self) -> SyncReport:
        """Replace the local airports table with the server's copy."""
        report = SyncReport(category="airports")
        async with _cycle_lock:
            log = self._start("airports")
            try:
                report.state = SyncState.PULLING
                payload = await self.transport.get(SYNC_AIRPORTS)
                airports = wire.decode_list(_as_list(payload), wire.decode_airport)
                report.pulled = len(airports)

                report.state = SyncState.MERGING
                report.inserted = self.store.replace_airports(
                    airports,
                    chunk_size=self.airports_chunk_size,
                    progress=lambda done, total: self._notify(
                        f"{done} of {total} airports stored"
                    ),
                )

                report.state = SyncState.IDLE
                self._notify(f"{report.inserted} airport(s) loaded")
            except (TransportError, DecodeError, StoreError) as exc:
                report.fail(exc)

            self._finish(report, log)
        return report

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _pending_tombstone_ids(self, kind: str) -> Set[str]:
        return {t.id for t in self.store.list_tombstones() if t.entity_kind == kind}

    def _notify(self, message: str) -> None:
        logger.info(message)
        if self.notify is not None:
            self.notify(message)

    def _start(self, category: str) -> Optional[SyncLog]:
        try:
            return self.store.start_sync_log(category)
        except StoreError as exc:
            logger.warning("Could not start sync log for %s: %s", category, exc)
            return None

    def _finish(self, report: SyncReport, log: Optional[SyncLog]) -> None:
        if not report.ok:
            logger.warning("Sync of %s failed: %s", report.category, report.error)
            self._notify(report.error)
        if log is None:
            return
        try:
            self.store.finish_sync_log(
                log,
                status="success" if report.ok else "error",
                pulled=report.pulled,
                updated=report.changed,
                pushed=report.pushed,
                error_message=report.error,
            )
        except StoreError as exc:
            logger.warning("Could not record sync log for %s: %s", report.category, exc)


def _as_list(payload):
    # An empty body (None) means "nothing to sync"; any other shape is decoded as is
    return [] if payload is None else payload
