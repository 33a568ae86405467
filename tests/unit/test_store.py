"""Tests for RecordStore against in-memory SQLite."""
from datetime import timezone

import pytest
from sqlalchemy import text

from logbook.db.store import RecordStore
from logbook.errors import DuplicateKeyError, RecordNotFoundError, StoreError
from logbook.models.airport import Airport
from logbook.models.record import Attachment, FlightRecord, License
from logbook.models.sync import SyncLog
from logbook.models.tombstone import KIND_ATTACHMENT, KIND_LICENSE, KIND_RECORD, DeletedItem


def make_record(record_id: str, **overrides) -> FlightRecord:
    fields = dict(id=record_id, date="15/01/2024", departure_time="0900", update_time=100)
    fields.update(overrides)
    return FlightRecord(**fields)


# ─── Flight records ───────────────────────────────────────────────────────────

class TestRecords:
    def test_insert_and_get(self, store: RecordStore):
        store.insert_record(make_record("a", remarks="first"))
        fetched = store.get_record("a")
        assert fetched.remarks == "first"
        assert fetched.update_time == 100

    def test_get_missing_returns_none(self, store: RecordStore):
        assert store.get_record("nope") is None

    def test_insert_duplicate_raises(self, store: RecordStore):
        store.insert_record(make_record("a"))
        with pytest.raises(DuplicateKeyError):
            store.insert_record(make_record("a"))

    def test_insert_stamps_missing_update_time(self, store: RecordStore):
        stored = store.insert_record(make_record("a", update_time=0))
        assert stored.update_time > 0
        assert store.get_record("a").update_time == stored.update_time

    def test_insert_does_not_touch_caller_instance(self, store: RecordStore):
        record = make_record("a", update_time=0)
        store.insert_record(record)
        assert record.update_time == 0

    def test_update_replaces_all_fields(self, store: RecordStore):
        store.insert_record(make_record("a", remarks="old", night_landings=1))
        store.update_record(make_record("a", remarks="new", night_landings=0, update_time=200))
        fetched = store.get_record("a")
        assert fetched.remarks == "new"
        assert fetched.night_landings == 0
        assert fetched.update_time == 200

    def test_update_missing_raises(self, store: RecordStore):
        with pytest.raises(RecordNotFoundError):
            store.update_record(make_record("ghost"))

    def test_count(self, store: RecordStore):
        assert store.count_records() == 0
        store.insert_record(make_record("a"))
        store.insert_record(make_record("b"))
        assert store.count_records() == 2

    def test_list_newest_first(self, store: RecordStore):
        """DD/MM/YYYY dates must sort chronologically, not as strings."""
        store.insert_record(make_record("jan", date="02/01/2024", departure_time="0800"))
        store.insert_record(make_record("feb-am", date="01/02/2024", departure_time="0900"))
        store.insert_record(make_record("dec", date="15/12/2023", departure_time="2300"))
        store.insert_record(make_record("feb-pm", date="01/02/2024", departure_time="1400"))
        assert [r.id for r in store.list_records()] == ["feb-pm", "feb-am", "jan", "dec"]

    def test_list_failure_raises_store_error(self, store: RecordStore, engine):
        with engine.begin() as conn:
            conn.execute(text("DROP VIEW logbook_view"))
            conn.execute(text("DROP TABLE logbook"))
        with pytest.raises(StoreError):
            store.list_records()

    def test_count_failure_raises_store_error(self, store: RecordStore, engine):
        with engine.begin() as conn:
            conn.execute(text("DROP VIEW logbook_view"))
            conn.execute(text("DROP TABLE logbook"))
        with pytest.raises(StoreError):
            store.count_records()
        with pytest.raises(StoreError):
            store.get_record("a")


# ─── Deletion / tombstones ────────────────────────────────────────────────────

class TestDeletion:
    def test_delete_emits_tombstone(self, store: RecordStore):
        store.insert_record(make_record("a"))
        store.delete_record("a")
        assert store.get_record("a") is None
        tombstones = store.list_tombstones()
        assert [(t.id, t.entity_kind) for t in tombstones] == [("a", KIND_RECORD)]
        assert tombstones[0].delete_time.isdigit()

    def test_delete_without_tombstone(self, store: RecordStore):
        store.insert_record(make_record("a"))
        store.delete_record("a", emit_tombstone=False)
        assert store.get_record("a") is None
        assert store.list_tombstones() == []

    def test_delete_missing_raises(self, store: RecordStore):
        with pytest.raises(RecordNotFoundError):
            store.delete_record("ghost")
        assert store.list_tombstones() == []

    def test_delete_license_and_attachment(self, store: RecordStore):
        store.insert_license(License(id="lic-1", name="ATPL"))
        store.insert_attachment(Attachment(id="att-1", record_id="a"))
        store.delete_license("lic-1")
        store.delete_attachment("att-1")
        assert store.get_license("lic-1") is None
        assert store.get_attachment("att-1") is None
        assert [t.entity_kind for t in store.list_tombstones()] == [KIND_LICENSE, KIND_ATTACHMENT]

    def test_delete_unknown_kind_raises(self, store: RecordStore):
        with pytest.raises(StoreError):
            store.delete_entity("pilots", "x")

    def test_tombstones_in_append_order(self, store: RecordStore):
        for entity_id in ("c", "a", "b"):
            store.append_tombstone(DeletedItem(id=entity_id, entity_kind=KIND_RECORD, delete_time="1"))
        assert [t.id for t in store.list_tombstones()] == ["c", "a", "b"]

    def test_clear_selected_tombstones(self, store: RecordStore):
        for entity_id in ("a", "b", "c"):
            store.append_tombstone(DeletedItem(id=entity_id, entity_kind=KIND_RECORD, delete_time="1"))
        store.clear_tombstones(["a", "c"])
        assert [t.id for t in store.list_tombstones()] == ["b"]

    def test_clear_all_tombstones(self, store: RecordStore):
        store.append_tombstone(DeletedItem(id="a", entity_kind=KIND_RECORD, delete_time="1"))
        store.clear_tombstones()
        assert store.list_tombstones() == []

    def test_clear_pushed_keeps_later_append_for_same_id(self, store: RecordStore):
        store.append_tombstone(DeletedItem(id="a", entity_kind=KIND_RECORD, delete_time="1"))
        pushed = store.list_tombstones()
        store.append_tombstone(DeletedItem(id="a", entity_kind=KIND_RECORD, delete_time="2"))
        store.clear_pushed_tombstones(pushed)
        remaining = store.list_tombstones()
        assert [(t.id, t.delete_time) for t in remaining] == [("a", "2")]

    def test_clear_pushed_with_nothing_is_noop(self, store: RecordStore):
        store.append_tombstone(DeletedItem(id="a", entity_kind=KIND_RECORD, delete_time="1"))
        store.clear_pushed_tombstones([])
        assert len(store.list_tombstones()) == 1

    def test_list_tombstones_failure_raises_store_error(self, store: RecordStore, engine):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE deleted_items"))
        with pytest.raises(StoreError):
            store.list_tombstones()


# ─── Licenses / attachments ───────────────────────────────────────────────────

class TestLicenses:
    def test_document_roundtrip(self, store: RecordStore):
        store.insert_license(License(id="lic-1", name="Medical", document=b"\x00\x01", update_time=5))
        assert store.get_license("lic-1").document == b"\x00\x01"

    def test_update(self, store: RecordStore):
        store.insert_license(License(id="lic-1", name="Medical", update_time=5))
        store.update_license(License(id="lic-1", name="Medical Class 1", update_time=6))
        assert store.get_license("lic-1").name == "Medical Class 1"

    def test_list_sorted(self, store: RecordStore):
        store.insert_license(License(id="2", category="Rating", name="IR"))
        store.insert_license(License(id="1", category="License", name="ATPL"))
        assert [lic.id for lic in store.list_licenses()] == ["1", "2"]


class TestAttachments:
    def test_list_by_record(self, store: RecordStore):
        store.insert_attachment(Attachment(id="att-1", record_id="a", document_name="1.jpg"))
        store.insert_attachment(Attachment(id="att-2", record_id="b", document_name="2.jpg"))
        assert [a.id for a in store.list_attachments("a")] == ["att-1"]
        assert len(store.list_attachments()) == 2

    def test_duplicate_raises(self, store: RecordStore):
        store.insert_attachment(Attachment(id="att-1", record_id="a"))
        with pytest.raises(DuplicateKeyError):
            store.insert_attachment(Attachment(id="att-1", record_id="a"))


# ─── Airports ─────────────────────────────────────────────────────────────────

def make_airports(n: int):
    return [Airport(icao=f"X{i:03d}", lat=float(i % 90), lon=0.0) for i in range(n)]


class TestAirports:
    def test_replace_reports_progress_per_chunk(self, store: RecordStore):
        calls = []
        stored = store.replace_airports(
            make_airports(7), chunk_size=3, progress=lambda done, total: calls.append((done, total))
        )
        assert stored == 7
        assert calls == [(3, 7), (6, 7), (7, 7)]
        assert store.count_airports() == 7

    def test_replace_clears_previous_rows(self, store: RecordStore):
        store.replace_airports(make_airports(5))
        store.replace_airports([Airport(icao="EGLL", lat=51.47, lon=-0.46)])
        assert store.count_airports() == 1

    def test_replace_with_empty_list_clears(self, store: RecordStore):
        store.replace_airports(make_airports(2))
        assert store.replace_airports([]) == 0
        assert store.count_airports() == 0

    def test_duplicate_icao_last_wins(self, store: RecordStore):
        store.replace_airports([
            Airport(icao="EGLL", name="Old", lat=0, lon=0),
            Airport(icao="EGLL", name="Heathrow", lat=51.47, lon=-0.46),
        ])
        assert store.get_airport("EGLL").name == "Heathrow"

    def test_lookup_by_icao_or_iata(self, store: RecordStore, airports):
        assert store.get_airport("egll").icao == "EGLL"
        assert store.get_airport("CDG").icao == "LFPG"
        assert store.get_airport("ZZZZ") is None
        assert store.get_airport("") is None


# ─── Sync log ─────────────────────────────────────────────────────────────────

class TestSyncLog:
    def test_start_and_finish(self, store: RecordStore):
        log = store.start_sync_log("records")
        assert log.id is not None
        store.finish_sync_log(log, status="success", pulled=3, updated=2, pushed=5)
        latest = store.latest_sync_log()
        assert latest.status == "success"
        assert (latest.pulled, latest.updated, latest.pushed) == (3, 2, 5)
        assert latest.finished_at is not None

    def test_latest_by_category(self, store: RecordStore):
        store.start_sync_log("records")
        store.start_sync_log("licenses")
        assert store.latest_sync_log("records").category == "records"
        assert store.latest_sync_log().category == "licenses"
        assert store.latest_sync_log("airports") is None

    def test_timestamps_are_timezone_aware(self, store: RecordStore):
        log = store.start_sync_log("records")
        assert log.started_at is not None
        store.finish_sync_log(log, status="error", error_message="boom")
        latest = store.latest_sync_log("records")
        assert latest.status == "error"
        assert SyncLog(category="records").started_at.tzinfo is timezone.utc
