"""Shared test fixtures."""
import os

# Must be set before logbook.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SYNC_URL", "")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from logbook.config import get_settings
from logbook.db.engine import init_db
from logbook.db.store import RecordStore
from logbook.models.airport import Airport
from logbook.models.record import FlightRecord


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with the full schema and view, fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="store")
def store_fixture(engine) -> RecordStore:
    return RecordStore(engine)


@pytest.fixture(name="settings_dir", autouse=True)
def settings_dir_fixture(tmp_path, monkeypatch):
    """Keep the sync settings file out of the real home directory."""
    path = tmp_path / "settings"
    monkeypatch.setattr(get_settings(), "settings_dir", path)
    return path


@pytest.fixture(name="seeded_record")
def seeded_record_fixture(store: RecordStore) -> FlightRecord:
    """A persisted night flight Heathrow → Charles de Gaulle."""
    record = FlightRecord(
        id="rec-0001",
        date="15/01/2024",
        departure_place="EGLL",
        departure_time="2300",
        arrival_place="LFPG",
        arrival_time="0010",
        aircraft_model="A320",
        reg_name="G-EUUA",
        me_time="1:10",
        mcc_time="1:10",
        total_time="1:10",
        pic_time="1:10",
        night_landings=1,
        pic_name="Self",
        update_time=1705360000,
    )
    return store.insert_record(record)


@pytest.fixture(name="airports")
def airports_fixture(store: RecordStore):
    rows = [
        Airport(icao="EGLL", iata="LHR", name="Heathrow", city="London",
                country="United Kingdom", elevation=83, lat=51.4706, lon=-0.461941),
        Airport(icao="LFPG", iata="CDG", name="Charles de Gaulle", city="Paris",
                country="France", elevation=392, lat=49.012798, lon=2.55),
    ]
    store.replace_airports(rows)
    return rows
