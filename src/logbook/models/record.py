"""Logbook data models: flight records, licenses and their attachments."""
from typing import List

from sqlmodel import Field, SQLModel


class FlightRecord(SQLModel, table=True):
    """
    One row per logged flight (or simulator session).

    Times of day are "HHMM" strings in UTC, durations are "H:MM" strings,
    `date` is "DD/MM/YYYY". `update_time` is Unix seconds and decides
    last-write-wins during sync.
    """

    __tablename__ = "logbook"

    id: str = Field(primary_key=True)
    date: str = ""
    departure_place: str = ""
    departure_time: str = ""
    arrival_place: str = ""
    arrival_time: str = ""
    aircraft_model: str = ""
    reg_name: str = ""

    # Time columns
    se_time: str = ""
    me_time: str = ""
    mcc_time: str = ""
    total_time: str = ""
    night_time: str = ""
    ifr_time: str = ""
    pic_time: str = ""
    co_pilot_time: str = ""
    dual_time: str = ""
    instructor_time: str = ""

    day_landings: int = 0
    night_landings: int = 0

    sim_type: str = ""
    sim_time: str = ""
    pic_name: str = ""
    remarks: str = ""

    update_time: int = Field(default=0, index=True)


# Every column except the primary key, in wire order
RECORD_FIELDS: List[str] = [
    name for name in FlightRecord.model_fields if name != "id"
]


class License(SQLModel, table=True):
    """A pilot license, rating or medical, optionally with a scanned document."""

    __tablename__ = "licensing"

    id: str = Field(primary_key=True)
    category: str = ""
    name: str = ""
    number: str = ""
    issued: str = ""
    valid_from: str = ""
    valid_until: str = ""
    remarks: str = ""
    document_name: str = ""
    document: bytes = b""
    update_time: int = 0


LICENSE_FIELDS: List[str] = [
    name for name in License.model_fields if name != "id"
]


class Attachment(SQLModel, table=True):
    """A file attached to a flight record. Immutable once stored."""

    __tablename__ = "attachments"

    id: str = Field(primary_key=True)
    record_id: str = Field(index=True)
    document_name: str = ""
    document: bytes = b""
