"""Flight record query routes."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from logbook.db.engine import get_store
from logbook.db.store import RecordStore
from logbook.errors import StoreError
from logbook.models.record import FlightRecord
from logbook.nighttime.segmenter import flight_time_for_record, night_time_for_record

router = APIRouter()


class RecordTimesResponse(BaseModel):
    id: str
    total_time: str
    night_time: str


@router.get("/", response_model=List[FlightRecord])
def list_records(store: RecordStore = Depends(get_store)):
    """All flight records, newest first."""
    try:
        return store.list_records()
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get("/count")
def count_records(store: RecordStore = Depends(get_store)):
    try:
        return {"count": store.count_records()}
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get("/{record_id}", response_model=FlightRecord)
def get_record(record_id: str, store: RecordStore = Depends(get_store)):
    try:
        record = store.get_record(record_id)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if not record:
        raise HTTPException(status_code=404, detail="Flight record not found")
    return record


@router.get("/{record_id}/times", response_model=RecordTimesResponse)
def record_times(record_id: str, store: RecordStore = Depends(get_store)):
    """
    Block time and night time for a record, computed from its airports.

    An empty string means the value is unknown (unknown airport or
    malformed time), never zero.
    """
    try:
        record = store.get_record(record_id)
        if not record:
            raise HTTPException(status_code=404, detail="Flight record not found")
        departure = store.get_airport(record.departure_place)
        arrival = store.get_airport(record.arrival_place)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return RecordTimesResponse(
        id=record.id,
        total_time=record.total_time or flight_time_for_record(record),
        night_time=night_time_for_record(record, departure, arrival),
    )
