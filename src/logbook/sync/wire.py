"""
Wire codecs for the sync server's JSON payloads.

Converts raw dicts from the server into model instances and back. No DB or
network access here; SyncEngine handles persistence.

The flight record protocol is asymmetric:

  pull (GET /sync/flightrecords):
    - Flat structure, one key per column: departure_place, se_time, ...

  push (POST /sync/flightrecords):
    - Nested, grouped by category:
        {id, date, departure: {place, time}, arrival: {place, time},
         aircraft: {model, reg_name}, time: {se, me, ..., instructor},
         landings: {day, night}, sim: {type, time},
         pic_name, remarks, update_time}

Older servers key entities by "uuid" and tombstones by "table_name"; both
spellings are accepted on decode, only "id"/"entity_kind" are emitted.

Binary documents travel as base64 strings; a null document decodes to b"".

Every decoder raises DecodeError on a wrong shape or type.
"""
import base64
import binascii
from typing import Any, Callable, Dict, List, TypeVar

from logbook.errors import DecodeError
from logbook.models.airport import Airport
from logbook.models.record import (
    LICENSE_FIELDS,
    RECORD_FIELDS,
    Attachment,
    FlightRecord,
    License,
)
from logbook.models.tombstone import DeletedItem

T = TypeVar("T")

_RECORD_INT_FIELDS = {"day_landings", "night_landings", "update_time"}

# Nested push shape: (group, key) -> flat column
_TIME_KEYS = {
    "se": "se_time",
    "me": "me_time",
    "mcc": "mcc_time",
    "total": "total_time",
    "night": "night_time",
    "ifr": "ifr_time",
    "pic": "pic_time",
    "co_pilot": "co_pilot_time",
    "dual": "dual_time",
    "instructor": "instructor_time",
}
_NESTED_GROUPS = {
    "departure": {"place": "departure_place", "time": "departure_time"},
    "arrival": {"place": "arrival_place", "time": "arrival_time"},
    "aircraft": {"model": "aircraft_model", "reg_name": "reg_name"},
    "time": _TIME_KEYS,
    "landings": {"day": "day_landings", "night": "night_landings"},
    "sim": {"type": "sim_type", "time": "sim_time"},
}
_NESTED_TOP_LEVEL = ["date", "pic_name", "remarks", "update_time"]


# ─── Field helpers ────────────────────────────────────────────────────────────

def _require_dict(raw: Any, what: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise DecodeError(f"Expected {what} object, got {type(raw).__name__}")
    return raw


def _entity_id(raw: Dict[str, Any], what: str) -> str:
    value = raw.get("id", raw.get("uuid"))
    if not isinstance(value, str) or not value:
        raise DecodeError(f"{what} has no valid id: {value!r}")
    return value


def _str_field(raw: Dict[str, Any], key: str, what: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"{what}.{key}: expected string, got {value!r}")
    return value


def _int_field(raw: Dict[str, Any], key: str, what: str) -> int:
    value = raw.get(key, 0)
    if value is None:
        return 0
    # bool is an int subclass; reject it. Whole floats are tolerated.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"{what}.{key}: expected integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise DecodeError(f"{what}.{key}: expected integer, got {value!r}")
    return int(value)


def _float_field(raw: Dict[str, Any], key: str, what: str) -> float:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"{what}.{key}: expected number, got {value!r}")
    return float(value)


def _decode_document(raw: Dict[str, Any], what: str) -> bytes:
    value = raw.get("document")
    if value is None or value == "":
        return b""
    if not isinstance(value, str):
        raise DecodeError(f"{what}.document: expected base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"{what}.document: invalid base64") from exc


def _encode_document(document: bytes) -> str:
    return base64.b64encode(document or b"").decode("ascii")


def decode_list(payload: Any, decoder: Callable[[Any], T]) -> List[T]:
    """Decode a JSON array with `decoder`, failing on the first bad item."""
    if not isinstance(payload, list):
        raise DecodeError(f"Expected a JSON array, got {type(payload).__name__}")
    return [decoder(item) for item in payload]


# ─── Flight records ───────────────────────────────────────────────────────────

def decode_record(raw: Any) -> FlightRecord:
    """Decode a flat flight record, as returned by GET /sync/flightrecords."""
    raw = _require_dict(raw, "flight record")
    fields: Dict[str, Any] = {"id": _entity_id(raw, "flight record")}
    for name in RECORD_FIELDS:
        if name in _RECORD_INT_FIELDS:
            fields[name] = _int_field(raw, name, "flight record")
        else:
            fields[name] = _str_field(raw, name, "flight record")
    return FlightRecord(**fields)


def encode_record(record: FlightRecord) -> Dict[str, Any]:
    """Encode a flight record into the flat shape (inverse of decode_record)."""
    payload: Dict[str, Any] = {"id": record.id}
    for name in RECORD_FIELDS:
        payload[name] = getattr(record, name)
    return payload


def encode_nested_record(record: FlightRecord) -> Dict[str, Any]:
    """Encode a flight record into the grouped shape POSTed to the server."""
    payload: Dict[str, Any] = {"id": record.id}
    for group, keys in _NESTED_GROUPS.items():
        payload[group] = {key: getattr(record, column) for key, column in keys.items()}
    for name in _NESTED_TOP_LEVEL:
        payload[name] = getattr(record, name)
    return payload


def decode_nested_record(raw: Any) -> FlightRecord:
    """Inverse of encode_nested_record."""
    raw = _require_dict(raw, "flight record")
    flat: Dict[str, Any] = {"id": _entity_id(raw, "flight record")}
    for group, keys in _NESTED_GROUPS.items():
        section = _require_dict(raw.get(group, {}), f"flight record.{group}")
        for key, column in keys.items():
            if key in section:
                flat[column] = section[key]
    for name in _NESTED_TOP_LEVEL:
        if name in raw:
            flat[name] = raw[name]
    return decode_record(flat)


# ─── Tombstones ───────────────────────────────────────────────────────────────

def decode_tombstone(raw: Any) -> DeletedItem:
    raw = _require_dict(raw, "deleted item")
    kind = raw.get("entity_kind", raw.get("table_name"))
    if not isinstance(kind, str) or not kind:
        raise DecodeError(f"deleted item has no entity kind: {kind!r}")
    delete_time = raw.get("delete_time", "")
    if isinstance(delete_time, bool) or not isinstance(delete_time, (str, int, float)):
        raise DecodeError(f"deleted item.delete_time: unexpected {delete_time!r}")
    if not isinstance(delete_time, str):
        delete_time = str(int(delete_time))
    return DeletedItem(
        id=_entity_id(raw, "deleted item"),
        entity_kind=kind,
        delete_time=delete_time,
    )


def encode_tombstone(item: DeletedItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "entity_kind": item.entity_kind,
        "delete_time": str(item.delete_time),
    }


# ─── Reference data and documents ─────────────────────────────────────────────

def decode_airport(raw: Any) -> Airport:
    raw = _require_dict(raw, "airport")
    icao = _str_field(raw, "icao", "airport").strip().upper()
    if not icao:
        raise DecodeError("airport has no ICAO code")
    iata = _str_field(raw, "iata", "airport").strip().upper()
    return Airport(
        icao=icao,
        iata=iata or None,
        name=_str_field(raw, "name", "airport"),
        city=_str_field(raw, "city", "airport"),
        country=_str_field(raw, "country", "airport"),
        elevation=_int_field(raw, "elevation", "airport"),
        lat=_float_field(raw, "lat", "airport"),
        lon=_float_field(raw, "lon", "airport"),
    )


def decode_license(raw: Any) -> License:
    raw = _require_dict(raw, "license")
    fields: Dict[str, Any] = {"id": _entity_id(raw, "license")}
    for name in LICENSE_FIELDS:
        if name == "document":
            fields[name] = _decode_document(raw, "license")
        elif name == "update_time":
            fields[name] = _int_field(raw, name, "license")
        else:
            fields[name] = _str_field(raw, name, "license")
    return License(**fields)


def encode_license(lic: License) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"id": lic.id}
    for name in LICENSE_FIELDS:
        value = getattr(lic, name)
        payload[name] = _encode_document(value) if name == "document" else value
    return payload


def decode_attachment(raw: Any) -> Attachment:
    """Decode an attachment; listings may omit the document body."""
    raw = _require_dict(raw, "attachment")
    return Attachment(
        id=_entity_id(raw, "attachment"),
        record_id=_str_field(raw, "record_id", "attachment"),
        document_name=_str_field(raw, "document_name", "attachment"),
        document=_decode_document(raw, "attachment"),
    )


def encode_attachment(attachment: Attachment) -> Dict[str, Any]:
    return {
        "id": attachment.id,
        "record_id": attachment.record_id,
        "document_name": attachment.document_name,
        "document": _encode_document(attachment.document),
    }
