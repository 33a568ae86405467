"""
Night flying time along a great-circle route, and the flight-record helpers
that feed it.

The route is bisected until every segment is no longer than the distance
flown in one minute at the route's average speed. Each leaf segment is
classified by the sun at its *arrival* point only: if that instant is in
daylight the segment adds nothing, otherwise it adds its whole transit
time. Checking the segment midpoint too would be more precise but doubles
the sun calculations for an error well under a minute per segment.

Splitting uses an explicit work stack rather than recursion, so very long
or very slow routes cannot hit the interpreter's recursion limit.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from logbook.errors import ValidationError
from logbook.models.airport import Airport
from logbook.models.record import FlightRecord
from logbook.nighttime.geodesy import (
    Place,
    Route,
    distance_nm,
    flight_time,
    is_daylight,
    midpoint,
    route_speed_kts,
)

DATE_FORMAT = "%d/%m/%Y"


def night_time(route: Route) -> timedelta:
    """
    Time flown in darkness between departure and arrival.

    Returns timedelta(0) for a zero-length (same instant) route.

    Raises:
        ValidationError: if arrival precedes departure.
    """
    elapsed = flight_time(route)
    if elapsed < timedelta(0):
        raise ValidationError("Arrival precedes departure")
    if elapsed == timedelta(0):
        return timedelta(0)

    # Nautical miles flown in one minute
    max_segment_nm = route_speed_kts(route) / 60

    dark = timedelta(0)
    stack: List[Tuple[Place, Place]] = [(route.departure, route.arrival)]
    while stack:
        start, end = stack.pop()
        if distance_nm(start, end) > max_segment_nm:
            mid = midpoint(start, end)
            mid = Place(mid.lat, mid.lon, start.instant + (end.instant - start.instant) / 2)
            # Second half pushed first so segments are evaluated in flight order
            stack.append((mid, end))
            stack.append((start, mid))
        elif not is_daylight(end):
            dark += end.instant - start.instant
    return dark


def format_duration(duration: timedelta) -> str:
    """Format as H:MM, truncated to whole minutes."""
    minutes = int(duration.total_seconds() // 60)
    return f"{minutes // 60}:{minutes % 60:02d}"


# ─── Flight record helpers ────────────────────────────────────────────────────

def parse_date_time(date_str: str, time_str: str) -> datetime:
    """
    Combine a logbook date ("DD/MM/YYYY") and time ("HHMM" or "HH:MM")
    into a UTC datetime.

    Raises:
        ValidationError: on any malformed input.
    """
    clock = (time_str or "").strip().replace(":", "")
    if len(clock) != 4 or not clock.isdigit():
        raise ValidationError(f"Invalid time {time_str!r}, expected HHMM")
    hours, minutes = int(clock[:2]), int(clock[2:])
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time {time_str!r}")
    try:
        day = datetime.strptime((date_str or "").strip(), DATE_FORMAT)
    except ValueError as exc:
        raise ValidationError(f"Invalid date {date_str!r}, expected DD/MM/YYYY") from exc
    return day.replace(hour=hours, minute=minutes, tzinfo=timezone.utc)


def record_times(record: FlightRecord) -> Tuple[datetime, datetime]:
    """
    Departure and arrival instants of a record.

    Records carry one date for both times, so an arrival clock time earlier
    than the departure clock time means the flight crossed midnight.
    """
    departure = parse_date_time(record.date, record.departure_time)
    arrival = parse_date_time(record.date, record.arrival_time)
    if arrival < departure:
        arrival += timedelta(days=1)
    return departure, arrival


def flight_time_for_record(record: FlightRecord) -> str:
    """Block time as H:MM, or "" when times are missing, invalid or equal."""
    try:
        departure, arrival = record_times(record)
    except ValidationError:
        return ""
    if arrival == departure:
        return ""
    return format_duration(arrival - departure)


def night_time_for_record(
    record: FlightRecord,
    departure_airport: Optional[Airport],
    arrival_airport: Optional[Airport],
) -> str:
    """
    Night time for a record as H:MM.

    An already entered night time is kept as is. Returns "" when the value
    cannot be known (unknown airport, invalid date/time) or is zero.
    """
    if record.night_time:
        return record.night_time
    if departure_airport is None or arrival_airport is None:
        return ""
    try:
        departure, arrival = record_times(record)
        route = Route(
            departure=Place(departure_airport.lat, departure_airport.lon, departure),
            arrival=Place(arrival_airport.lat, arrival_airport.lon, arrival),
        )
        dark = night_time(route)
    except ValidationError:
        return ""
    if dark == timedelta(0):
        return ""
    return format_duration(dark)
