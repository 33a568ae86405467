"""
Great-circle and sun-position helpers for night-time calculation.

Distances use the haversine formula on a sphere of radius 6,378.1 km and
are returned in nautical miles.

Sunrise and sunset use the "Almanac for Computers" algorithm (U.S. Naval
Observatory, 1990) with the official zenith of 90°50'. The returned events
are widened by a 30-minute civil-twilight margin: sunrise 30 minutes
earlier, sunset 30 minutes later. Everything outside that window counts as
night for logging purposes.

All instants are timezone-aware UTC datetimes.
"""
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

from logbook.errors import ValidationError

EARTH_RADIUS_M = 6378100.0
METERS_PER_NM = 1852.0

SUN_ZENITH = 90.8333
TWILIGHT_MARGIN = timedelta(minutes=30)


@dataclass(frozen=True)
class Place:
    lat: float
    lon: float
    instant: datetime


@dataclass(frozen=True)
class Route:
    departure: Place
    arrival: Place


# ─── Distance / speed ─────────────────────────────────────────────────────────

def _hsin(theta: float) -> float:
    return math.sin(theta / 2) ** 2


def distance_nm(a: Place, b: Place) -> float:
    """Haversine great-circle distance between two places, in NM."""
    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)

    h = _hsin(lat2 - lat1) + math.cos(lat1) * math.cos(lat2) * _hsin(lon2 - lon1)
    # Rounding can push h a hair above 1 for antipodal points
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h)) / METERS_PER_NM


def midpoint(a: Place, b: Place) -> Place:
    """
    Spherical midpoint of the great circle between `a` and `b`.

    The instant is copied from `a`; callers assign the real one.
    """
    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)

    dlon = lon2 - lon1
    bx = math.cos(lat2) * math.cos(dlon)
    by = math.cos(lat2) * math.sin(dlon)
    lat = math.atan2(
        math.sin(lat1) + math.sin(lat2),
        math.sqrt((math.cos(lat1) + bx) ** 2 + by ** 2),
    )
    lon = lon1 + math.atan2(by, math.cos(lat1) + bx)

    return replace(a, lat=math.degrees(lat), lon=math.degrees(lon))


def route_distance_nm(route: Route) -> float:
    return distance_nm(route.departure, route.arrival)


def flight_time(route: Route) -> timedelta:
    return route.arrival.instant - route.departure.instant


def route_speed_kts(route: Route) -> float:
    """
    Average ground speed along the great circle, in knots.

    Raises:
        ValidationError: if both instants are equal (speed undefined).
    """
    hours = flight_time(route).total_seconds() / 3600
    if hours == 0:
        raise ValidationError("Departure and arrival instants are equal")
    return route_distance_nm(route) / hours


# ─── Sun events ───────────────────────────────────────────────────────────────

def _sin_deg(deg: float) -> float:
    return math.sin(math.radians(deg))


def _cos_deg(deg: float) -> float:
    return math.cos(math.radians(deg))


def _sun_event(lat: float, lon: float, day: date, sunrise: bool) -> Tuple[Optional[datetime], float]:
    """
    Raw sun event on the UTC calendar `day`, without twilight margin.

    Returns:
        (instant, cos_local_hour_angle). The instant is None when the sun
        stays above (cos < -1) or below (cos > 1) the horizon all day.
    """
    day_of_year = day.timetuple().tm_yday
    hours_from_meridian = lon / 15
    approx_days = day_of_year + ((6 if sunrise else 18) - hours_from_meridian) / 24

    mean_anomaly = 0.9856 * approx_days - 3.289
    true_longitude = (
        mean_anomaly
        + 1.916 * _sin_deg(mean_anomaly)
        + 0.020 * _sin_deg(2 * mean_anomaly)
        + 282.634
    ) % 360

    right_ascension = math.degrees(math.atan(0.91764 * math.tan(math.radians(true_longitude)))) % 360
    # Put right ascension in the same quadrant as the true longitude
    right_ascension += (true_longitude // 90) * 90 - (right_ascension // 90) * 90

    sin_dec = 0.39782 * _sin_deg(true_longitude)
    cos_dec = math.cos(math.asin(sin_dec))

    cos_hour_angle = (_cos_deg(SUN_ZENITH) - sin_dec * _sin_deg(lat)) / (cos_dec * _cos_deg(lat))
    if cos_hour_angle > 1 or cos_hour_angle < -1:
        return None, cos_hour_angle

    hour_angle = math.degrees(math.acos(cos_hour_angle))
    if sunrise:
        hour_angle = 360 - hour_angle

    local_mean_time = hour_angle / 15 + right_ascension / 15 - 0.06571 * approx_days - 6.622
    utc_hours = (local_mean_time - hours_from_meridian) % 24

    midnight = datetime.combine(day, time(0), tzinfo=timezone.utc)
    return midnight + timedelta(hours=utc_hours), cos_hour_angle


def _utc_day(instant: datetime) -> date:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).date()


def sunrise_at(place: Place) -> Optional[datetime]:
    """Twilight-adjusted sunrise on the UTC day of `place.instant`."""
    event, _ = _sun_event(place.lat, place.lon, _utc_day(place.instant), sunrise=True)
    return None if event is None else event - TWILIGHT_MARGIN


def sunset_at(place: Place) -> Optional[datetime]:
    """Twilight-adjusted sunset on the UTC day of `place.instant`."""
    event, _ = _sun_event(place.lat, place.lon, _utc_day(place.instant), sunrise=False)
    return None if event is None else event + TWILIGHT_MARGIN


def is_daylight(place: Place) -> bool:
    """
    True if `place.instant` lies strictly between a twilight-adjusted
    sunrise and the sunset that follows it.

    Sun events are computed per UTC day, but at large longitudes the local
    day straddles UTC midnight (sunset "before" sunrise on the same UTC
    date). Windows anchored on the previous, current and next UTC day are
    therefore all checked.
    """
    instant = place.instant
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    today = _utc_day(instant)

    for offset in (-1, 0, 1):
        day = today + timedelta(days=offset)
        rise, cos_rise = _sun_event(place.lat, place.lon, day, sunrise=True)
        if rise is None:
            if offset == 0:
                # Midnight sun or polar night for the whole day
                return cos_rise < -1
            continue
        dawn = rise - TWILIGHT_MARGIN
        set_, _ = _sun_event(place.lat, place.lon, day, sunrise=False)
        if set_ is None:
            continue
        dusk = set_ + TWILIGHT_MARGIN
        if dusk <= dawn:
            dusk += timedelta(days=1)
        if dawn < instant < dusk:
            return True
    return False
