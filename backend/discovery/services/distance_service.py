from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE_LAT = math.pi * EARTH_RADIUS_M / 180.0


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float
    wraps_antimeridian: bool = False


def is_valid_point(lat: float, lng: float) -> bool:
    if math.isnan(lat) or math.isnan(lng):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bounding_box(lat: float, lng: float, radius_m: float) -> BoundingBox:
    """Degree box containing every point within ``radius_m`` of the center."""
    d_lat = radius_m * 1.01 / METERS_PER_DEGREE_LAT
    min_lat = lat - d_lat
    max_lat = lat + d_lat
    if min_lat <= -90.0 or max_lat >= 90.0:
        # Pole inside the circle: every longitude qualifies.
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), -180.0, 180.0)

    cos_lat = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
    d_lng = radius_m * 1.01 / (METERS_PER_DEGREE_LAT * max(cos_lat, 1e-9))
    if d_lng >= 180.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    min_lng = lng - d_lng
    max_lng = lng + d_lng
    if min_lng < -180.0:
        return BoundingBox(min_lat, max_lat, min_lng + 360.0, max_lng, wraps_antimeridian=True)
    if max_lng > 180.0:
        return BoundingBox(min_lat, max_lat, min_lng, max_lng - 360.0, wraps_antimeridian=True)
    return BoundingBox(min_lat, max_lat, min_lng, max_lng)


def format_distance_text(distance_m: float | None) -> str:
    if distance_m is None:
        return ""
    return f"{distance_m / 1000:.1f} km"


def euclidean_degrees(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    # Cheap ordering proxy used by autocomplete; not a distance in meters.
    return math.sqrt((lat1 - lat2) ** 2 + (lng1 - lng2) ** 2)
