"""Turns raw query/location/coordinate input into a structured search intent.

The parser never rejects optimisation knobs (rating, radius, prices): a value
that does not parse falls back to its default. Coordinates are the exception
because a wrong point silently produces wrong distances.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from ..config import Settings
from ..errors import ValidationError
from .distance_service import is_valid_point
from .location_index import LocationIndex, LocationScope

logger = logging.getLogger(__name__)

NEAR_ME_PATTERN = re.compile(r"\b(near[\s-]?me|nearby)\b", re.IGNORECASE)
QUALITY_PREFIX_PATTERN = re.compile(r"^(best|top)\s+", re.IGNORECASE)
KEYWORD_LOCATION_PATTERN = re.compile(r"^(.*?)\s+(?:in|at|near|from)\s+(.*)$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SearchIntent:
    keyword: str | None
    location: str | None
    category: str | None
    min_rating: float | None
    sort: str | None
    lat: float | None
    lng: float | None
    radius_m: int
    location_scope: LocationScope
    has_location_filter: bool
    is_near_me: bool
    is_quality_search: bool
    location_reinterpreted: bool = False

    @property
    def has_geo(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def search_type(self) -> str:
        if self.is_near_me and self.has_geo:
            return "near-me"
        if self.has_geo:
            return "geo"
        if self.has_location_filter:
            return "location"
        return "general"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    collapsed = _WHITESPACE.sub(" ", value).strip()
    return collapsed or None


def coerce_float(raw: object) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def coerce_int(raw: object, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return default


def parse_coordinates(lat_raw: object, lng_raw: object, *, required: bool) -> tuple[float, float] | None:
    lat_missing = lat_raw is None or lat_raw == ""
    lng_missing = lng_raw is None or lng_raw == ""
    if lat_missing and lng_missing and not required:
        return None
    if lat_missing or lng_missing:
        raise ValidationError("Latitude and longitude are required", code="MISSING_COORDINATES")

    try:
        lat = float(lat_raw)
        lng = float(lng_raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid latitude or longitude format", code="INVALID_COORDINATES") from None
    if math.isnan(lat) or math.isnan(lng):
        raise ValidationError("Invalid latitude or longitude format", code="INVALID_COORDINATES")
    if not is_valid_point(lat, lng):
        raise ValidationError("Invalid coordinate ranges", code="INVALID_COORDINATE_RANGE")
    return lat, lng


def detect_near_me(text: str | None) -> tuple[bool, str | None]:
    if not text or not NEAR_ME_PATTERN.search(text):
        return False, _clean(text)
    return True, _clean(NEAR_ME_PATTERN.sub(" ", text))


def strip_quality_prefix(text: str | None) -> tuple[bool, str | None]:
    if not text:
        return False, text
    stripped = text.strip()
    if not QUALITY_PREFIX_PATTERN.match(stripped):
        return False, stripped
    return True, _clean(QUALITY_PREFIX_PATTERN.sub("", stripped, count=1))


def split_keyword_location(text: str | None) -> tuple[str | None, str | None]:
    if not text:
        return text, None
    match = KEYWORD_LOCATION_PATTERN.match(text.strip())
    if match is None:
        return text, None
    return _clean(match.group(1)), _clean(match.group(2))


class IntentParser:
    def __init__(self, locations: LocationIndex, settings: Settings) -> None:
        self.locations = locations
        self.settings = settings

    def resolve_radius(self, scope: LocationScope, radius_raw: object, default_radius_m: int) -> int:
        if scope is LocationScope.BROAD:
            return self.settings.broad_radius_m
        if scope is LocationScope.SPECIFIC:
            return self.settings.specific_radius_m
        radius = coerce_int(radius_raw, default_radius_m)
        return radius if radius > 0 else default_radius_m

    def parse(
        self,
        *,
        query: str | None = None,
        location: str | None = None,
        category: str | None = None,
        min_rating: object = None,
        sort: str | None = None,
        lat: object = None,
        lng: object = None,
        radius: object = None,
        default_radius_m: int | None = None,
    ) -> SearchIntent:
        coordinates = parse_coordinates(lat, lng, required=False)
        keyword = _clean(query)
        location_text = _clean(location)
        category_text = _clean(category)
        if category_text and category_text.lower() == "all":
            category_text = None
        sort_key = _clean(sort)
        if sort_key and sort_key.lower() == "recommended":
            sort_key = None
        rating_floor = coerce_float(min_rating)

        is_near_me, keyword = detect_near_me(keyword)
        is_quality, keyword = strip_quality_prefix(keyword)
        if is_quality:
            sort_key = "rating"

        if keyword and not location_text:
            keyword, location_text = split_keyword_location(keyword)

        scope = self.locations.classify(location_text)
        radius_m = self.resolve_radius(scope, radius, default_radius_m or self.settings.search_default_radius_m)

        has_location_filter = location_text is not None
        reinterpreted = False
        if (
            has_location_filter
            and not keyword
            and not category_text
            and rating_floor is None
            and not is_near_me
            and not self.locations.is_known_location(location_text)
        ):
            # Users often type a business or service name into the location box.
            keyword = location_text
            has_location_filter = False
            reinterpreted = True
            logger.debug("Treating unknown location %r as keyword", location_text)

        if is_quality and rating_floor is None:
            rating_floor = self.settings.quality_min_rating

        return SearchIntent(
            keyword=keyword,
            location=location_text,
            category=category_text,
            min_rating=rating_floor,
            sort=sort_key.lower() if sort_key else None,
            lat=coordinates[0] if coordinates else None,
            lng=coordinates[1] if coordinates else None,
            radius_m=radius_m,
            location_scope=scope,
            has_location_filter=has_location_filter,
            is_near_me=is_near_me,
            is_quality_search=is_quality,
            location_reinterpreted=reinterpreted,
        )
