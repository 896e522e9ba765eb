from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from sqlalchemy import Select, and_, or_, select
from sqlalchemy.orm import Session

from ..database import fetch_all
from ..models import Business, Service
from .distance_service import bounding_box, haversine_m
from .intent_service import SearchIntent

logger = logging.getLogger(__name__)

GENDER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "male": ("male", "men", "unisex"),
    "female": ("female", "women", "ladies", "unisex"),
    "unisex": ("unisex", "couple"),
}

_LOCATION_SPLIT = re.compile(r"[,\s]+")


@dataclass
class Candidate:
    business: Business
    services: list[Service] = field(default_factory=list)
    distance_m: float | None = None
    relevance: int = 0


@dataclass(frozen=True)
class ListingFilters:
    """Filters that come from request parameters rather than from the parsed query."""

    service: str | None = None
    offers_only: bool = False
    amenities: tuple[str, ...] = ()
    gender: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    allowed_types: tuple[str, ...] | None = None
    online_services_only: bool = False

    @property
    def has_price_range(self) -> bool:
        return self.min_price is not None or self.max_price is not None


def _lower(value: object) -> str:
    return value.lower() if isinstance(value, str) else ""


def _strings(values: Iterable[object] | None) -> list[str]:
    return [value.lower() for value in values or [] if isinstance(value, str)]


def eligible_statement() -> Select:
    """Tenant-active listings that the platform has not switched off."""
    return select(Business).where(
        Business.is_active.is_(True),
        or_(Business.is_active_from_super_admin.is_(None), Business.is_active_from_super_admin.is_(True)),
    )


def fetch_active_services(
    db: Session,
    business_ids: list[int],
    *,
    online_only: bool = False,
) -> dict[int, list[Service]]:
    if not business_ids:
        return {}
    stmt = select(Service).where(Service.business_id.in_(business_ids), Service.is_active.is_(True))
    if online_only:
        stmt = stmt.where(Service.is_available_online.is_(True))
    stmt = stmt.order_by(Service.business_id.asc(), Service.display_order.asc(), Service.id.asc())
    grouped: dict[int, list[Service]] = {}
    for row in fetch_all(db, stmt):
        grouped.setdefault(row.business_id, []).append(row)
    return grouped


def matches_text(candidate: Candidate, keyword: str) -> bool:
    """Every whitespace-delimited term must hit at least one searchable field."""
    business = candidate.business
    haystack = [
        _lower(business.name),
        _lower(business.branch),
        _lower(business.area),
        _lower(business.category),
        _lower(business.description),
        _lower(business.address),
        _lower(business.city),
        _lower(business.state),
        _lower(business.zip_code),
        _lower(business.business_link),
        *_strings(business.tags),
        *(_lower(service.name) for service in candidate.services),
    ]
    terms = keyword.lower().split()
    return all(any(term in field_value for field_value in haystack) for term in terms)


def location_match_rank(business: Business, location: str) -> int:
    """2 for an exact city/area/state hit, 1 for a partial address hit, 0 otherwise."""
    normalized = location.strip().lower()
    parts = [part for part in _LOCATION_SPLIT.split(normalized) if len(part) > 2]
    exact_fields = [_lower(business.city), _lower(business.area), _lower(business.state)]
    partial_fields = exact_fields + [_lower(business.address), _lower(business.branch)]

    if normalized in exact_fields or any(part in exact_fields for part in parts):
        return 2
    if any(normalized in value for value in partial_fields if value):
        return 1
    if any(part in value for part in parts for value in partial_fields if value):
        return 1
    return 0


def matches_service(candidate: Candidate, service_name: str) -> bool:
    needle = service_name.strip().lower()
    return any(needle in _lower(service.name) for service in candidate.services)


def matches_amenities(business: Business, amenities: Iterable[str]) -> bool:
    available = _strings(business.amenities)
    return all(any(amenity.lower() in value for value in available) for amenity in amenities)


def matches_gender(business: Business, gender: str) -> bool:
    normalized = gender.strip().lower()
    synonyms = GENDER_SYNONYMS.get(normalized, (normalized,))
    pattern = re.compile(r"\b(" + "|".join(re.escape(word) for word in synonyms) + r")\b")
    haystack = [
        *_strings(business.tags),
        *_strings(business.features),
        *_strings(business.amenities),
        _lower(business.type),
    ]
    return any(pattern.search(value) for value in haystack)


def service_prices(service: Service) -> list[float]:
    prices: list[float] = []
    if service.price is not None:
        prices.append(float(service.price))
    for option in service.pricing_options or []:
        if not isinstance(option, dict) or option.get("isActive") is False:
            continue
        try:
            prices.append(float(option["price"]))
        except (KeyError, TypeError, ValueError):
            continue
    return prices


def matches_price(candidate: Candidate, min_price: float | None, max_price: float | None) -> bool:
    low = min_price if min_price is not None else float("-inf")
    high = max_price if max_price is not None else float("inf")
    return any(low <= price <= high for service in candidate.services for price in service_prices(service))


class CandidateRetriever:
    """Coarse predicates run in SQL; exact distance and multi-field text matching run here."""

    def __init__(self, batch_size: int = 500) -> None:
        self.batch_size = batch_size

    def _statement(self, intent: SearchIntent, filters: ListingFilters) -> Select:
        stmt = eligible_statement()
        if filters.allowed_types:
            stmt = stmt.where(Business.type.in_(filters.allowed_types))
        if intent.category:
            stmt = stmt.where(
                or_(
                    Business.type.icontains(intent.category, autoescape=True),
                    Business.category.icontains(intent.category, autoescape=True),
                )
            )
        if intent.min_rating is not None:
            stmt = stmt.where(Business.rating_average >= intent.min_rating)
        if intent.has_geo:
            box = bounding_box(intent.lat, intent.lng, intent.radius_m)
            if box.wraps_antimeridian:
                lng_clause = or_(Business.longitude >= box.min_lng, Business.longitude <= box.max_lng)
            else:
                lng_clause = Business.longitude.between(box.min_lng, box.max_lng)
            stmt = stmt.where(
                Business.latitude.is_not(None),
                Business.longitude.is_not(None),
                and_(Business.latitude.between(box.min_lat, box.max_lat), lng_clause),
            )
        return stmt

    def _predicates(self, intent: SearchIntent, filters: ListingFilters) -> list[tuple[str, Callable[[Candidate], bool]]]:
        predicates: list[tuple[str, Callable[[Candidate], bool]]] = []
        if intent.keyword:
            keyword = intent.keyword
            predicates.append(("text", lambda c: matches_text(c, keyword)))
        if intent.has_location_filter and intent.location:
            location = intent.location
            predicates.append(("location", lambda c: location_match_rank(c.business, location) > 0))
        if filters.service:
            service_name = filters.service
            predicates.append(("service", lambda c: matches_service(c, service_name)))
        if filters.offers_only:
            predicates.append(("offers", lambda c: bool(c.business.offers)))
        if filters.amenities:
            amenities = filters.amenities
            predicates.append(("amenities", lambda c: matches_amenities(c.business, amenities)))
        if filters.gender:
            gender = filters.gender
            predicates.append(("gender", lambda c: matches_gender(c.business, gender)))
        if filters.has_price_range:
            predicates.append(("price", lambda c: matches_price(c, filters.min_price, filters.max_price)))
        return predicates

    def retrieve(self, db: Session, intent: SearchIntent, filters: ListingFilters | None = None) -> list[Candidate]:
        filters = filters or ListingFilters()
        businesses = fetch_all(db, self._statement(intent, filters))

        candidates: list[Candidate] = []
        filtered_by_distance = 0
        for business in businesses:
            distance_m: float | None = None
            if intent.has_geo:
                distance_m = haversine_m(intent.lat, intent.lng, business.latitude, business.longitude)
                if distance_m > intent.radius_m:
                    filtered_by_distance += 1
                    continue
            candidates.append(Candidate(business=business, distance_m=distance_m))

        ids = [candidate.business.id for candidate in candidates]
        services_map: dict[int, list[Service]] = {}
        for start in range(0, len(ids), self.batch_size):
            services_map.update(
                fetch_active_services(db, ids[start : start + self.batch_size], online_only=filters.online_services_only)
            )
        for candidate in candidates:
            candidate.services = services_map.get(candidate.business.id, [])

        rejected: dict[str, int] = {}
        kept = candidates
        for name, predicate in self._predicates(intent, filters):
            before = len(kept)
            kept = [candidate for candidate in kept if predicate(candidate)]
            rejected[name] = before - len(kept)

        logger.info(
            "candidate_filtering: fetched=%s kept=%s filtered_distance=%s filtered=%s",
            len(businesses),
            len(kept),
            filtered_by_distance,
            rejected,
        )
        return kept
