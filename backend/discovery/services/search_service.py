from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any

from sqlalchemy.orm import Session

from ..config import Settings, settings
from ..errors import NotFoundError, UpstreamUnavailable, ValidationError
from ..schemas import (
    ListingCard,
    ListingPage,
    LocationDirectory,
    LocationEntry,
    RegionView,
    SearchLocation,
)
from ..telemetry import get_current_trace, timed_stage
from .autocomplete_service import AutocompleteService
from .cache_service import (
    AUTOCOMPLETE_NAMESPACE,
    NEARBY_NAMESPACE,
    PUBLIC_NAMESPACE,
    SEARCH_NAMESPACE,
    CacheGateway,
    get_cache_gateway,
)
from .candidate_service import Candidate, CandidateRetriever, ListingFilters
from .formatter_service import encode_payload, place_to_card, secure_envelope, to_card
from .intent_service import (
    IntentParser,
    SearchIntent,
    coerce_float,
    coerce_int,
    detect_near_me,
    parse_coordinates,
    split_keyword_location,
)
from .location_index import LocationIndex, get_location_index
from .pagination_service import (
    CursorKey,
    Page,
    clamp_limit,
    cursor_page,
    decode_cursor,
    encode_cursor,
    legacy_distance_cursor,
    offset_page,
    parse_page,
    sampled_page,
)
from .places_service import PlacesClient, get_places_client
from .ranking_service import (
    KEY_WIDTHS,
    RankingStrategy,
    fairness_sample,
    rank_candidates,
    rating_tiered_shuffle,
    resolve_strategy,
    sort_key,
)

logger = logging.getLogger(__name__)

PUBLIC_TYPES = ("salon", "spa", "beauty")
LOCAL_CITY_SUGGESTIONS = 5
MAX_LOCATION_SUGGESTIONS = 10
# Opens the newest-first feed of the public listing from its first item.
CURSOR_START = "start"


@dataclass
class SearchParams:
    query: str | None = None
    location: str | None = None
    category: str | None = None
    min_rating: str | None = None
    sort: str | None = None
    lat: str | None = None
    lng: str | None = None
    radius: str | None = None
    service: str | None = None
    offers_only: bool = False
    amenities: str | None = None
    gender: str | None = None
    min_price: str | None = None
    max_price: str | None = None
    page: str | None = None
    limit: str | None = None
    cursor: str | None = None


@dataclass
class SearchPlan:
    """Everything resolved from the request before the store is touched."""

    intent: SearchIntent
    strategy: RankingStrategy
    filters: ListingFilters
    page: int
    limit: int
    cursor: str | None
    after: CursorKey | None


@dataclass
class SearchOutcome:
    intent: SearchIntent
    strategy: RankingStrategy
    page: Page[Candidate]
    limit: int
    cards: list[ListingCard]


def _restricted_type(value: str | None) -> tuple[str, ...] | None:
    if value and value.strip().lower() in PUBLIC_TYPES:
        return (value.strip().lower(),)
    return None


def _created_ts(candidate: Candidate) -> float:
    created_at = candidate.business.created_at
    return created_at.timestamp() if isinstance(created_at, datetime) else 0.0


def _newest_first_key(candidate: Candidate) -> CursorKey:
    return (-_created_ts(candidate), -float(candidate.business.id))


def _nearest_first_key(candidate: Candidate) -> CursorKey:
    return (float(candidate.distance_m or 0.0), float(candidate.business.id))


def _record_trace(
    query_text: str | None = None,
    search_type: str | None = None,
    strategy: str | None = None,
    *,
    cache_hit: bool | None = None,
    result_count: int | None = None,
) -> None:
    trace = get_current_trace()
    if trace is None:
        return
    if not trace.search_active:
        trace.mark_search(query_text, search_type, strategy)
    if cache_hit is not None:
        trace.mark_cache(cache_hit)
    if result_count is not None:
        trace.set_result_count(result_count)


class DiscoveryService:
    def __init__(
        self,
        gateway: CacheGateway,
        locations: LocationIndex,
        places: PlacesClient,
        config: Settings = settings,
        rng: random.Random | None = None,
    ) -> None:
        self.gateway = gateway
        self.locations = locations
        self.places = places
        self.config = config
        self.rng = rng
        self.parser = IntentParser(locations, config)
        self.retriever = CandidateRetriever()
        self.autocompleter = AutocompleteService()

    def _cache_lookup(self, key: str) -> Any | None:
        with timed_stage("cache"):
            cached = self.gateway.get(key)
        _record_trace(cache_hit=cached is not None)
        return cached

    def _retrieve(self, db: Session, intent: SearchIntent, filters: ListingFilters) -> list[Candidate]:
        with timed_stage("db"):
            return self.retriever.retrieve(db, intent, filters)

    # Public browse listing

    def public_listing(
        self,
        db: Session,
        *,
        page: str | None = None,
        limit: str | None = None,
        business_type: str | None = None,
        cursor: str | None = None,
    ) -> dict[str, Any]:
        with timed_stage("intent"):
            limit_n = clamp_limit(limit, self.config.default_limit, self.config.public_max_limit)
            page_n = parse_page(page)
            allowed_types = _restricted_type(business_type)
            after = decode_cursor(cursor, 2) if cursor and cursor != CURSOR_START else None
            intent = self.parser.parse()
        strategy = "newest" if cursor else "rating_tiered"
        _record_trace(None, "browse", strategy)

        cache_key: str | None = None
        if cursor:
            cache_key = self.gateway.keys.build(
                PUBLIC_NAMESPACE, "cursor", cursor, limit_n, allowed_types[0] if allowed_types else "all"
            )
            cached = self._cache_lookup(cache_key)
            if cached is not None:
                return secure_envelope(cached, source="cache")

        candidates = self._retrieve(db, intent, ListingFilters(allowed_types=allowed_types))
        with timed_stage("ranking"):
            if cursor:
                ordered = sorted(candidates, key=_newest_first_key)
                result = cursor_page(ordered, _newest_first_key, after, limit_n)
            else:
                result = offset_page(rating_tiered_shuffle(candidates, self.rng), page_n, limit_n)

        payload = ListingPage(
            results=[to_card(candidate) for candidate in result.items],
            limit=limit_n,
            has_more=result.has_more,
            page=result.page,
            total_results=result.total,
            total_pages=result.total_pages,
            next_cursor=result.next_cursor,
            strategy=strategy,
        ).to_wire()
        if cache_key is not None:
            self.gateway.set(cache_key, payload, self.config.public_cache_ttl_s)
        _record_trace(result_count=len(result.items))
        return secure_envelope(payload)

    # Nearby feed

    def _nearby_radius(self, raw: str | None) -> int:
        if raw is None or raw == "":
            radius = self.config.nearby_default_radius_m
        else:
            radius = coerce_int(raw, 0) or self.config.search_default_radius_m
        return max(self.config.nearby_min_radius_m, min(self.config.nearby_max_radius_m, radius))

    def nearby(
        self,
        db: Session,
        *,
        lat: str | None,
        lng: str | None,
        max_distance: str | None = None,
        business_type: str | None = None,
        page: str | None = None,
        limit: str | None = None,
        cursor: str | None = None,
        cursor_distance: str | None = None,
        cursor_id: str | None = None,
    ) -> dict[str, Any]:
        with timed_stage("intent"):
            latitude, longitude = parse_coordinates(lat, lng, required=True)
            radius_m = self._nearby_radius(max_distance)
            limit_n = clamp_limit(limit, self.config.default_limit, self.config.nearby_max_limit)
            page_n = parse_page(page)
            allowed_types = _restricted_type(business_type)
            after = decode_cursor(cursor, 2) if cursor else legacy_distance_cursor(cursor_distance, cursor_id)
            intent = self.parser.parse(lat=latitude, lng=longitude, radius=radius_m, default_radius_m=radius_m)
        _record_trace(None, "near-me", RankingStrategy.DISTANCE.value)

        key_parts: list[object] = [
            self.gateway.keys.coordinate(latitude),
            self.gateway.keys.coordinate(longitude),
            radius_m,
            allowed_types[0] if allowed_types else "all",
        ]
        if after is not None:
            key_parts += ["cursor", f"{after[0]:.3f}", int(after[1]), limit_n]
        else:
            key_parts += ["page", page_n, limit_n]
        cache_key = self.gateway.keys.build(NEARBY_NAMESPACE, *key_parts)
        cached = self._cache_lookup(cache_key)
        if cached is not None:
            return secure_envelope(cached, source="cache")

        filters = ListingFilters(allowed_types=allowed_types, online_services_only=True)
        candidates = self._retrieve(db, intent, filters)
        with timed_stage("ranking"):
            ordered = sorted(candidates, key=_nearest_first_key)
            if after is not None:
                result = cursor_page(ordered, _nearest_first_key, after, limit_n)
            else:
                result = offset_page(ordered, page_n, limit_n)
                if result.has_more and result.items:
                    result.next_cursor = encode_cursor(_nearest_first_key(result.items[-1]))

        payload = ListingPage(
            results=[to_card(candidate) for candidate in result.items],
            limit=limit_n,
            has_more=result.has_more,
            page=result.page,
            total_results=result.total,
            total_pages=result.total_pages,
            next_cursor=result.next_cursor,
            search_type="near-me",
            strategy=RankingStrategy.DISTANCE.value,
            search_location=SearchLocation(latitude=latitude, longitude=longitude, radius=radius_m),
        ).to_wire()
        self.gateway.set(cache_key, payload, self.config.nearby_cache_ttl_s)
        _record_trace(result_count=len(result.items))
        return secure_envelope(payload)

    # Search

    def _filters(self, params: SearchParams) -> ListingFilters:
        amenities = tuple(item.strip() for item in (params.amenities or "").split(",") if item.strip())
        return ListingFilters(
            service=(params.service or "").strip() or None,
            offers_only=params.offers_only,
            amenities=amenities,
            gender=(params.gender or "").strip() or None,
            min_price=coerce_float(params.min_price),
            max_price=coerce_float(params.max_price),
        )

    def _search_cache_key(
        self,
        intent: SearchIntent,
        filters: ListingFilters,
        strategy: RankingStrategy,
        page: int,
        limit: int,
        cursor: str | None,
    ) -> str:
        fingerprint = {
            "keyword": (intent.keyword or "").lower(),
            "location": (intent.location or "").lower() if intent.has_location_filter else "",
            "category": (intent.category or "").lower(),
            "min_rating": intent.min_rating,
            "sort": intent.sort,
            "lat": self.gateway.keys.coordinate(intent.lat) if intent.lat is not None else None,
            "lng": self.gateway.keys.coordinate(intent.lng) if intent.lng is not None else None,
            "radius": intent.radius_m if intent.has_geo else None,
            "filters": asdict(filters),
            "strategy": strategy.value,
        }
        position = f"cursor:{cursor}" if cursor else f"page:{page}"
        return self.gateway.keys.build(SEARCH_NAMESPACE, self.gateway.keys.hash_complex_key(fingerprint), position, limit)

    def _plan_search(self, params: SearchParams) -> SearchPlan:
        with timed_stage("intent"):
            intent = self.parser.parse(
                query=params.query,
                location=params.location,
                category=params.category,
                min_rating=params.min_rating,
                sort=params.sort,
                lat=params.lat,
                lng=params.lng,
                radius=params.radius,
            )
            strategy = resolve_strategy(intent)
            limit_n = clamp_limit(params.limit, self.config.default_limit, self.config.search_max_limit)
            page_n = parse_page(params.page)
            cursor = params.cursor if params.cursor and not strategy.is_randomized else None
            after = decode_cursor(cursor, KEY_WIDTHS[strategy]) if cursor else None
            filters = self._filters(params)
        _record_trace(intent.keyword or params.query, intent.search_type, strategy.value)
        return SearchPlan(
            intent=intent,
            strategy=strategy,
            filters=filters,
            page=page_n,
            limit=limit_n,
            cursor=cursor,
            after=after,
        )

    def _run_search(self, db: Session, plan: SearchPlan) -> SearchOutcome:
        strategy = plan.strategy
        candidates = self._retrieve(db, plan.intent, plan.filters)
        ranked = rank_candidates(candidates, plan.intent, strategy)
        with timed_stage("ranking"):
            if strategy.is_randomized:
                sample = fairness_sample(ranked, plan.limit, self.rng)
                result = sampled_page(sample, len(ranked), plan.page, plan.limit)
            elif plan.after is not None:
                result = cursor_page(ranked, lambda c: sort_key(c, strategy), plan.after, plan.limit)
            else:
                result = offset_page(ranked, plan.page, plan.limit)
                if result.has_more and result.items:
                    result.next_cursor = encode_cursor(sort_key(result.items[-1], strategy))

        return SearchOutcome(
            intent=plan.intent,
            strategy=strategy,
            page=result,
            limit=plan.limit,
            cards=[to_card(candidate) for candidate in result.items],
        )

    @staticmethod
    def _search_payload(outcome: SearchOutcome) -> dict[str, Any]:
        return ListingPage(
            results=outcome.cards,
            limit=outcome.limit,
            has_more=outcome.page.has_more,
            page=outcome.page.page,
            total_results=outcome.page.total,
            total_pages=outcome.page.total_pages,
            next_cursor=outcome.page.next_cursor,
            search_type=outcome.intent.search_type,
            strategy=outcome.strategy.value,
        ).to_wire()

    def search(self, db: Session, params: SearchParams) -> dict[str, Any]:
        plan = self._plan_search(params)

        cache_key: str | None = None
        if not plan.strategy.is_randomized and not plan.intent.is_near_me:
            cache_key = self._search_cache_key(
                plan.intent, plan.filters, plan.strategy, plan.page, plan.limit, plan.cursor
            )
            cached = self._cache_lookup(cache_key)
            if cached is not None:
                _record_trace(result_count=len(cached.get("results", [])))
                return secure_envelope(cached, source="cache")

        outcome = self._run_search(db, plan)
        payload = self._search_payload(outcome)
        if cache_key is not None:
            self.gateway.set(cache_key, payload, self.config.search_cache_ttl_s)
        _record_trace(result_count=len(outcome.cards))
        return secure_envelope(payload)

    def search_with_places(self, db: Session, params: SearchParams) -> dict[str, Any]:
        coordinates = parse_coordinates(params.lat, params.lng, required=False)
        geocode_target: str | None = None
        if params.location and coordinates is None:
            geocode_target = params.location
        elif not params.location and coordinates is None and params.query:
            _keyword, geocode_target = split_keyword_location(params.query.strip())

        if geocode_target:
            try:
                geocoded = self.places.geocode(geocode_target)
            except UpstreamUnavailable as exc:
                logger.info("Geocoding unavailable for %r: %s", geocode_target, exc.message)
                geocoded = None
            if geocoded and geocoded.get("lat") is not None and geocoded.get("lng") is not None:
                coordinates = (float(geocoded["lat"]), float(geocoded["lng"]))

        db_params = SearchParams(**asdict(params))
        db_params.cursor = None
        if coordinates is not None:
            db_params.lat, db_params.lng = str(coordinates[0]), str(coordinates[1])

        outcome = self._run_search(db, self._plan_search(db_params))

        places: list[dict[str, Any]] = []
        if coordinates is not None and self.places.is_enabled:
            keyword = (params.query or params.category or "spa").strip()
            radius_m = coerce_int(params.radius, self.config.search_default_radius_m)
            try:
                places = self.places.nearby_search(coordinates[0], coordinates[1], keyword, radius_m)
            except UpstreamUnavailable as exc:
                logger.info("Nearby place lookup unavailable: %s", exc.message)

        merged = list(outcome.cards)
        seen_names = {card.name.lower() for card in merged}
        for place in places:
            name = str(place.get("name") or "")
            if not name or name.lower() in seen_names:
                continue
            seen_names.add(name.lower())
            merged.append(place_to_card(place))

        payload = ListingPage(
            results=merged,
            limit=outcome.limit,
            has_more=outcome.page.has_more,
            page=outcome.page.page,
            total_results=len(merged),
            search_type=outcome.intent.search_type,
            strategy=outcome.strategy.value,
            sources={"database": len(outcome.cards), "google_places": len(places)},
        ).to_wire()
        _record_trace(result_count=len(merged))
        return secure_envelope(payload)

    # Autocomplete and locations

    def autocomplete(
        self,
        db: Session,
        *,
        text: str | None,
        limit: str | None = None,
        lat: str | None = None,
        lng: str | None = None,
        business_type: str | None = None,
    ) -> dict[str, Any]:
        origin = parse_coordinates(lat, lng, required=False)
        limit_n = clamp_limit(limit, self.config.autocomplete_default_limit, self.config.search_max_limit)
        normalized = (text or "").strip()
        cache_key: str | None = None
        if len(normalized) >= 2 and not detect_near_me(normalized)[0]:
            fingerprint = {
                "input": normalized.lower(),
                "limit": limit_n,
                "lat": self.gateway.keys.coordinate(origin[0]) if origin else None,
                "lng": self.gateway.keys.coordinate(origin[1]) if origin else None,
                "type": (business_type or "all").lower(),
            }
            cache_key = self.gateway.keys.build(AUTOCOMPLETE_NAMESPACE, self.gateway.keys.hash_complex_key(fingerprint))
            cached = self.gateway.get(cache_key)
            if cached is not None:
                return {"success": True, "suggestions": cached, "source": "cache"}

        suggestions = [
            item.to_wire()
            for item in self.autocompleter.suggest(db, normalized, limit=limit_n, origin=origin, business_type=business_type)
        ]
        if cache_key is not None:
            self.gateway.set(cache_key, suggestions, self.config.autocomplete_cache_ttl_s)
        return {"success": True, "suggestions": suggestions, "source": "database_smart"}

    def place_autocomplete(self, text: str | None, types: str | None = None, location: str | None = None) -> dict[str, Any]:
        normalized = (text or "").strip()
        if len(normalized) < 2:
            return {"success": True, "suggestions": []}
        bias: str | None = None
        if location:
            parts = [part.strip() for part in location.split(",")]
            if len(parts) == 2 and all(coerce_float(part) is not None for part in parts):
                bias = f"{parts[0]},{parts[1]}"
        try:
            suggestions = self.places.autocomplete(normalized, types=types, location=bias)
        except UpstreamUnavailable as exc:
            logger.info("Place autocomplete unavailable: %s", exc.message)
            return {"success": True, "suggestions": [], "source": "fallback"}
        return {"success": True, "suggestions": suggestions, "source": "google_places"}

    def place_details(self, place_id: str | None) -> dict[str, Any]:
        if not place_id or not place_id.strip():
            raise ValidationError("place_id is required", code="MISSING_PLACE_ID")
        try:
            place = self.places.place_details(place_id.strip())
        except UpstreamUnavailable as exc:
            raise NotFoundError("Place not found", code="PLACE_NOT_FOUND") from exc
        return {"success": True, "place": place}

    def suggest_locations(self, text: str | None) -> dict[str, Any]:
        normalized = (text or "").strip()
        if len(normalized) < 2:
            return {"success": True, "suggestions": []}

        suggestions: list[dict[str, Any]] = [
            {
                "description": f"{city}, {state}",
                "main_text": city,
                "secondary_text": state,
                "type": "city",
                "source": "local",
            }
            for city, state in self.locations.match_cities(normalized, LOCAL_CITY_SUGGESTIONS)
        ]
        if self.places.is_enabled:
            try:
                remote = self.places.autocomplete(
                    normalized, types="(cities)", components=f"country:{self.config.places_region}"
                )
            except UpstreamUnavailable as exc:
                logger.info("City suggestions from place lookup unavailable: %s", exc.message)
                remote = []
            suggestions.extend({**item, "source": "google", "type": "place"} for item in remote)

        suggestions = suggestions[:MAX_LOCATION_SUGGESTIONS]
        return {"success": True, "suggestions": suggestions, "payload": encode_payload({"suggestions": suggestions})}

    def location_directory(self, search: str | None = None, state: str | None = None) -> dict[str, Any]:
        regions = self.locations.directory(search or "", state or "")
        entries = [
            LocationEntry(city=city, state=region.state, display_text=f"{city}, {region.state}")
            for region in regions
            for city in region.cities
        ]
        directory = LocationDirectory(
            states=[RegionView(state=region.state, code=region.state_code, cities=list(region.cities)) for region in regions],
            locations=entries,
            total_states=len(regions),
            total_cities=len(entries),
        )
        return secure_envelope(directory.to_wire())


@lru_cache(maxsize=1)
def get_discovery_service() -> DiscoveryService:
    return DiscoveryService(get_cache_gateway(), get_location_index(), get_places_client())
