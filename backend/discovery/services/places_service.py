"""Google Places / Geocoding client.

Every call either returns data or raises ``UpstreamUnavailable``; callers on
search paths catch it and fall back to database-only results.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable

import httpx

from ..config import Settings, settings
from ..errors import UpstreamUnavailable
from .cache_service import PLACES_NAMESPACE, CacheGateway, get_cache_gateway

logger = logging.getLogger(__name__)

PLACES_BASE_URL = "https://maps.googleapis.com/maps/api/place"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DETAILS_FIELDS = "name,formatted_address,geometry,address_components,types,place_id"
PLACEHOLDER_KEYS = {"", "your_google_places_api_key_here"}


def parse_address_components(components: list[dict[str, Any]]) -> dict[str, str]:
    result = {"city": "", "state": "", "country": "", "postal_code": ""}
    for component in components:
        types = component.get("types") or []
        name = component.get("long_name") or ""
        if "locality" in types:
            result["city"] = name
        elif "administrative_area_level_1" in types:
            result["state"] = name
        elif "country" in types:
            result["country"] = name
        elif "postal_code" in types:
            result["postal_code"] = name
    return result


def _location(payload: dict[str, Any]) -> dict[str, Any]:
    return (payload.get("geometry") or {}).get("location") or {}


class PlacesClient:
    def __init__(
        self,
        config: Settings,
        gateway: CacheGateway,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self._client = http_client or httpx.Client(timeout=config.places_timeout_s)

    def close(self) -> None:
        self._client.close()

    @property
    def is_enabled(self) -> bool:
        return self.config.places_enabled and (self.config.places_api_key or "").strip() not in PLACEHOLDER_KEYS

    def _request_json(self, url: str, params: dict[str, Any], timeout_s: float) -> dict[str, Any]:
        if not self.is_enabled:
            raise UpstreamUnavailable("Place lookup is not enabled")
        try:
            response = self._client.get(url, params={**params, "key": self.config.places_api_key}, timeout=timeout_s)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Place lookup request failed url=%s error=%s", url, exc)
            raise UpstreamUnavailable("Place lookup request failed") from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Unexpected place lookup payload")

        status = payload.get("status")
        if status not in {"OK", "ZERO_RESULTS"}:
            logger.warning("Place lookup returned status=%s url=%s", status, url)
            raise UpstreamUnavailable(f"Place lookup returned {status}")
        return payload

    def _cached(self, kind: str, params: dict[str, Any], loader: Callable[[], Any]) -> Any:
        key = self.gateway.keys.build(PLACES_NAMESPACE, kind, self.gateway.keys.hash_complex_key(params))
        cached = self.gateway.get(key)
        if cached is not None:
            return cached["value"]
        value = loader()
        self.gateway.set(key, {"value": value}, self.config.places_cache_ttl_s)
        return value

    def autocomplete(
        self,
        text: str,
        *,
        types: str | None = None,
        location: str | None = None,
        radius_m: int | None = None,
        components: str | None = None,
    ) -> list[dict[str, Any]]:
        clean = text.strip()
        if len(clean) < 2:
            return []
        params: dict[str, Any] = {"input": clean}
        if types:
            params["types"] = types
        if location:
            params["location"] = location
            params["radius"] = radius_m or 30_000
        if components:
            params["components"] = components
        elif not location:
            params["components"] = f"country:{self.config.places_region}"

        def load() -> list[dict[str, Any]]:
            payload = self._request_json(f"{PLACES_BASE_URL}/autocomplete/json", params, self.config.places_timeout_s)
            suggestions: list[dict[str, Any]] = []
            for prediction in payload.get("predictions") or []:
                formatting = prediction.get("structured_formatting") or {}
                suggestions.append(
                    {
                        "place_id": prediction.get("place_id"),
                        "description": prediction.get("description") or "",
                        "main_text": formatting.get("main_text") or prediction.get("description") or "",
                        "secondary_text": formatting.get("secondary_text") or "",
                        "types": prediction.get("types") or [],
                    }
                )
            return suggestions

        return self._cached("autocomplete", params, load)

    def geocode(self, address: str) -> dict[str, Any] | None:
        params = {"address": address.strip(), "components": f"country:{self.config.places_region.upper()}"}

        def load() -> dict[str, Any] | None:
            payload = self._request_json(GEOCODE_URL, params, self.config.places_timeout_s)
            results = payload.get("results") or []
            if not results:
                return None
            first = results[0]
            location = _location(first)
            return {
                "formatted_address": first.get("formatted_address"),
                "lat": location.get("lat"),
                "lng": location.get("lng"),
                "address_components": parse_address_components(first.get("address_components") or []),
            }

        return self._cached("geocode", params, load)

    def place_details(self, place_id: str) -> dict[str, Any]:
        params = {"place_id": place_id, "fields": DETAILS_FIELDS}

        def load() -> dict[str, Any]:
            payload = self._request_json(f"{PLACES_BASE_URL}/details/json", params, self.config.places_timeout_s)
            place = payload.get("result")
            if not isinstance(place, dict):
                raise UpstreamUnavailable("Place lookup returned no result")
            location = _location(place)
            return {
                "place_id": place.get("place_id"),
                "name": place.get("name"),
                "formatted_address": place.get("formatted_address"),
                "lat": location.get("lat"),
                "lng": location.get("lng"),
                "types": place.get("types") or [],
                "address_components": parse_address_components(place.get("address_components") or []),
            }

        return self._cached("details", params, load)

    def nearby_search(self, lat: float, lng: float, keyword: str, radius_m: int = 5000) -> list[dict[str, Any]]:
        params = {"location": f"{lat},{lng}", "radius": radius_m, "keyword": keyword}

        def load() -> list[dict[str, Any]]:
            payload = self._request_json(f"{PLACES_BASE_URL}/nearbysearch/json", params, self.config.places_nearby_timeout_s)
            places: list[dict[str, Any]] = []
            for place in payload.get("results") or []:
                location = _location(place)
                places.append(
                    {
                        "place_id": place.get("place_id"),
                        "name": place.get("name") or "",
                        "vicinity": place.get("vicinity") or "",
                        "lat": location.get("lat"),
                        "lng": location.get("lng"),
                        "rating": place.get("rating"),
                        "user_ratings_total": place.get("user_ratings_total"),
                        "types": place.get("types") or [],
                        "business_status": place.get("business_status"),
                    }
                )
            return places

        return self._cached("nearby", params, load)


@lru_cache(maxsize=1)
def get_places_client() -> PlacesClient:
    return PlacesClient(settings, get_cache_gateway())
