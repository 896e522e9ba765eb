import httpx
import pytest

from discovery.errors import NotFoundError, UpstreamUnavailable
from discovery.services.formatter_service import decode_payload
from discovery.services.places_service import PlacesClient, parse_address_components
from discovery.services.search_service import SearchParams

GEOCODE_RESPONSE = {
    "status": "OK",
    "results": [
        {
            "formatted_address": "Mumbai, Maharashtra, India",
            "geometry": {"location": {"lat": 19.076, "lng": 72.8777}},
            "address_components": [
                {"long_name": "Mumbai", "types": ["locality", "political"]},
                {"long_name": "Maharashtra", "types": ["administrative_area_level_1", "political"]},
                {"long_name": "India", "types": ["country", "political"]},
            ],
        }
    ],
}

NEARBY_RESPONSE = {
    "status": "OK",
    "results": [
        {
            "place_id": "dup",
            "name": "Glow Spa",
            "vicinity": "Bandra",
            "geometry": {"location": {"lat": 19.06, "lng": 72.84}},
            "rating": 4.1,
        },
        {
            "place_id": "zen-1",
            "name": "Zen Spa",
            "vicinity": "Khar West",
            "geometry": {"location": {"lat": 19.07, "lng": 72.83}},
            "rating": 4.4,
            "user_ratings_total": 210,
        },
    ],
}

AUTOCOMPLETE_RESPONSE = {
    "status": "OK",
    "predictions": [
        {
            "place_id": "p-1",
            "description": "Pune, Maharashtra, India",
            "structured_formatting": {"main_text": "Pune", "secondary_text": "Maharashtra, India"},
            "types": ["locality"],
        }
    ],
}


class RecordingTransport:
    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/geocode/json"):
            return httpx.Response(200, json=GEOCODE_RESPONSE)
        if path.endswith("/nearbysearch/json"):
            return httpx.Response(200, json=NEARBY_RESPONSE)
        if path.endswith("/autocomplete/json"):
            return httpx.Response(200, json=AUTOCOMPLETE_RESPONSE)
        if path.endswith("/details/json"):
            return httpx.Response(200, json={"status": "NOT_FOUND"})
        return httpx.Response(404)


@pytest.fixture
def enabled_settings(test_settings):
    return test_settings.model_copy(update={"places_enabled": True, "places_api_key": "test-key"})


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def enabled_places(enabled_settings, gateway, transport):
    client = PlacesClient(enabled_settings, gateway, http_client=httpx.Client(transport=httpx.MockTransport(transport)))
    yield client
    client.close()


def test_placeholder_key_disables_lookup(test_settings, gateway):
    config = test_settings.model_copy(update={"places_enabled": True, "places_api_key": "your_google_places_api_key_here"})
    client = PlacesClient(config, gateway, http_client=httpx.Client(transport=httpx.MockTransport(RecordingTransport())))
    assert not client.is_enabled
    with pytest.raises(UpstreamUnavailable):
        client.geocode("Mumbai")


def test_geocode_parses_and_caches(enabled_places, transport):
    first = enabled_places.geocode("Mumbai")
    second = enabled_places.geocode("Mumbai")

    assert first == second
    assert (first["lat"], first["lng"]) == (19.076, 72.8777)
    assert first["address_components"]["state"] == "Maharashtra"
    assert len(transport.requests) == 1
    assert transport.requests[0].url.params["key"] == "test-key"
    assert transport.requests[0].url.params["components"] == "country:IN"


def test_autocomplete_maps_predictions(enabled_places):
    suggestions = enabled_places.autocomplete("pun", types="(cities)")
    assert suggestions == [
        {
            "place_id": "p-1",
            "description": "Pune, Maharashtra, India",
            "main_text": "Pune",
            "secondary_text": "Maharashtra, India",
            "types": ["locality"],
        }
    ]
    assert enabled_places.autocomplete("p") == []


def test_error_status_is_upstream_unavailable(enabled_places):
    with pytest.raises(UpstreamUnavailable):
        enabled_places.place_details("missing")


def test_http_failure_is_upstream_unavailable(enabled_settings, gateway):
    client = PlacesClient(
        enabled_settings,
        gateway,
        http_client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(502))),
    )
    with pytest.raises(UpstreamUnavailable):
        client.nearby_search(19.07, 72.87, "spa")


def test_parse_address_components_ignores_unknown_types():
    parsed = parse_address_components([{"long_name": "400050", "types": ["postal_code"]}, {"long_name": "x", "types": []}])
    assert parsed == {"city": "", "state": "", "country": "", "postal_code": "400050"}


def test_search_with_places_merges_without_duplicates(db_session, discovery, enabled_places, add_listing):
    add_listing("Glow Spa", type="spa", city="Mumbai", latitude=19.07, longitude=72.87)
    discovery.places = enabled_places

    envelope = discovery.search_with_places(db_session, SearchParams(query="spa", location="Mumbai"))
    payload = decode_payload(envelope["payload"])

    assert [card["name"] for card in payload["results"]] == ["Glow Spa", "Zen Spa"]
    external = payload["results"][1]
    assert external["isExternal"] is True
    assert external["id"] == "zen-1"
    assert payload["sources"] == {"database": 1, "google_places": 2}
    assert payload["searchType"] == "geo"


def test_suggest_locations_merges_local_and_remote(discovery, enabled_places):
    discovery.places = enabled_places
    result = discovery.suggest_locations("pun")
    assert [(item["main_text"], item["source"]) for item in result["suggestions"]] == [
        ("Pune", "local"),
        ("Pune", "google"),
    ]


def test_place_details_maps_upstream_failure_to_not_found(discovery, enabled_places):
    discovery.places = enabled_places
    with pytest.raises(NotFoundError) as exc_info:
        discovery.place_details("missing")
    assert exc_info.value.code == "PLACE_NOT_FOUND"
    assert exc_info.value.status_code == 404
