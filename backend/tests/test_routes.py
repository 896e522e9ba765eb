import json

from sqlalchemy.orm import sessionmaker

from discovery import main
from discovery.services.distance_service import METERS_PER_DEGREE_LAT
from discovery.services.formatter_service import decode_payload


def test_search_endpoint_returns_obfuscated_payload(client, add_listing):
    add_listing("Glow Studio", city="Mumbai", rating_average=4.5)

    response = client.get("/api/businesses/search", params={"q": "glow"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Fetched successfully"
    payload = decode_payload(body["payload"])
    assert [card["name"] for card in payload["results"]] == ["Glow Studio"]


def test_search_endpoint_sets_performance_headers(client, add_listing):
    add_listing("Glow Studio")

    response = client.get("/api/businesses/search", params={"q": "glow"})

    header = json.loads(response.headers["X-Search-Performance"])
    assert header["result_count"] == 1
    assert header["intent_time_ms"] is not None
    assert header["db_time_ms"] is not None
    assert header["cache_hit"] is False
    assert response.headers["X-Request-Id"] == header["request_id"]


def test_nearby_endpoint_uses_camel_case_params(client, add_listing):
    add_listing("Close", latitude=19.07 + 200 / METERS_PER_DEGREE_LAT, longitude=72.87)
    add_listing("Distant", latitude=19.07 + 4000 / METERS_PER_DEGREE_LAT, longitude=72.87)

    response = client.get("/api/businesses/nearby", params={"lat": "19.07", "lng": "72.87", "maxDistance": "1000"})

    payload = decode_payload(response.json()["payload"])
    assert [card["name"] for card in payload["results"]] == ["Close"]


def test_missing_coordinates_is_a_400(client):
    response = client.get("/api/businesses/nearby", params={"lng": "72.87"})
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "message": "Latitude and longitude are required",
        "code": "MISSING_COORDINATES",
    }


def test_malformed_cursor_is_a_400(client, add_listing):
    add_listing("Glow")
    response = client.get("/api/businesses/search", params={"q": "glow", "cursor": "!!"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CURSOR"


def test_soft_parameters_fall_back_instead_of_failing(client, add_listing):
    add_listing("Glow")
    response = client.get("/api/businesses/search", params={"q": "glow", "page": "x", "limit": "-3", "minRating": "?"})
    assert response.status_code == 200
    payload = decode_payload(response.json()["payload"])
    assert payload["limit"] == 1
    assert payload["page"] == 1


def test_public_listing_endpoint(client, add_listing):
    add_listing("Calm", type="spa")
    payload = decode_payload(client.get("/api/businesses", params={"type": "spa"}).json()["payload"])
    assert [card["name"] for card in payload["results"]] == ["Calm"]


def test_autocomplete_endpoint(client, add_listing):
    add_listing("Glow Studio", city="Mumbai")
    body = client.get("/api/businesses/autocomplete", params={"input": "glo"}).json()
    assert body["success"] is True
    assert body["suggestions"][0]["displayText"] == "Glow Studio - Mumbai"


def test_place_endpoints_degrade(client):
    assert client.get("/api/places/autocomplete", params={"input": "pune"}).json()["source"] == "fallback"
    details = client.get("/api/places/details")
    assert details.status_code == 400
    assert details.json()["code"] == "MISSING_PLACE_ID"


def test_location_endpoints(client):
    directory = client.get("/api/locations", params={"state": "karnataka"}).json()
    states = decode_payload(directory["payload"])["states"]
    assert [state["state"] for state in states] == ["Karnataka"]

    suggestions = client.get("/api/locations/suggest", params={"input": "ben"}).json()["suggestions"]
    assert suggestions[0]["description"] == "Bengaluru, Karnataka"


def test_search_with_places_endpoint(client, add_listing):
    add_listing("Glow Spa", city="Pune")
    payload = decode_payload(client.get("/api/search/places", params={"q": "spa", "location": "Pune"}).json()["payload"])
    assert payload["sources"] == {"database": 1, "google_places": 0}


def test_unknown_route_uses_error_shape(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_health_checks_store(client, engine, monkeypatch):
    monkeypatch.setattr(main, "SessionLocal", sessionmaker(bind=engine))
    assert client.get("/health").json() == {"status": "ok"}


def test_incoming_request_id_is_echoed(client):
    request_id = "0b7a1d4e-3f56-4c1e-9a55-2f4f8f0f8b21"
    response = client.get("/api/locations", headers={"X-Request-Id": request_id})
    assert response.headers["X-Request-Id"] == request_id
    assert "X-Search-Performance" not in response.headers
