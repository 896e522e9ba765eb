import pytest

from discovery.errors import ValidationError
from discovery.services.distance_service import METERS_PER_DEGREE_LAT
from discovery.services.formatter_service import decode_payload
from discovery.services.search_service import CURSOR_START, SearchParams


def _payload(envelope):
    assert envelope["success"] is True
    return decode_payload(envelope["payload"])


def _names(payload):
    return [card["name"] for card in payload["results"]]


def _north_of(lat, meters):
    return lat + meters / METERS_PER_DEGREE_LAT


def test_best_spa_is_quality_search(db_session, discovery, add_listing):
    add_listing("Serenity Spa", type="spa", rating_average=4.6)
    add_listing("Spa World", type="spa", rating_average=4.1)
    add_listing("City Day Spa", type="spa", rating_average=4.2)
    add_listing("Budget Spa", type="spa", rating_average=3.5)
    add_listing("Glow Salon", type="salon", rating_average=4.9)

    payload = _payload(discovery.search(db_session, SearchParams(query="best spa")))

    assert _names(payload) == ["Spa World", "Serenity Spa", "City Day Spa"]
    assert all(card["ratings"]["average"] >= 4 for card in payload["results"])
    assert payload["strategy"] == "rating"
    assert payload["searchType"] == "general"


def test_state_search_matches_cities_in_state(db_session, discovery, add_listing):
    add_listing("Glow Studio", city="Mumbai", state="Maharashtra", rating_average=4.2)
    add_listing("Serenity Spa", city="Pune", state="Maharashtra", rating_average=4.7)
    add_listing("The Barber Room", city="Bengaluru", state="Karnataka", rating_average=4.9)

    params = SearchParams(location="Maharashtra")
    payload = _payload(discovery.search(db_session, params))
    again = discovery.search(db_session, params)

    assert sorted(_names(payload)) == ["Glow Studio", "Serenity Spa"]
    assert payload["searchType"] == "location"
    assert payload["strategy"] == "fairness"
    assert "source" not in again


def test_location_with_keyword_orders_by_rating(db_session, discovery, add_listing):
    add_listing("Glow Studio", city="Mumbai", state="Maharashtra", rating_average=4.2)
    add_listing("Lotus Studio", city="Pune", state="Maharashtra", rating_average=4.7)
    add_listing("Bay Studio", city="Bengaluru", state="Karnataka", rating_average=4.9)

    params = SearchParams(query="studio", location="Maharashtra")
    payload = _payload(discovery.search(db_session, params))

    assert _names(payload) == ["Lotus Studio", "Glow Studio"]
    assert payload["strategy"] == "location"
    assert discovery.search(db_session, params)["source"] == "cache"


def test_nearby_returns_listings_inside_radius_nearest_first(db_session, discovery, add_listing):
    for meters in (500, 1200, 2800, 3100, 50):
        add_listing(f"Salon {meters}", latitude=_north_of(19.07, meters), longitude=72.87)

    payload = _payload(discovery.nearby(db_session, lat="19.07", lng="72.87", max_distance="3000"))

    assert [card["distance"] for card in payload["results"]] == [50, 500, 1200, 2800]
    assert payload["searchLocation"] == {"latitude": 19.07, "longitude": 72.87, "radius": 3000}
    assert payload["searchType"] == "near-me"


def test_nearby_radius_defaults_and_clamps(discovery):
    assert discovery._nearby_radius(None) == 3000
    assert discovery._nearby_radius("0") == 15_000
    assert discovery._nearby_radius("far") == 15_000
    assert discovery._nearby_radius("10") == 100
    assert discovery._nearby_radius("900000") == 100_000


def test_nearby_requires_coordinates(db_session, discovery):
    with pytest.raises(ValidationError) as exc_info:
        discovery.nearby(db_session, lat=None, lng="72.87")
    assert exc_info.value.code == "MISSING_COORDINATES"


def test_nearby_cursor_pages_do_not_overlap(db_session, discovery, add_listing):
    for meters in (100, 200, 300, 400, 500):
        add_listing(f"Salon {meters}", latitude=_north_of(19.07, meters), longitude=72.87)

    first = _payload(discovery.nearby(db_session, lat="19.07", lng="72.87", limit="2"))
    second = _payload(discovery.nearby(db_session, lat="19.07", lng="72.87", limit="2", cursor=first["nextCursor"]))

    assert _names(first) == ["Salon 100", "Salon 200"]
    assert _names(second) == ["Salon 300", "Salon 400"]
    assert "totalResults" not in second

    last = first["results"][-1]
    legacy = _payload(
        discovery.nearby(
            db_session,
            lat="19.07",
            lng="72.87",
            limit="2",
            cursor_distance=str(last["distance"] - 1),
            cursor_id=str(last["id"]),
        )
    )
    assert _names(legacy)[0] == "Salon 200"


def test_nearby_second_call_is_served_from_cache(db_session, discovery, add_listing):
    add_listing("Salon", latitude=19.07, longitude=72.87)
    first = discovery.nearby(db_session, lat="19.07", lng="72.87")
    second = discovery.nearby(db_session, lat="19.07", lng="72.87")
    assert "source" not in first
    assert second["source"] == "cache"
    assert _payload(second) == _payload(first)


def test_browse_without_signals_samples_fairly(db_session, discovery, add_listing):
    for index in range(6):
        add_listing(f"Salon {index}", rating_average=float(index % 5))

    first = _payload(discovery.search(db_session, SearchParams(limit="3")))
    again = discovery.search(db_session, SearchParams(limit="3"))

    assert first["strategy"] == "fairness"
    assert len(first["results"]) == 3
    assert first["totalResults"] == 6
    assert first["hasMore"] is True
    assert "nextCursor" not in first
    assert "source" not in again


def test_repeated_browse_rotates_listings_and_skips_inactive(db_session, discovery, add_listing):
    for index in range(8):
        add_listing(f"Salon {index}", rating_average=4.0)
    add_listing("Shuttered Salon", rating_average=5.0, is_active=False)

    seen = set()
    for _ in range(120):
        payload = _payload(discovery.search(db_session, SearchParams(limit="3")))
        names = _names(payload)
        assert len(names) == 3
        assert "Shuttered Salon" not in names
        assert payload["totalResults"] == 8
        seen.add(tuple(sorted(names)))

    assert len(seen) > 1


def test_deterministic_search_is_cached(db_session, discovery, add_listing):
    add_listing("Glow Studio", city="Mumbai")
    params = SearchParams(query="glow")
    discovery.search(db_session, params)
    cached = discovery.search(db_session, params)
    assert cached["source"] == "cache"
    assert _names(_payload(cached)) == ["Glow Studio"]


def test_near_me_search_is_never_cached(db_session, discovery, add_listing):
    add_listing("Glow Spa", latitude=19.07, longitude=72.87)
    params = SearchParams(query="spa near me", lat="19.07", lng="72.87")
    discovery.search(db_session, params)
    second = discovery.search(db_session, params)
    assert "source" not in second
    assert _payload(second)["strategy"] == "near_me"


def test_search_cursor_continues_offset_page(db_session, discovery, add_listing):
    for index, rating in enumerate([4.9, 4.7, 4.5, 4.3, 4.1]):
        add_listing(f"Glow {index}", rating_average=rating)

    first = _payload(discovery.search(db_session, SearchParams(query="glow", sort="rating", limit="2")))
    second = _payload(
        discovery.search(db_session, SearchParams(query="glow", sort="rating", limit="2", cursor=first["nextCursor"]))
    )
    assert _names(first) == ["Glow 0", "Glow 1"]
    assert _names(second) == ["Glow 2", "Glow 3"]


def test_malformed_search_cursor_is_rejected(db_session, discovery, add_listing):
    add_listing("Glow")
    with pytest.raises(ValidationError):
        discovery.search(db_session, SearchParams(query="glow", cursor="%%%"))


def test_search_request_filters(db_session, discovery, add_listing):
    add_listing("Glow Ladies", tags=["women"], amenities=["wifi"], services=[("Facial", 900.0)])
    add_listing("Glow Gents", tags=["men"], amenities=["wifi"], services=[("Facial", 400.0)])

    params = SearchParams(query="glow", gender="female", amenities="wifi", min_price="500")
    assert _names(_payload(discovery.search(db_session, params))) == ["Glow Ladies"]


def test_public_listing_restricts_types(db_session, discovery, add_listing):
    add_listing("Glow", type="salon")
    add_listing("Calm", type="spa")

    payload = _payload(discovery.public_listing(db_session, business_type="spa"))
    assert _names(payload) == ["Calm"]

    everything = _payload(discovery.public_listing(db_session, business_type="restaurant"))
    assert sorted(_names(everything)) == ["Calm", "Glow"]
    assert everything["strategy"] == "rating_tiered"


def test_public_listing_cursor_feed_is_newest_first(db_session, discovery, add_listing):
    for index in range(5):
        add_listing(f"Salon {index}")

    first = _payload(discovery.public_listing(db_session, limit="2", cursor=CURSOR_START))
    second = _payload(discovery.public_listing(db_session, limit="2", cursor=first["nextCursor"]))
    third = _payload(discovery.public_listing(db_session, limit="2", cursor=second["nextCursor"]))

    assert _names(first) == ["Salon 4", "Salon 3"]
    assert _names(second) == ["Salon 2", "Salon 1"]
    assert _names(third) == ["Salon 0"]
    assert third["hasMore"] is False
    assert first["strategy"] == "newest"


def test_search_with_places_degrades_to_database(db_session, discovery, add_listing):
    add_listing("Glow Spa", city="Mumbai", type="spa")

    payload = _payload(discovery.search_with_places(db_session, SearchParams(query="spa", location="Mumbai")))

    assert _names(payload) == ["Glow Spa"]
    assert payload["sources"] == {"database": 1, "google_places": 0}


def test_location_directory_and_suggestions(discovery):
    directory = _payload(discovery.location_directory(search="pun"))
    assert directory["states"] == [{"state": "Maharashtra", "code": "MH", "cities": ["Pune"]}]
    assert directory["locations"] == [{"city": "Pune", "state": "Maharashtra", "displayText": "Pune, Maharashtra"}]

    suggested = discovery.suggest_locations("mum")
    assert [item["main_text"] for item in suggested["suggestions"]] == ["Mumbai"]
    assert decode_payload(suggested["payload"]) == {"suggestions": suggested["suggestions"]}
    assert discovery.suggest_locations("m") == {"success": True, "suggestions": []}


def test_place_lookups_fall_back_when_disabled(discovery):
    assert discovery.place_autocomplete("glow") == {"success": True, "suggestions": [], "source": "fallback"}
    with pytest.raises(ValidationError):
        discovery.place_details("  ")
