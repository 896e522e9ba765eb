from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import PlaceDetailsResponse, SecureResponse, SuggestionsResponse
from ..services.search_service import DiscoveryService, SearchParams, get_discovery_service

router = APIRouter(tags=["discovery"])


def get_search_service() -> DiscoveryService:
    return get_discovery_service()


@router.get("/businesses", response_model=SecureResponse, response_model_exclude_none=True)
def public_businesses(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    type: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    db: Session = Depends(get_db),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    return service.public_listing(db, page=page, limit=limit, business_type=type, cursor=cursor)


@router.get("/businesses/nearby", response_model=SecureResponse, response_model_exclude_none=True)
def nearby_businesses(
    lat: str | None = Query(default=None),
    lng: str | None = Query(default=None),
    max_distance: str | None = Query(default=None, alias="maxDistance"),
    type: str | None = Query(default=None),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    cursor_distance: str | None = Query(default=None, alias="cursorDistance"),
    cursor_id: str | None = Query(default=None, alias="cursorId"),
    db: Session = Depends(get_db),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    return service.nearby(
        db,
        lat=lat,
        lng=lng,
        max_distance=max_distance,
        business_type=type,
        page=page,
        limit=limit,
        cursor=cursor,
        cursor_distance=cursor_distance,
        cursor_id=cursor_id,
    )


@router.get("/businesses/search", response_model=SecureResponse, response_model_exclude_none=True)
def search_businesses(
    q: str | None = Query(default=None),
    location: str | None = Query(default=None),
    lat: str | None = Query(default=None),
    lng: str | None = Query(default=None),
    radius: str | None = Query(default=None),
    category: str | None = Query(default=None),
    type: str | None = Query(default=None),
    min_rating: str | None = Query(default=None, alias="minRating"),
    min_price: str | None = Query(default=None, alias="minPrice"),
    max_price: str | None = Query(default=None, alias="maxPrice"),
    service_name: str | None = Query(default=None, alias="service"),
    offers: bool = Query(default=False),
    amenities: str | None = Query(default=None),
    gender: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    db: Session = Depends(get_db),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    params = SearchParams(
        query=q,
        location=location,
        category=category or type,
        min_rating=min_rating,
        sort=sort,
        lat=lat,
        lng=lng,
        radius=radius,
        service=service_name,
        offers_only=offers,
        amenities=amenities,
        gender=gender,
        min_price=min_price,
        max_price=max_price,
        page=page,
        limit=limit,
        cursor=cursor,
    )
    return service.search(db, params)


@router.get("/businesses/autocomplete", response_model=SuggestionsResponse, response_model_exclude_none=True)
def business_autocomplete(
    input: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    lat: str | None = Query(default=None),
    lng: str | None = Query(default=None),
    type: str | None = Query(default=None),
    db: Session = Depends(get_db),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    return service.autocomplete(db, text=input, limit=limit, lat=lat, lng=lng, business_type=type)


@router.get("/places/autocomplete", response_model=SuggestionsResponse, response_model_exclude_none=True)
def places_autocomplete(
    input: str | None = Query(default=None),
    types: str | None = Query(default=None),
    location: str | None = Query(default=None),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    return service.place_autocomplete(input, types=types, location=location)


@router.get("/places/details", response_model=PlaceDetailsResponse)
def place_details(
    place_id: str | None = Query(default=None),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    return service.place_details(place_id)


@router.get("/locations/suggest", response_model=SuggestionsResponse, response_model_exclude_none=True)
def suggest_locations(
    input: str | None = Query(default=None),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    return service.suggest_locations(input)


@router.get("/locations", response_model=SecureResponse, response_model_exclude_none=True)
def location_directory(
    search: str | None = Query(default=None),
    state: str | None = Query(default=None),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    return service.location_directory(search=search, state=state)


@router.get("/search/places", response_model=SecureResponse, response_model_exclude_none=True)
def search_with_places(
    q: str | None = Query(default=None),
    location: str | None = Query(default=None),
    lat: str | None = Query(default=None),
    lng: str | None = Query(default=None),
    radius: str | None = Query(default=None),
    category: str | None = Query(default=None),
    min_rating: str | None = Query(default=None, alias="minRating"),
    sort: str | None = Query(default=None),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    db: Session = Depends(get_db),
    service: DiscoveryService = Depends(get_search_service),
) -> dict:
    params = SearchParams(
        query=q,
        location=location,
        category=category,
        min_rating=min_rating,
        sort=sort,
        lat=lat,
        lng=lng,
        radius=radius,
        page=page,
        limit=limit,
    )
    return service.search_with_places(db, params)
