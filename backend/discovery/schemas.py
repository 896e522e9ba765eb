from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RatingSummary(CamelModel):
    average: float = 0.0
    total_reviews: int = 0
    counts: dict[str, int] = Field(default_factory=dict)


class ServicePreview(CamelModel):
    name: str
    price: float
    duration: int
    category: str | None = None


class ListingCard(CamelModel):
    id: int | str
    name: str
    type: str | None = None
    category: str | None = None
    branch: str | None = None
    area: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    tags: list[str] = Field(default_factory=list)
    ratings: RatingSummary | None = None
    image: str | None = None
    images: dict[str, Any] | None = None
    gallery: list[str] = Field(default_factory=list)
    latitude: float | None = None
    longitude: float | None = None
    distance: int | None = None
    distance_km: float | None = None
    distance_text: str = ""
    is_open: bool | None = None
    snippet: str = ""
    phone: str | None = None
    social_media: dict[str, Any] | None = None
    services: list[ServicePreview] = Field(default_factory=list)
    offers: list[dict[str, Any]] = Field(default_factory=list)
    business_link: str | None = None
    slug: str | None = None
    seo: dict[str, Any] | None = None
    created_at: datetime | None = None
    source: str = "database"
    is_external: bool = False
    place_id: str | None = None


class SearchLocation(CamelModel):
    latitude: float
    longitude: float
    radius: int


class ListingPage(CamelModel):
    results: list[ListingCard]
    limit: int
    has_more: bool
    page: int | None = None
    total_results: int | None = None
    total_pages: int | None = None
    next_cursor: str | None = None
    search_type: str | None = None
    strategy: str | None = None
    search_location: SearchLocation | None = None
    sources: dict[str, int] | None = None


class Suggestion(CamelModel):
    id: str
    name: str
    display_text: str
    type: str
    location: str | None = None
    business_link: str | None = None
    rating: float | None = None
    score: float | None = None
    action: str | None = None
    search_query: str | None = None


class RegionView(CamelModel):
    state: str
    code: str
    cities: list[str]


class LocationEntry(CamelModel):
    city: str
    state: str
    display_text: str


class LocationDirectory(CamelModel):
    states: list[RegionView]
    locations: list[LocationEntry]
    total_states: int
    total_cities: int


class SuggestionsResponse(BaseModel):
    success: bool = True
    suggestions: list[dict[str, Any]]
    source: str | None = None
    payload: str | None = None


class PlaceDetailsResponse(BaseModel):
    success: bool = True
    place: dict[str, Any]


class SecureResponse(BaseModel):
    success: bool = True
    message: str = "Fetched successfully"
    source: str | None = None
    payload: str


class HealthResponse(BaseModel):
    status: str
