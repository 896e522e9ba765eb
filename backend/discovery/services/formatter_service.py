"""Public card projection and the obfuscated response envelope.

The payload obfuscation is a repeating-key XOR over the UTF-8 JSON followed
by base64. It deters casual inspection only; anyone with the key reverses it.
"""
from __future__ import annotations

import base64
import json
from datetime import datetime
from typing import Any, Iterable

from ..config import settings
from ..models import Business, Service
from ..schemas import ListingCard, RatingSummary, ServicePreview
from .candidate_service import Candidate
from .distance_service import format_distance_text
from .time_service import is_open_now

DEFAULT_SERVICE_DURATION = 60


def _xor(data: bytes, key: bytes) -> bytes:
    return bytes(byte ^ key[index % len(key)] for index, byte in enumerate(data))


def obfuscate(data: bytes, key: str | None = None) -> str:
    return base64.b64encode(_xor(data, (key or settings.payload_key).encode("utf-8"))).decode("ascii")


def deobfuscate(token: str, key: str | None = None) -> bytes:
    return _xor(base64.b64decode(token), (key or settings.payload_key).encode("utf-8"))


def serialize_payload(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encode_payload(payload: Any, key: str | None = None) -> str:
    return obfuscate(serialize_payload(payload), key)


def decode_payload(token: str, key: str | None = None) -> Any:
    return json.loads(deobfuscate(token, key))


def secure_envelope(payload: Any, *, source: str | None = None, message: str = "Fetched successfully") -> dict[str, Any]:
    envelope: dict[str, Any] = {"success": True, "message": message}
    if source:
        envelope["source"] = source
    envelope["payload"] = encode_payload(payload)
    return envelope


def effective_price_duration(service: Service) -> tuple[float, int]:
    """First active pricing option wins; otherwise the flat price and duration."""
    for option in service.pricing_options or []:
        if isinstance(option, dict) and option.get("isActive") is not False:
            try:
                price = float(option.get("price") or 0)
            except (TypeError, ValueError):
                price = 0.0
            duration = option.get("duration")
            return price, int(duration) if isinstance(duration, (int, float)) and duration else DEFAULT_SERVICE_DURATION
    return float(service.price or 0), int(service.duration or DEFAULT_SERVICE_DURATION)


def service_preview(services: Iterable[Service], limit: int | None = None) -> list[ServicePreview]:
    cap = limit if limit is not None else settings.service_preview_limit
    preview: list[ServicePreview] = []
    for service in services:
        if len(preview) >= cap:
            break
        price, duration = effective_price_duration(service)
        preview.append(ServicePreview(name=service.name, price=price, duration=duration, category=service.category))
    return preview


def make_snippet(description: str | None, length: int | None = None) -> str:
    if not description:
        return ""
    return f"{description[: length or settings.snippet_length]}..."


def primary_image(images: dict | None) -> str | None:
    if not isinstance(images, dict):
        return None
    for key in ("thumbnail", "logo", "banner"):
        value = images.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def rating_summary(business: Business) -> RatingSummary:
    counts = business.rating_counts if isinstance(business.rating_counts, dict) else {}
    return RatingSummary(
        average=float(business.rating_average or 0.0),
        total_reviews=int(business.total_reviews or 0),
        counts={str(star): int(count) for star, count in counts.items()},
    )


def to_card(candidate: Candidate, now_utc: datetime | None = None) -> ListingCard:
    business = candidate.business
    images = business.images if isinstance(business.images, dict) else {}
    gallery = [item for item in images.get("gallery") or [] if isinstance(item, str)]
    distance = candidate.distance_m
    return ListingCard(
        id=business.id,
        name=business.name,
        type=business.type,
        category=business.category,
        branch=business.branch,
        area=business.area,
        address=business.address,
        city=business.city,
        state=business.state,
        tags=[tag for tag in business.tags or [] if isinstance(tag, str)],
        ratings=rating_summary(business),
        image=primary_image(images),
        images=images or None,
        gallery=gallery,
        latitude=business.latitude,
        longitude=business.longitude,
        distance=round(distance) if distance is not None else None,
        distance_km=round(distance / 1000, 2) if distance is not None else None,
        distance_text=format_distance_text(distance),
        is_open=is_open_now(business.working_hours, business.timezone, now_utc=now_utc),
        snippet=make_snippet(business.description),
        phone=business.phone,
        social_media=business.social_media or None,
        services=service_preview(candidate.services),
        offers=list(business.offers or []),
        business_link=business.business_link,
        slug=business.slug,
        seo=business.seo or None,
        created_at=business.created_at,
    )


def place_to_card(place: dict[str, Any]) -> ListingCard:
    rating = place.get("rating")
    vicinity = place.get("vicinity") or ""
    return ListingCard(
        id=str(place.get("place_id") or ""),
        name=str(place.get("name") or ""),
        address=vicinity or None,
        ratings=RatingSummary(average=float(rating), total_reviews=int(place.get("user_ratings_total") or 0))
        if rating is not None
        else None,
        latitude=place.get("lat"),
        longitude=place.get("lng"),
        snippet=f"Found on Google Places - {vicinity}",
        source="google_places",
        is_external=True,
        place_id=place.get("place_id"),
    )
