from __future__ import annotations

import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..database import fetch_all, fetch_rows
from ..models import Business, Service
from ..schemas import Suggestion
from .candidate_service import eligible_statement
from .distance_service import euclidean_degrees
from .intent_service import NEAR_ME_PATTERN, split_keyword_location, strip_quality_prefix

logger = logging.getLogger(__name__)

BUSINESS_BASE_SCORE = 10.0
SERVICE_SCORE = 8.0
MAX_SERVICE_SUGGESTIONS = 5
MIN_INPUT_LENGTH = 2


def _location_label(*parts: str | None) -> str:
    seen: set[str] = set()
    unique: list[str] = []
    for part in parts:
        clean = (part or "").strip()
        if clean and clean.lower() not in seen:
            seen.add(clean.lower())
            unique.append(clean)
    return ", ".join(unique)


def near_me_suggestion() -> Suggestion:
    return Suggestion(
        id="near-me",
        name="Search Near Me",
        location="Current Location",
        display_text="Search Near Me",
        type="action",
        action="near_me",
    )


class AutocompleteService:
    def _business_query(self, keyword: str, location: str | None, business_type: str | None, limit: int):
        stmt = eligible_statement().where(Business.allow_online_booking.is_(True))
        if business_type and business_type.lower() != "all":
            stmt = stmt.where(Business.type == business_type)

        if location:
            stmt = stmt.where(
                and_(
                    or_(
                        Business.name.icontains(keyword, autoescape=True),
                        Business.branch.icontains(keyword, autoescape=True),
                        Business.category.icontains(keyword, autoescape=True),
                    ),
                    or_(
                        Business.area.icontains(location, autoescape=True),
                        Business.city.icontains(location, autoescape=True),
                        Business.address.icontains(location, autoescape=True),
                    ),
                )
            )
        else:
            terms = [term for term in keyword.split() if len(term) > 2]
            if len(terms) <= 1:
                terms = [keyword]
            stmt = stmt.where(
                and_(
                    *(
                        or_(
                            Business.name.icontains(term, autoescape=True),
                            Business.branch.icontains(term, autoescape=True),
                            Business.area.icontains(term, autoescape=True),
                            Business.city.icontains(term, autoescape=True),
                            Business.address.icontains(term, autoescape=True),
                        )
                        for term in terms
                    )
                )
            )
        return stmt.order_by(
            Business.rating_average.desc(),
            Business.popularity.desc(),
            Business.id.asc(),
        ).limit(limit)

    def _business_suggestions(
        self,
        db: Session,
        keyword: str,
        location: str | None,
        business_type: str | None,
        limit: int,
        origin: tuple[float, float] | None,
    ) -> list[Suggestion]:
        suggestions: list[Suggestion] = []
        for business in fetch_all(db, self._business_query(keyword, location, business_type, limit)):
            label = _location_label(business.branch, business.area, business.city)
            rating = float(business.rating_average or 0.0)
            proximity = 0.0
            if origin is not None and business.latitude is not None and business.longitude is not None:
                distance = euclidean_degrees(origin[0], origin[1], business.latitude, business.longitude)
                proximity = 100.0 / (distance + 1.0)
            suggestions.append(
                Suggestion(
                    id=str(business.id),
                    name=business.name,
                    location=label,
                    display_text=f"{business.name} - {label}" if label else business.name,
                    business_link=business.business_link,
                    rating=rating,
                    type="business",
                    score=BUSINESS_BASE_SCORE + rating + proximity,
                )
            )
        return suggestions

    def _service_suggestions(self, db: Session, keyword: str) -> list[Suggestion]:
        stmt = (
            select(Service, Business)
            .join(Business, Service.business_id == Business.id)
            .where(
                Service.is_active.is_(True),
                Service.name.icontains(keyword, autoescape=True),
                Business.is_active.is_(True),
                or_(Business.is_active_from_super_admin.is_(None), Business.is_active_from_super_admin.is_(True)),
            )
            .order_by(Service.id.asc())
            .limit(MAX_SERVICE_SUGGESTIONS)
        )
        rows = fetch_rows(db, stmt)
        suggestions: list[Suggestion] = []
        for service, business in rows:
            label = _location_label(business.branch, business.area, business.city)
            suggestions.append(
                Suggestion(
                    id=f"service-{service.id}",
                    name=service.name,
                    location=label,
                    display_text=f"{service.name} at {business.name} ({label})",
                    business_link=business.business_link,
                    type="service",
                    score=SERVICE_SCORE,
                )
            )
        return suggestions

    def suggest(
        self,
        db: Session,
        text: str | None,
        *,
        limit: int,
        origin: tuple[float, float] | None = None,
        business_type: str | None = None,
    ) -> list[Suggestion]:
        normalized = (text or "").strip()
        if len(normalized) < MIN_INPUT_LENGTH:
            return []
        if NEAR_ME_PATTERN.search(normalized):
            return [near_me_suggestion()]

        is_quality, keyword = strip_quality_prefix(normalized)
        keyword, location = split_keyword_location(keyword)
        keyword = keyword or ""
        if not keyword:
            return []

        merged = self._business_suggestions(db, keyword, location, business_type, limit, origin)
        merged.extend(self._service_suggestions(db, keyword))
        merged.sort(key=lambda item: item.score or 0.0, reverse=True)

        unique: list[Suggestion] = []
        seen_texts: set[str] = set()
        for item in merged:
            if item.display_text in seen_texts:
                continue
            seen_texts.add(item.display_text)
            unique.append(item)
            if len(unique) >= limit:
                break

        if not unique and location:
            unique.append(
                Suggestion(
                    id="generic-search",
                    name=keyword,
                    location=location,
                    display_text=f'Search for "{keyword}" in {location}',
                    type="generic",
                )
            )

        if is_quality:
            suffix = f" in {location}" if location else ""
            unique.insert(
                0,
                Suggestion(
                    id="best-rated",
                    name=keyword,
                    location=location,
                    display_text=f"Best Rated {keyword}{suffix}",
                    type="generic",
                    search_query=f"best {keyword}{suffix}",
                ),
            )
        logger.debug("autocomplete input=%r suggestions=%s", normalized, len(unique))
        return unique
