from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable

from ..models import Business, Service

if TYPE_CHECKING:
    from .candidate_service import Candidate

EXACT_NAME_SCORE = 100
NAME_PREFIX_SCORE = 80
NAME_CONTAINS_SCORE = 60
EXACT_SERVICE_SCORE = 50
CATEGORY_SCORE = 40
TAG_SCORE = 30


@dataclass(frozen=True)
class NameRule:
    label: str
    score: int
    matches: Callable[[str, str], bool]


# Ordered: the first matching rule decides the whole name tier.
NAME_RULES: tuple[NameRule, ...] = (
    NameRule("exact_name", EXACT_NAME_SCORE, lambda name, keyword: name == keyword),
    NameRule("name_prefix", NAME_PREFIX_SCORE, lambda name, keyword: name.startswith(keyword)),
    NameRule("name_contains", NAME_CONTAINS_SCORE, lambda name, keyword: keyword in name),
)


def name_tier_score(name: str | None, keyword: str) -> int:
    lowered = (name or "").lower()
    for rule in NAME_RULES:
        if rule.matches(lowered, keyword):
            return rule.score
    return 0


def _service_exact(services: Iterable[Service], keyword: str) -> bool:
    return any((service.name or "").strip().lower() == keyword for service in services)


def _category_match(business: Business, keyword: str) -> bool:
    return any(keyword in (value or "").lower() for value in (business.type, business.category))


def _tag_match(tags: Iterable[str] | None, keyword: str) -> bool:
    return any(isinstance(tag, str) and keyword in tag.lower() for tag in tags or [])


def score_candidates(candidates: Iterable["Candidate"], keyword: str | None) -> None:
    for candidate in candidates:
        candidate.relevance = relevance_score(candidate.business, candidate.services, keyword)


def relevance_score(business: Business, services: Iterable[Service], keyword: str | None) -> int:
    """Additive keyword relevance; zero when there is no keyword."""
    if not keyword or not keyword.strip():
        return 0
    clean = keyword.strip().lower()
    services = list(services)

    score = name_tier_score(business.name, clean)
    if _service_exact(services, clean):
        score += EXACT_SERVICE_SCORE
    if _category_match(business, clean):
        score += CATEGORY_SCORE
    if _tag_match(business.tags, clean):
        score += TAG_SCORE
    return score
