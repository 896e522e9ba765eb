"""Ranking strategies.

The strategy is resolved once per request from the intent flags. Every
deterministic strategy produces a total order (listing id is the final
tie-break) so cursor pages never overlap.
"""
from __future__ import annotations

import logging
import random
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Callable

from ..telemetry import instrument_stage
from .candidate_service import Candidate, service_prices
from .intent_service import SearchIntent
from .relevance_service import score_candidates

logger = logging.getLogger(__name__)

# JSON has no infinity; cursors carry sort keys, so missing values use a sentinel.
MISSING_LAST = 1e18

SortKey = tuple[float, ...]


class RankingStrategy(str, Enum):
    RATING = "rating"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    DISTANCE = "distance"
    NEAR_ME = "near_me"
    GEO = "geo"
    LOCATION = "location"
    TEXT = "text"
    FAIRNESS = "fairness"

    @property
    def is_randomized(self) -> bool:
        return self is RankingStrategy.FAIRNESS


def resolve_strategy(intent: SearchIntent) -> RankingStrategy:
    sort = intent.sort
    if sort == "rating":
        return RankingStrategy.RATING
    if sort in {"price", "price_low"}:
        return RankingStrategy.PRICE_LOW
    if sort == "price_high":
        return RankingStrategy.PRICE_HIGH
    if sort == "distance" and intent.has_geo:
        return RankingStrategy.DISTANCE
    if intent.is_near_me and intent.has_geo:
        return RankingStrategy.NEAR_ME
    if intent.has_geo:
        return RankingStrategy.GEO
    if intent.keyword:
        return RankingStrategy.LOCATION if intent.has_location_filter else RankingStrategy.TEXT
    if intent.is_near_me:
        # Near-me without coordinates has nothing to measure against.
        return RankingStrategy.LOCATION
    if intent.has_location_filter and sort:
        return RankingStrategy.LOCATION
    # A bare location browse is sampled like any other signal-free listing.
    return RankingStrategy.FAIRNESS


def _created_ts(candidate: Candidate) -> float:
    created_at = candidate.business.created_at
    return created_at.timestamp() if isinstance(created_at, datetime) else 0.0


def _distance(candidate: Candidate) -> float:
    return candidate.distance_m if candidate.distance_m is not None else MISSING_LAST


def _rating(candidate: Candidate) -> float:
    return float(candidate.business.rating_average or 0.0)


def _reviews(candidate: Candidate) -> float:
    return float(candidate.business.total_reviews or 0)


def lowest_price(candidate: Candidate) -> float | None:
    prices = [price for service in candidate.services for price in service_prices(service)]
    return min(prices) if prices else None


def highest_price(candidate: Candidate) -> float | None:
    prices = [price for service in candidate.services for price in service_prices(service)]
    return max(prices) if prices else None


def _price_low_key(candidate: Candidate) -> SortKey:
    price = lowest_price(candidate)
    return (-candidate.relevance, price if price is not None else MISSING_LAST, candidate.business.id)


def _price_high_key(candidate: Candidate) -> SortKey:
    price = highest_price(candidate)
    return (-candidate.relevance, -price if price is not None else MISSING_LAST, candidate.business.id)


SORT_KEYS: dict[RankingStrategy, Callable[[Candidate], SortKey]] = {
    RankingStrategy.RATING: lambda c: (-c.relevance, -_rating(c), -_reviews(c), c.business.id),
    RankingStrategy.PRICE_LOW: _price_low_key,
    RankingStrategy.PRICE_HIGH: _price_high_key,
    RankingStrategy.DISTANCE: lambda c: (-c.relevance, _distance(c), c.business.id),
    RankingStrategy.NEAR_ME: lambda c: (_distance(c), -c.relevance, -_rating(c), c.business.id),
    RankingStrategy.GEO: lambda c: (-c.relevance, _distance(c), -_rating(c), c.business.id),
    RankingStrategy.LOCATION: lambda c: (-_rating(c), -_reviews(c), -_created_ts(c), c.business.id),
    RankingStrategy.TEXT: lambda c: (-c.relevance, -_rating(c), -_created_ts(c), c.business.id),
}


KEY_WIDTHS: dict[RankingStrategy, int] = {
    RankingStrategy.RATING: 4,
    RankingStrategy.PRICE_LOW: 3,
    RankingStrategy.PRICE_HIGH: 3,
    RankingStrategy.DISTANCE: 3,
    RankingStrategy.NEAR_ME: 4,
    RankingStrategy.GEO: 4,
    RankingStrategy.LOCATION: 4,
    RankingStrategy.TEXT: 4,
}


def sort_key(candidate: Candidate, strategy: RankingStrategy) -> SortKey:
    return SORT_KEYS[strategy](candidate)


def fairness_sample(candidates: list[Candidate], size: int, rng: random.Random | None = None) -> list[Candidate]:
    """Uniform sample without replacement; every call reshuffles."""
    chooser = rng or random
    return chooser.sample(candidates, min(size, len(candidates)))


def rating_tiered_shuffle(candidates: list[Candidate], rng: random.Random | None = None) -> list[Candidate]:
    """Higher ratings first; order inside a rating tier is random."""
    chooser = rng or random
    tiers: dict[float, list[Candidate]] = defaultdict(list)
    for candidate in candidates:
        tiers[round(_rating(candidate), 1)].append(candidate)
    ordered: list[Candidate] = []
    for rating in sorted(tiers, reverse=True):
        tier = tiers[rating]
        chooser.shuffle(tier)
        ordered.extend(tier)
    return ordered


@instrument_stage("ranking")
def rank_candidates(candidates: list[Candidate], intent: SearchIntent, strategy: RankingStrategy) -> list[Candidate]:
    score_candidates(candidates, intent.keyword)
    if strategy.is_randomized:
        return list(candidates)
    ranked = sorted(candidates, key=SORT_KEYS[strategy])
    logger.debug("Ranked %s candidates with strategy=%s", len(ranked), strategy.value)
    return ranked
