from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import Business, Review

logger = logging.getLogger(__name__)

STARS = ("1", "2", "3", "4", "5")


def summarize(counts: dict[str, int]) -> tuple[float, int]:
    """Average and total derived from per-star counts, never stored independently."""
    total = sum(int(counts.get(star, 0)) for star in STARS)
    if total == 0:
        return 0.0, 0
    weighted = sum(int(star) * int(counts.get(star, 0)) for star in STARS)
    return round(weighted / total, 1), total


def recompute_ratings(db: Session, business_id: int) -> Business:
    """Rebuild a listing's rating summary from its approved, published reviews.

    The caller owns the transaction; committing it also drops cached listing pages.
    """
    business = db.get(Business, business_id)
    if business is None:
        raise NotFoundError("Business not found", code="BUSINESS_NOT_FOUND")

    stmt = (
        select(Review.rating, func.count(Review.id))
        .where(
            Review.business_id == business_id,
            Review.status == "approved",
            Review.is_published.is_(True),
        )
        .group_by(Review.rating)
    )
    counts = {star: 0 for star in STARS}
    for rating, count in db.execute(stmt).all():
        key = str(int(rating))
        if key in counts:
            counts[key] = int(count)

    average, total = summarize(counts)
    business.rating_counts = counts
    business.total_reviews = total
    business.rating_average = average
    db.flush()
    logger.info("Recomputed ratings business_id=%s average=%s total=%s", business_id, average, total)
    return business
