import pytest

from discovery.errors import NotFoundError
from discovery.models import Review
from discovery.services.rating_service import recompute_ratings, summarize


def test_summarize_rounds_average():
    assert summarize({"5": 2, "4": 1}) == (4.7, 3)
    assert summarize({}) == (0.0, 0)


def test_recompute_counts_only_approved_published_reviews(db_session, add_listing):
    listing = add_listing("Glow", reviews=[5, 4, 4])
    listing.reviews.append(Review(rating=1, status="pending"))
    listing.reviews.append(Review(rating=1, is_published=False))
    db_session.commit()

    recompute_ratings(db_session, listing.id)
    db_session.commit()

    assert listing.total_reviews == 3
    assert listing.rating_average == 4.3
    assert listing.rating_counts == {"1": 0, "2": 0, "3": 0, "4": 2, "5": 1}


def test_recompute_unknown_listing(db_session):
    with pytest.raises(NotFoundError) as exc_info:
        recompute_ratings(db_session, 999)
    assert exc_info.value.code == "BUSINESS_NOT_FOUND"
