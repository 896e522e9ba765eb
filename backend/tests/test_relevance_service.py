from discovery.models import Business, Service
from discovery.services.relevance_service import NAME_RULES, name_tier_score, relevance_score


def _business(**fields):
    fields.setdefault("type", "salon")
    return Business(**fields)


def test_name_tiers_are_mutually_exclusive():
    assert name_tier_score("Spa", "spa") == 100
    assert name_tier_score("Spa World", "spa") == 80
    assert name_tier_score("Lotus Day Spa", "spa") == 60
    assert name_tier_score("Glow Studio", "spa") == 0
    assert [rule.label for rule in NAME_RULES] == ["exact_name", "name_prefix", "name_contains"]


def test_exact_name_never_scores_below_partial_name():
    exact = relevance_score(_business(name="Glow", tags=[]), [], "glow")
    partial = relevance_score(_business(name="Glow Studio", tags=[]), [], "glow")
    assert exact > partial


def test_signals_are_additive():
    business = _business(name="Spa World", type="spa", tags=["spa rituals"])
    assert relevance_score(business, [], "spa") == 80 + 40 + 30


def test_exact_service_and_tag_match():
    business = _business(name="Glow Studio", tags=["Massage Therapy"])
    services = [Service(name="Massage"), Service(name="Haircut")]
    assert relevance_score(business, services, "MASSAGE") == 50 + 30


def test_no_keyword_scores_zero():
    business = _business(name="Spa", type="spa")
    assert relevance_score(business, [], None) == 0
    assert relevance_score(business, [], "   ") == 0
