import itertools
import random
from datetime import datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from discovery.config import settings
from discovery.database import Base, get_db
from discovery.main import app
from discovery.models import Business, Review, Service
from discovery.routes.search import get_search_service
from discovery.services.cache_service import CacheGateway, MemoryCacheBackend
from discovery.services.location_index import LocationIndex
from discovery.services.places_service import PlacesClient
from discovery.services.search_service import DiscoveryService

LOCATION_ENTRIES = [
    {"state": "Maharashtra", "state_code": "MH", "cities": ["Mumbai", "Pune", "Nagpur"]},
    {"state": "Karnataka", "state_code": "KA", "cities": ["Bengaluru", "Mysuru"]},
    {"state": "Delhi", "state_code": "DL", "cities": ["New Delhi"]},
]


def _unreachable(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, json={"status": "UNKNOWN_ERROR"})


@pytest.fixture
def test_settings():
    return settings.model_copy(update={"places_enabled": False, "places_api_key": None, "redis_url": None})


@pytest.fixture
def locations():
    return LocationIndex.from_entries(LOCATION_ENTRIES, "India")


@pytest.fixture
def gateway():
    return CacheGateway(MemoryCacheBackend(), version="test")


@pytest.fixture
def places_client(test_settings, gateway):
    client = PlacesClient(test_settings, gateway, http_client=httpx.Client(transport=httpx.MockTransport(_unreachable)))
    yield client
    client.close()


@pytest.fixture
def discovery(gateway, locations, places_client, test_settings):
    return DiscoveryService(gateway, locations, places_client, test_settings, rng=random.Random(7))


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def add_listing(db_session):
    """Inserts an eligible listing; ``services`` is a list of ``(name, price)`` pairs."""
    counter = itertools.count(1)

    def _add(name, *, services=(), reviews=(), **fields):
        index = next(counter)
        fields.setdefault("type", "salon")
        fields.setdefault("business_link", f"listing-{index}")
        fields.setdefault("created_at", datetime(2026, 1, 1) + timedelta(days=index))
        business = Business(name=name, **fields)
        business.services = [
            Service(name=service_name, price=price, duration=30, display_order=position)
            for position, (service_name, price) in enumerate(services)
        ]
        business.reviews = [Review(rating=rating) for rating in reviews]
        db_session.add(business)
        db_session.commit()
        return business

    return _add


@pytest.fixture
def client(db_session, discovery):
    def override_db():
        yield db_session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_search_service] = lambda: discovery
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
