"""Pytest configuration for channelproof integration tests

WHAT: Shared fixtures for service, store and HTTP tests on SQLite
WHY: Every test gets an isolated in-memory database with the real schema
REFERENCES:
    - channelproof/main.py: FastAPI application
    - channelproof/database.py: Database configuration
    - channelproof/deps.py: Dependency injection
"""

import os
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend is in path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite shared across threads (TestClient runs sync routes in a pool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from channelproof.models import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Model Fixtures
# ============================================================================

PIXEL_ID = "px_test_001"


@pytest.fixture
def test_user(test_db_session):
    """User with a tracking pixel; its email doubles as the buyer email."""
    from channelproof.models import User

    user = User(id=uuid.uuid4(), email="buyer@example.com", pixel_id=PIXEL_ID)
    test_db_session.add(user)
    test_db_session.commit()
    test_db_session.refresh(user)
    return user


@pytest.fixture
def user_without_pixel(test_db_session):
    from channelproof.models import User

    user = User(id=uuid.uuid4(), email="nopixel@example.com", pixel_id=None)
    test_db_session.add(user)
    test_db_session.commit()
    test_db_session.refresh(user)
    return user


@pytest.fixture
def add_pixel_event(test_db_session):
    """Factory: add_pixel_event(session_id, timestamp, **fields)."""
    from channelproof.models import PixelEvent

    def _add(session_id: str, timestamp: datetime, event_type: str = "page_view",
             pixel_id: str = PIXEL_ID, metadata=None, **utms):
        event = PixelEvent(
            pixel_id=pixel_id,
            session_id=session_id,
            event_type=event_type,
            page_url="https://shop.example.com/",
            timestamp=timestamp,
            event_metadata=metadata or {},
            **utms,
        )
        test_db_session.add(event)
        test_db_session.commit()
        return event

    return _add


@pytest.fixture
def add_raw_event(test_db_session):
    """Factory: add_raw_event(user, platform, event_type, data, timestamp)."""
    from channelproof.models import RawEvent

    def _add(user, platform: str, event_type: str, data: dict, timestamp: datetime):
        event = RawEvent(
            user_id=user.id,
            platform=platform,
            event_type=event_type,
            event_data=data,
            timestamp=timestamp,
        )
        test_db_session.add(event)
        test_db_session.commit()
        return event

    return _add


@pytest.fixture
def add_stripe_charge(add_raw_event):
    def _add(user, charge_id: str, timestamp: datetime, amount: float = 1500.0,
             email: str = "buyer@example.com"):
        return add_raw_event(
            user,
            "stripe",
            "stripe_charge",
            {"id": charge_id, "receipt_email": email, "amount": amount, "currency": "PHP"},
            timestamp,
        )

    return _add


# ============================================================================
# Application & Client Fixtures
# ============================================================================

class InMemoryRecommendationCache:
    """Dict-backed stand-in for the Redis cache."""

    def __init__(self):
        self.store = {}
        self.sets = 0

    def get(self, user_id, start, end):
        return self.store.get((user_id, start, end))

    def set(self, user_id, start, end, value):
        self.sets += 1
        self.store[(user_id, start, end)] = value


@pytest.fixture
def recommendation_cache():
    return InMemoryRecommendationCache()


@pytest.fixture
def app(test_db_session, recommendation_cache):
    from channelproof.database import get_db
    from channelproof.deps import get_recommendation_cache
    from channelproof.main import create_app

    test_app = create_app()

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_recommendation_cache] = lambda: recommendation_cache
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
