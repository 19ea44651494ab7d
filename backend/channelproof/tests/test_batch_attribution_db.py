"""Batch attribution against a file-backed SQLite database.

WHAT: run_batch with real stores and one session per attribution thread.
WHY: Threads must never share a Session; an in-memory database cannot be
     shared across connections, so these tests use a temp file.
"""

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from channelproof.models import Base, PixelEvent, RawEvent, User, VerifiedConversion
from channelproof.services.attribution.types import BatchConfig
from channelproof.services.factory import build_batch_processor

DAY = datetime(2025, 3, 10)
PIXEL_ID = "px_batch"


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'batch.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def seeded_user(file_session_factory):
    """User with five stripe charges; the three paid by the pixel owner follow a facebook visit."""
    db = file_session_factory()
    user = User(id=uuid.uuid4(), email="buyer@example.com", pixel_id=PIXEL_ID)
    db.add(user)
    db.add(PixelEvent(
        pixel_id=PIXEL_ID,
        session_id="s0",
        event_type="page_view",
        utm_source="facebook",
        timestamp=DAY + timedelta(minutes=30),
    ))
    for i in range(5):
        email = "buyer@example.com" if i % 2 == 0 else f"guest{i}@example.com"
        db.add(RawEvent(
            user_id=user.id,
            platform="stripe",
            event_type="stripe_charge",
            event_data={"id": f"ch_{i}", "receipt_email": email, "amount": 100 * (i + 1)},
            timestamp=DAY + timedelta(hours=i + 1),
        ))
    db.commit()
    user_id = user.id
    db.close()
    return user_id


def _run(session_factory, user_id, config):
    db = session_factory()
    try:
        processor = build_batch_processor(db, session_factory)
        return processor.run_batch(user_id, DAY, DAY + timedelta(days=1), config)
    finally:
        db.close()


def test_batch_attributes_every_pending_transaction(file_session_factory, seeded_user):
    result = _run(file_session_factory, seeded_user, BatchConfig(batch_size=2, max_concurrent=3))

    assert result.success is True
    assert result.progress.total == 5
    assert result.progress.successful == 5
    assert result.progress.total_batches == 3
    assert [c.transaction_id for c in result.conversions] == [f"ch_{i}" for i in range(5)]

    db = file_session_factory()
    try:
        assert db.query(VerifiedConversion).count() == 5
        facebook = db.query(VerifiedConversion).filter(VerifiedConversion.attributed_channel == "facebook").count()
        assert facebook == 3
    finally:
        db.close()


def test_second_run_skips_already_attributed(file_session_factory, seeded_user):
    _run(file_session_factory, seeded_user, BatchConfig(max_concurrent=2))

    result = _run(file_session_factory, seeded_user, BatchConfig(max_concurrent=2))

    assert result.success is True
    assert result.progress.total == 0
    assert result.conversions == []


def test_payment_without_email_fails_alone(file_session_factory, seeded_user):
    db = file_session_factory()
    db.add(RawEvent(
        user_id=seeded_user,
        platform="paypal",
        event_type="paypal_transaction",
        event_data={"transaction_id": "pp_no_email", "gross_amount": 10},
        timestamp=DAY + timedelta(hours=12),
    ))
    db.commit()
    db.close()

    result = _run(file_session_factory, seeded_user, BatchConfig(max_concurrent=3, retry_delay_ms=0))

    assert result.success is False
    assert result.progress.successful == 5
    assert result.progress.failed == 1
    assert result.errors[0].transaction_id == "pp_no_email"
