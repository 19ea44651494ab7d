"""SQLAlchemy ORM models.

The schema has four tables:
- users: account owners, each optionally linked to one tracking pixel
- raw_events: synced platform records (payments, ad spend, GA4 stats)
- pixel_events: browser events captured by the tracking pixel
- verified_conversions: one attribution outcome per payment transaction

Postgres is the production database. Generic column types (Uuid, JSON) keep
the same models usable on SQLite for tests.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import declarative_base


# Single Base used by the entire application
Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    pixel_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __str__(self):
        return self.email


class RawEvent(Base):
    """Platform record as synced from an integration.

    WHAT: Payment transactions (stripe/paypal), ad-platform insights (meta,
          google_ads), GA4 daily stats and email platform costs.
    WHY: Attribution reads several record kinds out of the same table, keyed
         by platform + event_type with the platform payload in event_data.
    """
    __tablename__ = "raw_events"
    __table_args__ = (
        Index("ix_raw_events_user_platform_ts", "user_id", "platform", "timestamp"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String, nullable=False)
    event_type = Column(String, nullable=False)
    event_data = Column(JSON, nullable=False, default=dict)
    timestamp = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __str__(self):
        return f"{self.platform}:{self.event_type} - {self.timestamp}"


class PixelEvent(Base):
    """Immutable browser event from the tracking pixel.

    WHAT: One page_view / conversion / custom event with its UTM snapshot
    WHY: Sessions are rebuilt from these rows on every attribution query
    """
    __tablename__ = "pixel_events"
    __table_args__ = (
        Index("ix_pixel_events_pixel_ts", "pixel_id", "timestamp"),
        Index("ix_pixel_events_session", "session_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    pixel_id = Column(String, nullable=False)
    session_id = Column(String, nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    event_type = Column(String, nullable=False)
    page_url = Column(String, nullable=True)
    referrer = Column(String, nullable=True)

    utm_source = Column(String, nullable=True)
    utm_medium = Column(String, nullable=True)
    utm_campaign = Column(String, nullable=True)
    utm_term = Column(String, nullable=True)
    utm_content = Column(String, nullable=True)

    timestamp = Column(DateTime, nullable=False)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True, default=dict)

    def __str__(self):
        return f"{self.event_type} - {self.session_id} - {self.timestamp}"


class VerifiedConversion(Base):
    """Attribution outcome for one payment transaction.

    WHAT: Channel, confidence and cross-source flags for a transaction
    WHY: transaction_id is unique so concurrent or repeated attribution of the
         same payment resolves to a single row
    """
    __tablename__ = "verified_conversions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    transaction_id = Column(String, unique=True, nullable=False)
    email = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="PHP")

    pixel_session_id = Column(String, nullable=True)
    attributed_channel = Column(String, nullable=False, default="direct")
    confidence_score = Column(Integer, nullable=False)
    confidence_level = Column(String, nullable=False)
    attribution_method = Column(String, nullable=False)
    is_platform_over_attributed = Column(Boolean, nullable=False, default=False)
    conflicting_sources = Column(JSON, nullable=True)

    timestamp = Column(DateTime, nullable=False, index=True)
    conversion_metadata = Column("metadata", JSON, nullable=True, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __str__(self):
        return f"{self.transaction_id} -> {self.attributed_channel} ({self.confidence_score})"
