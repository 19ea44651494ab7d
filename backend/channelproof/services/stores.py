"""SQLAlchemy implementations of the collaborator interfaces.

WHAT:
    Read/write access to users, raw_events, pixel_events and
    verified_conversions, returning domain dataclasses.

WHY:
    Services never see ORM rows. Batch threads each build these stores on
    their own Session, so nothing session-bound crosses a thread.

REFERENCES:
    - channelproof/services/interfaces.py (contracts)
    - channelproof/models.py (tables)
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import UserNotFoundError
from ..models import PixelEvent, RawEvent, User, VerifiedConversion
from .attribution.orchestrator import transaction_from_raw_event
from .attribution.session_finder import normalize_email
from .attribution.types import (
    PixelEventData,
    PlatformRecord,
    TransactionData,
    UserRef,
    VerifiedConversionRecord,
)
from .interfaces import (
    SETTLED_PAYMENT_KINDS,
    ConversionRepository,
    PixelEventStore,
    SecondaryAnalyticsFeed,
    SpendFeed,
    TransactionSource,
    UserDirectory,
)

logger = logging.getLogger(__name__)

SECONDARY_PLATFORM = "google_analytics_4"
SECONDARY_EVENT_TYPES = ("ga4_sessions", "ga4_traffic_source")
CLAIMING_PLATFORMS = ("meta", "google_analytics_4")
SPEND_PLATFORMS = ("meta", "google_analytics_4", "google_ads", "hubspot", "mailchimp")

# Keeps IN (...) lists well under driver parameter limits
ID_LOOKUP_CHUNK = 500


def _kinds_filter(event_kinds: Sequence[Tuple[str, str]]):
    return or_(*[
        and_(RawEvent.platform == platform, RawEvent.event_type == event_type)
        for platform, event_type in event_kinds
    ])


def _platform_record(row: RawEvent) -> PlatformRecord:
    return PlatformRecord(
        platform=row.platform,
        event_type=row.event_type,
        data=row.event_data or {},
        timestamp=row.timestamp,
    )


def _pixel_event(row: PixelEvent) -> PixelEventData:
    return PixelEventData(
        session_id=row.session_id,
        event_type=row.event_type,
        timestamp=row.timestamp,
        pixel_id=row.pixel_id,
        page_url=row.page_url,
        referrer=row.referrer,
        utm_source=row.utm_source,
        utm_medium=row.utm_medium,
        utm_campaign=row.utm_campaign,
        utm_term=row.utm_term,
        utm_content=row.utm_content,
        metadata=row.event_metadata or {},
    )


def _conversion_record(row: VerifiedConversion) -> VerifiedConversionRecord:
    return VerifiedConversionRecord(
        id=row.id,
        user_id=row.user_id,
        transaction_id=row.transaction_id,
        email=row.email,
        amount=float(row.amount),
        currency=row.currency,
        pixel_session_id=row.pixel_session_id,
        attributed_channel=row.attributed_channel,
        confidence_score=row.confidence_score,
        confidence_level=row.confidence_level,
        attribution_method=row.attribution_method,
        is_platform_over_attributed=bool(row.is_platform_over_attributed),
        conflicting_sources=row.conflicting_sources,
        timestamp=row.timestamp,
        metadata=row.conversion_metadata or {},
    )


class SqlTransactionSource(TransactionSource):
    def __init__(self, db: Session):
        self.db = db

    def list_transactions(self, user_id, event_kinds, start, end) -> List[TransactionData]:
        query = self.db.query(RawEvent).filter(
            _kinds_filter(event_kinds),
            RawEvent.timestamp >= start,
            RawEvent.timestamp <= end,
        )
        if user_id is not None:
            query = query.filter(RawEvent.user_id == user_id)
        rows = query.order_by(RawEvent.timestamp.asc()).all()
        return [transaction_from_raw_event(r.event_data, r.timestamp, r.platform) for r in rows]


class SqlPixelEventStore(PixelEventStore):
    def __init__(self, db: Session):
        self.db = db

    def _window(self, pixel_id: str, start: datetime, end: datetime):
        return self.db.query(PixelEvent).filter(
            PixelEvent.pixel_id == pixel_id,
            PixelEvent.timestamp >= start,
            PixelEvent.timestamp <= end,
        )

    def list_events(self, pixel_id, start, end, newest_first=False) -> List[PixelEventData]:
        order = PixelEvent.timestamp.desc() if newest_first else PixelEvent.timestamp.asc()
        return [_pixel_event(r) for r in self._window(pixel_id, start, end).order_by(order).all()]

    def list_events_by_utm(self, pixel_id, start, end, utm_filters: Dict[str, str], limit=5):
        query = self._window(pixel_id, start, end)
        for name, value in utm_filters.items():
            query = query.filter(getattr(PixelEvent, name).ilike(f"%{value}%"))
        rows = query.order_by(PixelEvent.timestamp.asc()).limit(limit).all()
        return [_pixel_event(r) for r in rows]

    def find_by_client_id(self, pixel_id, client_id) -> Optional[PixelEventData]:
        row = (
            self.db.query(PixelEvent)
            .filter(
                PixelEvent.pixel_id == pixel_id,
                PixelEvent.event_metadata["ga4_client_id"].as_string() == client_id,
            )
            .order_by(PixelEvent.timestamp.asc())
            .first()
        )
        return _pixel_event(row) if row else None

    def list_campaign_events(self, pixel_id, start, end) -> List[PixelEventData]:
        rows = (
            self._window(pixel_id, start, end)
            .filter(PixelEvent.utm_campaign.isnot(None))
            .order_by(PixelEvent.timestamp.asc())
            .all()
        )
        return [_pixel_event(r) for r in rows]


class SqlSecondaryAnalyticsFeed(SecondaryAnalyticsFeed):
    def __init__(self, db: Session):
        self.db = db

    def list_daily_channel_stats(self, user_id, day) -> List[PlatformRecord]:
        rows = (
            self.db.query(RawEvent)
            .filter(
                RawEvent.user_id == user_id,
                RawEvent.platform == SECONDARY_PLATFORM,
                RawEvent.event_type.in_(SECONDARY_EVENT_TYPES),
                RawEvent.event_data["date"].as_string() == day,
            )
            .all()
        )
        return [_platform_record(r) for r in rows]


class SqlSpendFeed(SpendFeed):
    def __init__(self, db: Session):
        self.db = db

    def _records(self, user_id, platforms, start, end) -> List[PlatformRecord]:
        rows = (
            self.db.query(RawEvent)
            .filter(
                RawEvent.user_id == user_id,
                RawEvent.platform.in_(platforms),
                RawEvent.timestamp >= start,
                RawEvent.timestamp <= end,
            )
            .all()
        )
        return [_platform_record(r) for r in rows]

    def list_spend_records(self, user_id, start, end):
        return self._records(user_id, SPEND_PLATFORMS, start, end)

    def list_claimed_conversion_records(self, user_id, start, end):
        return self._records(user_id, CLAIMING_PLATFORMS, start, end)

    def count_settled_payments(self, user_id, start, end) -> int:
        return (
            self.db.query(func.count(RawEvent.id))
            .filter(
                RawEvent.user_id == user_id,
                _kinds_filter(SETTLED_PAYMENT_KINDS),
                RawEvent.timestamp >= start,
                RawEvent.timestamp <= end,
            )
            .scalar()
        ) or 0


class SqlConversionRepository(ConversionRepository):
    def __init__(self, db: Session):
        self.db = db

    def insert_if_absent(self, record: VerifiedConversionRecord) -> VerifiedConversionRecord:
        """Insert; on a duplicate transaction_id return the row that won."""
        row = VerifiedConversion(
            user_id=record.user_id,
            transaction_id=record.transaction_id,
            email=record.email,
            amount=record.amount,
            currency=record.currency,
            pixel_session_id=record.pixel_session_id,
            attributed_channel=record.attributed_channel,
            confidence_score=record.confidence_score,
            confidence_level=record.confidence_level,
            attribution_method=record.attribution_method,
            is_platform_over_attributed=record.is_platform_over_attributed,
            conflicting_sources=record.conflicting_sources,
            timestamp=record.timestamp,
            conversion_metadata=record.metadata,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_by_transaction_id(record.transaction_id)
            if existing is None:
                raise
            logger.info(
                "[ATTRIBUTION] Transaction %s already attributed, returning existing conversion",
                record.transaction_id,
            )
            return existing

        self.db.refresh(row)
        return _conversion_record(row)

    def get_by_transaction_id(self, transaction_id) -> Optional[VerifiedConversionRecord]:
        row = (
            self.db.query(VerifiedConversion)
            .filter(VerifiedConversion.transaction_id == transaction_id)
            .first()
        )
        return _conversion_record(row) if row else None

    def existing_transaction_ids(self, transaction_ids: Iterable[str]) -> Set[str]:
        ids = list(transaction_ids)
        found: Set[str] = set()
        for i in range(0, len(ids), ID_LOOKUP_CHUNK):
            chunk = ids[i:i + ID_LOOKUP_CHUNK]
            rows = (
                self.db.query(VerifiedConversion.transaction_id)
                .filter(VerifiedConversion.transaction_id.in_(chunk))
                .all()
            )
            found.update(r[0] for r in rows)
        return found

    def list_by_user(self, user_id, start, end) -> List[VerifiedConversionRecord]:
        rows = (
            self.db.query(VerifiedConversion)
            .filter(
                VerifiedConversion.user_id == user_id,
                VerifiedConversion.timestamp >= start,
                VerifiedConversion.timestamp <= end,
            )
            .order_by(VerifiedConversion.timestamp.asc())
            .all()
        )
        return [_conversion_record(r) for r in rows]


class SqlUserDirectory(UserDirectory):
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _ref(user: User) -> UserRef:
        return UserRef(id=user.id, email=user.email, pixel_id=user.pixel_id)

    def find_by_email(self, email) -> Optional[UserRef]:
        user = (
            self.db.query(User)
            .filter(func.lower(func.trim(User.email)) == normalize_email(email))
            .first()
        )
        return self._ref(user) if user else None

    def get(self, user_id) -> Optional[UserRef]:
        user = self.db.get(User, user_id)
        return self._ref(user) if user else None

    def require(self, user_id) -> UserRef:
        user = self.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def list_users_with_payments(self, start, end) -> List[UUID]:
        rows = (
            self.db.query(RawEvent.user_id)
            .filter(
                _kinds_filter(SETTLED_PAYMENT_KINDS),
                RawEvent.timestamp >= start,
                RawEvent.timestamp <= end,
            )
            .distinct()
            .all()
        )
        return [r[0] for r in rows]
