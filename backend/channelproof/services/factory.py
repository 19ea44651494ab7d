"""Service wiring.

WHAT:
    Builds the attribution, batch and analytics services on a Session with
    the SQL collaborators from stores.py.

WHY:
    Services take their collaborators explicitly. Routers, arq jobs and batch
    threads all go through these builders instead of module-level singletons.

USAGE:
    service = build_attribution_service(db)
    conversion = service.attribute(user_id, txn)

    processor = build_batch_processor(db, SessionLocal)
    result = processor.run_batch(user_id, start, end)
"""

from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..deps import Settings, get_settings
from .attribution.batch import BatchAttributionProcessor
from .attribution.orchestrator import AttributionService
from .attribution.over_attribution import OverAttributionDetector
from .attribution.secondary_validator import SecondarySourceValidator
from .attribution.session_finder import PixelSessionFinder
from .attribution.types import BatchConfig, TransactionData, VerifiedConversionRecord
from .journeys.analytics_service import ChannelAnalyticsService
from .journeys.cache import RecommendationCache
from .journeys.reconstructor import JourneyReconstructor
from .stores import (
    SqlConversionRepository,
    SqlPixelEventStore,
    SqlSecondaryAnalyticsFeed,
    SqlSpendFeed,
    SqlTransactionSource,
    SqlUserDirectory,
)


def build_attribution_service(db: Session, settings: Optional[Settings] = None) -> AttributionService:
    settings = settings or get_settings()
    users = SqlUserDirectory(db)
    pixel_events = SqlPixelEventStore(db)
    return AttributionService(
        session_finder=PixelSessionFinder(users, pixel_events),
        validator=SecondarySourceValidator(SqlSecondaryAnalyticsFeed(db), users, pixel_events),
        over_attribution=OverAttributionDetector(SqlSpendFeed(db)),
        conversions=SqlConversionRepository(db),
        window_hours=settings.ATTRIBUTION_WINDOW_HOURS,
        over_attribution_lookback_days=settings.OVER_ATTRIBUTION_LOOKBACK_DAYS,
    )


def session_scoped_attribute(
    session_factory: Callable[[], Session], settings: Optional[Settings] = None
) -> Callable[[Optional[UUID], TransactionData], VerifiedConversionRecord]:
    """Attribute function that opens and closes its own session per call.

    Batch worker threads must not share a Session.
    """
    def attribute(user_id: Optional[UUID], txn: TransactionData) -> VerifiedConversionRecord:
        local_db = session_factory()
        try:
            return build_attribution_service(local_db, settings).attribute(user_id, txn)
        finally:
            local_db.close()

    return attribute


def build_batch_processor(
    db: Session,
    session_factory: Callable[[], Session],
    settings: Optional[Settings] = None,
) -> BatchAttributionProcessor:
    return BatchAttributionProcessor(
        transactions=SqlTransactionSource(db),
        conversions=SqlConversionRepository(db),
        attribute_fn=session_scoped_attribute(session_factory, settings),
    )


def default_batch_config(settings: Optional[Settings] = None) -> BatchConfig:
    settings = settings or get_settings()
    return BatchConfig(
        batch_size=settings.BATCH_SIZE,
        max_concurrent=settings.BATCH_MAX_CONCURRENT,
        retry_attempts=settings.BATCH_RETRY_ATTEMPTS,
        retry_delay_ms=settings.BATCH_RETRY_DELAY_MS,
    )


def build_analytics_service(
    db: Session,
    cache: Optional[RecommendationCache] = None,
    settings: Optional[Settings] = None,
) -> ChannelAnalyticsService:
    settings = settings or get_settings()
    users = SqlUserDirectory(db)
    pixel_events = SqlPixelEventStore(db)
    conversions = SqlConversionRepository(db)
    return ChannelAnalyticsService(
        reconstructor=JourneyReconstructor(
            conversions, users, pixel_events, lookback_days=settings.JOURNEY_LOOKBACK_DAYS
        ),
        conversions=conversions,
        spend_feed=SqlSpendFeed(db),
        users=users,
        pixel_events=pixel_events,
        cache=cache,
    )
