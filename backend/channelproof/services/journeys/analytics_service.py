"""Channel analytics facade.

WHAT:
    One entry point per dashboard view: journeys, performance, synergies,
    patterns, roles, recommendations and channel insights for a user and
    date range.

WHY:
    The analytics are pure functions over journeys and conversions. This
    class only loads their inputs through the injected collaborators and
    caches recommendations.

REFERENCES:
    - channelproof/routers/analytics.py
    - channelproof/services/factory.py
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ..interfaces import ConversionRepository, PixelEventStore, SpendFeed, UserDirectory
from .cache import RecommendationCache
from .insights import build_campaign_insights, generate_channel_insights
from .patterns import aggregate_journey_patterns
from .performance import calculate_channel_performance
from .reconstructor import JourneyReconstructor
from .recommendations import generate_recommendations
from .roles import identify_channel_roles
from .synergy import analyze_channel_synergies
from .types import (
    CampaignInsight,
    ChannelInsight,
    ChannelPerformance,
    ChannelRole,
    ChannelSynergy,
    ConversionJourney,
    JourneyPattern,
    Recommendation,
)

logger = logging.getLogger(__name__)


class ChannelAnalyticsService:
    def __init__(
        self,
        reconstructor: JourneyReconstructor,
        conversions: ConversionRepository,
        spend_feed: SpendFeed,
        users: UserDirectory,
        pixel_events: PixelEventStore,
        cache: Optional[RecommendationCache] = None,
    ):
        self.reconstructor = reconstructor
        self.conversions = conversions
        self.spend_feed = spend_feed
        self.users = users
        self.pixel_events = pixel_events
        self.cache = cache

    def build_journeys(self, user_id: UUID, start: datetime, end: datetime) -> List[ConversionJourney]:
        return self.reconstructor.build_journeys(user_id, start, end)

    def compute_performance(
        self, user_id: UUID, start: datetime, end: datetime, business_mode: str = "sales"
    ) -> List[ChannelPerformance]:
        return calculate_channel_performance(
            self.conversions.list_by_user(user_id, start, end),
            self.spend_feed.list_spend_records(user_id, start, end),
            business_mode,
        )

    def compute_synergies(
        self, user_id: UUID, start: datetime, end: datetime, business_mode: str = "sales"
    ) -> List[ChannelSynergy]:
        return analyze_channel_synergies(self.build_journeys(user_id, start, end), business_mode)

    def compute_patterns(
        self, user_id: UUID, start: datetime, end: datetime, business_mode: str = "sales"
    ) -> List[JourneyPattern]:
        return aggregate_journey_patterns(self.build_journeys(user_id, start, end), business_mode)

    def compute_roles(self, user_id: UUID, start: datetime, end: datetime) -> List[ChannelRole]:
        return identify_channel_roles(self.build_journeys(user_id, start, end))

    def get_campaign_insights(self, user_id: UUID, start: datetime, end: datetime) -> List[CampaignInsight]:
        user = self.users.get(user_id)
        if not user or not user.pixel_id:
            return []
        return build_campaign_insights(self.pixel_events.list_campaign_events(user.pixel_id, start, end))

    def generate_recommendations(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> List[Recommendation]:
        """Rule-based recommendations, served from cache when fresh.

        Always computed in sales mode so the cache key needs no mode.
        """
        if self.cache is not None:
            cached = self.cache.get(user_id, start, end)
            if cached is not None:
                logger.debug("[CACHE] Recommendations hit for user %s", user_id)
                return cached

        journeys = self.build_journeys(user_id, start, end)
        recommendations = generate_recommendations(
            analyze_channel_synergies(journeys),
            self.compute_performance(user_id, start, end),
            identify_channel_roles(journeys),
        )
        logger.info("[JOURNEYS] %d recommendations for user %s", len(recommendations), user_id)

        if self.cache is not None:
            self.cache.set(user_id, start, end, recommendations)
        return recommendations

    def generate_channel_insights(
        self, user_id: UUID, start: datetime, end: datetime, business_mode: str = "sales"
    ) -> List[ChannelInsight]:
        journeys = self.build_journeys(user_id, start, end)
        return generate_channel_insights(
            self.compute_performance(user_id, start, end, business_mode),
            identify_channel_roles(journeys),
            analyze_channel_synergies(journeys, business_mode),
            self.get_campaign_insights(user_id, start, end),
            business_mode,
        )
