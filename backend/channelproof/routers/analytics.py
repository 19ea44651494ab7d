"""Channel analytics endpoints.

WHAT:
    Journeys, channel performance, synergies, patterns, roles,
    recommendations and channel insights for a user and date range.

WHY:
    Every view is recomputed from verified conversions and pixel history on
    request. Only recommendations are cached (Redis, short TTL).

REFERENCES:
    - channelproof/services/journeys/analytics_service.py
"""

import logging
from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_recommendation_cache
from ..exceptions import UserNotFoundError
from ..schemas import (
    ChannelInsightOut,
    ChannelPerformanceOut,
    ChannelRoleOut,
    ChannelSynergyOut,
    ConversionJourneyOut,
    JourneyPatternOut,
    RecommendationOut,
)
from ..services.factory import build_analytics_service
from ..services.journeys.analytics_service import ChannelAnalyticsService
from ..services.journeys.cache import RecommendationCache
from ..services.stores import SqlUserDirectory
from ..utils.dates import to_utc_naive

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/analytics",
    tags=["Analytics"],
)


class DateRange:
    """Query-parameter dependency for [start, end] windows."""

    def __init__(self, start: datetime = Query(...), end: datetime = Query(...)):
        self.start = to_utc_naive(start)
        self.end = to_utc_naive(end)
        if self.start > self.end:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="start must be before end",
            )


def get_analytics_service(
    user_id: UUID,
    db: Session = Depends(get_db),
    cache: RecommendationCache = Depends(get_recommendation_cache),
) -> ChannelAnalyticsService:
    try:
        SqlUserDirectory(db).require(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.to_user_message())
    return build_analytics_service(db, cache=cache)


@router.get("/users/{user_id}/journeys", response_model=List[ConversionJourneyOut])
def get_journeys(
    user_id: UUID,
    window: DateRange = Depends(),
    service: ChannelAnalyticsService = Depends(get_analytics_service),
):
    journeys = service.build_journeys(user_id, window.start, window.end)
    return [ConversionJourneyOut.model_validate(j) for j in journeys]


@router.get("/users/{user_id}/performance", response_model=List[ChannelPerformanceOut])
def get_performance(
    user_id: UUID,
    window: DateRange = Depends(),
    business_mode: str = Query("sales", pattern="^(sales|leads)$"),
    service: ChannelAnalyticsService = Depends(get_analytics_service),
):
    performance = service.compute_performance(user_id, window.start, window.end, business_mode)
    return [ChannelPerformanceOut.model_validate(p) for p in performance]


@router.get("/users/{user_id}/synergies", response_model=List[ChannelSynergyOut])
def get_synergies(
    user_id: UUID,
    window: DateRange = Depends(),
    business_mode: str = Query("sales", pattern="^(sales|leads)$"),
    service: ChannelAnalyticsService = Depends(get_analytics_service),
):
    synergies = service.compute_synergies(user_id, window.start, window.end, business_mode)
    return [ChannelSynergyOut.model_validate(s) for s in synergies]


@router.get("/users/{user_id}/patterns", response_model=List[JourneyPatternOut])
def get_patterns(
    user_id: UUID,
    window: DateRange = Depends(),
    business_mode: str = Query("sales", pattern="^(sales|leads)$"),
    service: ChannelAnalyticsService = Depends(get_analytics_service),
):
    patterns = service.compute_patterns(user_id, window.start, window.end, business_mode)
    return [JourneyPatternOut.model_validate(p) for p in patterns]


@router.get("/users/{user_id}/roles", response_model=List[ChannelRoleOut])
def get_roles(
    user_id: UUID,
    window: DateRange = Depends(),
    service: ChannelAnalyticsService = Depends(get_analytics_service),
):
    roles = service.compute_roles(user_id, window.start, window.end)
    return [ChannelRoleOut.model_validate(r) for r in roles]


@router.get("/users/{user_id}/recommendations", response_model=List[RecommendationOut])
def get_recommendations(
    user_id: UUID,
    window: DateRange = Depends(),
    service: ChannelAnalyticsService = Depends(get_analytics_service),
):
    recommendations = service.generate_recommendations(user_id, window.start, window.end)
    return [RecommendationOut.model_validate(r) for r in recommendations]


@router.get("/users/{user_id}/insights", response_model=List[ChannelInsightOut])
def get_insights(
    user_id: UUID,
    window: DateRange = Depends(),
    business_mode: str = Query("sales", pattern="^(sales|leads)$"),
    service: ChannelAnalyticsService = Depends(get_analytics_service),
):
    insights = service.generate_channel_insights(user_id, window.start, window.end, business_mode)
    return [ChannelInsightOut.model_validate(i) for i in insights]
