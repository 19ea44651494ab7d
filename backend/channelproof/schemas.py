"""Pydantic request/response schemas for the HTTP API.

Field names mirror the persisted verified_conversions schema
(attributed_channel, confidence_level, attribution_method, ...).
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_serializer


# =============================================================================
# ATTRIBUTION
# =============================================================================

class TransactionIn(BaseModel):
    """Payment transaction to attribute."""
    id: str = Field(..., min_length=1, description="Payment platform transaction id")
    email: EmailStr
    amount: float
    currency: str = "PHP"
    timestamp: datetime
    platform: str = Field(..., description="stripe, paypal, ...")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AttributeRequest(BaseModel):
    user_id: Optional[UUID] = Field(None, description="Owner; enables GA4 and over-attribution checks")
    transaction: TransactionIn


class VerifiedConversionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    transaction_id: str
    email: str
    amount: float
    currency: str
    pixel_session_id: Optional[str] = None
    attributed_channel: str
    confidence_score: int
    confidence_level: str
    attribution_method: str
    is_platform_over_attributed: bool
    conflicting_sources: Optional[List[str]] = None
    timestamp: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BatchConfigIn(BaseModel):
    batch_size: int = Field(100, ge=1, le=1000)
    max_concurrent: int = Field(5, ge=1, le=20)
    retry_attempts: int = Field(3, ge=1, le=10)
    retry_delay_ms: int = Field(1000, ge=0, le=60000)


class BatchRequest(BaseModel):
    start: datetime
    end: datetime
    config: Optional[BatchConfigIn] = None


class JobResponse(BaseModel):
    job_id: Optional[str] = None
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class BatchEstimateResponse(BaseModel):
    estimated_duration_ms: int


class AttributionStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_conversions: int
    total_revenue: float
    attributed_conversions: int
    attribution_rate: float
    avg_confidence_score: float
    by_confidence_level: Dict[str, int]
    by_method: Dict[str, int]
    over_attributed_count: int


# =============================================================================
# ANALYTICS
# =============================================================================

class TouchpointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    channel: str
    timestamp: datetime
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    event_count: int


class ConversionJourneyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversion_id: str
    amount: float
    channel_sequence: List[str]
    touchpoints: List[TouchpointOut]
    is_multi_touch: bool


class ChannelPerformanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel: str
    revenue: float
    spend: float
    conversions: int
    roi: Optional[float] = None
    roi_unbounded: bool
    performance_rating: str
    cpl: Optional[float] = None

    @field_serializer("roi")
    def serialize_roi(self, roi: Optional[float]) -> Optional[float]:
        # JSON has no infinity; roi_unbounded carries it
        if roi is not None and math.isinf(roi):
            return None
        return roi


class ChannelSynergyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel_a: str
    channel_b: str
    synergy_score: float
    frequency: int
    confidence: int
    status: str


class ChannelRoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel: str
    primary_role: str
    solo_conversions: int
    assisted_conversions: int
    introducer_count: int
    closer_count: int
    supporter_count: int


class JourneyPatternOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel_sequence: List[str]
    frequency: int
    total_revenue: float
    avg_revenue: float
    total_conversions: int
    avg_conversions: Optional[float] = None


class RecommendationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    channel: str
    action: str
    reason: str
    estimated_impact: float
    confidence: int
    priority: str


class CampaignInsightOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    campaign_name: str
    channel: str
    observation: str
    cross_platform_impact: Optional[str] = None


class CrossChannelEffectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    target_channel: str
    effect: str
    magnitude: float
    description: str


class ChannelInsightOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    channel: str
    strengths: List[str]
    weaknesses: List[str]
    cross_channel_effects: List[CrossChannelEffectOut]
    campaign_insights: List[CampaignInsightOut]
    confidence: int
