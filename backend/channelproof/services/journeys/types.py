"""Analytics records derived from verified conversions and pixel history.

None of these are persisted; they are recomputed per request window and
may be cached (see cache.py).
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class Touchpoint:
    session_id: str
    channel: str
    timestamp: datetime
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    event_count: int = 0


@dataclass
class ConversionJourney:
    conversion_id: str
    amount: float
    channel_sequence: List[str]
    touchpoints: List[Touchpoint] = field(default_factory=list)

    @property
    def is_multi_touch(self) -> bool:
        return len(self.channel_sequence) > 1


@dataclass
class ChannelPerformance:
    channel: str
    revenue: float
    spend: float
    conversions: int
    roi: float
    performance_rating: str
    # leads mode only; roi and revenue are 0 there
    cpl: Optional[float] = None

    @property
    def roi_unbounded(self) -> bool:
        return math.isinf(self.roi)


@dataclass
class ChannelSynergy:
    channel_a: str
    channel_b: str
    synergy_score: float
    frequency: int
    confidence: int
    status: str


@dataclass
class ChannelRole:
    channel: str
    primary_role: str  # introducer | closer | supporter | isolated
    solo_conversions: int = 0
    assisted_conversions: int = 0
    introducer_count: int = 0
    closer_count: int = 0
    supporter_count: int = 0

    @property
    def total_appearances(self) -> int:
        return self.solo_conversions + self.assisted_conversions


@dataclass
class JourneyPattern:
    channel_sequence: List[str]
    frequency: int
    total_revenue: float
    avg_revenue: float
    total_conversions: int
    avg_conversions: Optional[float] = None


@dataclass
class CampaignInsight:
    campaign_name: str
    channel: str
    observation: str
    cross_platform_impact: Optional[str] = None


@dataclass
class CrossChannelEffect:
    target_channel: str
    effect: str  # amplifies | weakens | neutral
    magnitude: float
    description: str


@dataclass
class ChannelInsight:
    id: str
    channel: str
    strengths: List[str]
    weaknesses: List[str]
    cross_channel_effects: List[CrossChannelEffect]
    campaign_insights: List[CampaignInsight]
    confidence: int


@dataclass
class Recommendation:
    id: str
    type: str  # scale | optimize | stop
    channel: str
    action: str
    reason: str
    estimated_impact: float
    confidence: int
    priority: str  # high | medium | low

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recommendation":
        return cls(
            id=data["id"],
            type=data["type"],
            channel=data["channel"],
            action=data["action"],
            reason=data["reason"],
            estimated_impact=data["estimated_impact"],
            confidence=data["confidence"],
            priority=data["priority"],
        )
