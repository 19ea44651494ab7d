"""Domain records for the attribution engine.

WHAT:
    Plain dataclasses passed between the attribution components.
WHY:
    Repositories map ORM rows into these records so matching, scoring and
    batch threads never touch live or detached SQLAlchemy instances.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


@dataclass
class TransactionData:
    """Payment transaction extracted from a synced platform record."""
    id: str
    email: str
    amount: float
    currency: str
    timestamp: datetime
    platform: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PixelEventData:
    """Single pixel event as read from the store."""
    session_id: str
    event_type: str
    timestamp: datetime
    pixel_id: Optional[str] = None
    page_url: Optional[str] = None
    referrer: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PixelSession:
    """Events sharing a session id, sorted by time.

    The UTM snapshot always comes from the first event; later events may
    carry different UTMs but never change the session's channel.
    """
    session_id: str
    events: List[PixelEventData]
    first_event: datetime
    last_event: datetime
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    has_conversion: bool = False
    score: Optional[float] = None

    @property
    def event_count(self) -> int:
        return len(self.events)


@dataclass
class AttributionMatch:
    """Evidence collected for one transaction before scoring."""
    pixel_match: bool = False
    pixel_session_id: Optional[str] = None
    pixel_channel: Optional[str] = None
    pixel_time_proximity: Optional[float] = None
    pixel_has_conversion: Optional[bool] = None
    pixel_utm_completeness: Optional[float] = None
    candidate_session_ids: List[str] = field(default_factory=list)

    secondary_match: bool = False
    secondary_channel: Optional[str] = None
    secondary_has_traffic: Optional[bool] = None
    secondary_conversion_count: Optional[int] = None

    conflict_reason: Optional[str] = None


@dataclass
class ConfidenceResult:
    score: int
    level: str   # high | medium | low
    method: str  # dual_verified | single_source | uncertain


@dataclass
class SecondaryValidationResult:
    has_traffic: bool = False
    conversion_count: int = 0
    top_channels: List[str] = field(default_factory=list)


@dataclass
class SecondarySession:
    """GA4 session to be linked back to a pixel session."""
    session_start: datetime
    client_id: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None


@dataclass
class SecondarySessionMatch:
    pixel_session_id: str
    strategy: str  # client_id | utm_timestamp
    confidence: float


@dataclass
class OverAttributionResult:
    is_over_attributed: bool = False
    actual_sales: int = 0
    platform_claimed: float = 0
    discrepancy: float = 0


@dataclass
class VerifiedConversionRecord:
    """Persisted attribution outcome (verified_conversions row)."""
    transaction_id: str
    email: str
    amount: float
    currency: str
    attributed_channel: str
    confidence_score: int
    confidence_level: str
    attribution_method: str
    timestamp: datetime
    user_id: Optional[UUID] = None
    pixel_session_id: Optional[str] = None
    is_platform_over_attributed: bool = False
    conflicting_sources: Optional[List[str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[UUID] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the persisted field names."""
        return {
            "id": str(self.id) if self.id else None,
            "user_id": str(self.user_id) if self.user_id else None,
            "transaction_id": self.transaction_id,
            "email": self.email,
            "amount": self.amount,
            "currency": self.currency,
            "pixel_session_id": self.pixel_session_id,
            "attributed_channel": self.attributed_channel,
            "confidence_score": self.confidence_score,
            "confidence_level": self.confidence_level,
            "attribution_method": self.attribution_method,
            "is_platform_over_attributed": self.is_platform_over_attributed,
            "conflicting_sources": self.conflicting_sources,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class AttributionStats:
    total_conversions: int = 0
    total_revenue: float = 0.0
    attributed_conversions: int = 0
    attribution_rate: float = 0.0
    avg_confidence_score: float = 0.0
    by_confidence_level: Dict[str, int] = field(default_factory=dict)
    by_method: Dict[str, int] = field(default_factory=dict)
    over_attributed_count: int = 0


# =============================================================================
# BATCH RECORDS
# =============================================================================

@dataclass
class BatchConfig:
    batch_size: int = 100
    max_concurrent: int = 5
    retry_attempts: int = 3
    retry_delay_ms: int = 1000

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BatchConfig":
        """Build from a partial override dict; missing keys keep defaults."""
        data = data or {}
        defaults = cls()
        return cls(
            batch_size=int(data.get("batch_size", defaults.batch_size)),
            max_concurrent=int(data.get("max_concurrent", defaults.max_concurrent)),
            retry_attempts=int(data.get("retry_attempts", defaults.retry_attempts)),
            retry_delay_ms=int(data.get("retry_delay_ms", defaults.retry_delay_ms)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "max_concurrent": self.max_concurrent,
            "retry_attempts": self.retry_attempts,
            "retry_delay_ms": self.retry_delay_ms,
        }


@dataclass
class BatchProgress:
    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    started_at: Optional[datetime] = None
    estimated_completion: Optional[datetime] = None
    current_batch: int = 0
    total_batches: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "estimated_completion": (
                self.estimated_completion.isoformat() if self.estimated_completion else None
            ),
            "current_batch": self.current_batch,
            "total_batches": self.total_batches,
        }


@dataclass
class BatchError:
    transaction_id: str
    error: str


@dataclass
class BatchResult:
    success: bool
    progress: BatchProgress
    errors: List[BatchError] = field(default_factory=list)
    conversions: List[VerifiedConversionRecord] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Job-result form: conversions summarized by transaction id."""
        return {
            "success": self.success,
            "cancelled": self.cancelled,
            "progress": self.progress.to_dict(),
            "errors": [
                {"transaction_id": e.transaction_id, "error": e.error} for e in self.errors
            ],
            "conversions": [
                {
                    "transaction_id": c.transaction_id,
                    "attributed_channel": c.attributed_channel,
                    "confidence_score": c.confidence_score,
                    "confidence_level": c.confidence_level,
                }
                for c in self.conversions
            ],
        }


@dataclass
class PlatformRecord:
    """Synced platform payload (ad insights, GA4 stats, email costs)."""
    platform: str
    event_type: str
    data: Dict[str, Any]
    timestamp: Optional[datetime] = None


@dataclass
class UserRef:
    id: UUID
    email: str
    pixel_id: Optional[str] = None
