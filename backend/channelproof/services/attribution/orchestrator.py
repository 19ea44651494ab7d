"""Per-transaction attribution.

WHAT:
    AttributionService.attribute() turns one payment into a verified
    conversion:
        1. Rank pixel sessions around the payment (24h window)
        2. Take the best session's channel, proximity and UTM completeness
        3. Cross-check with GA4 and flag channel conflicts (user-scoped)
        4. Score confidence
        5. Check platform over-attribution over the previous 7 days
        6. Persist, returning the existing row if the transaction was
           already attributed

WHY:
    Every step after session ranking is a secondary signal. Those steps are
    soft: they can lower or raise confidence but never fail the attribution.
    Persistence is idempotent on transaction id so retries and concurrent
    batch workers are safe.

REFERENCES:
    - channelproof/services/attribution/batch.py (bulk driver)
    - channelproof/routers/attribution.py (HTTP entrypoint)
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID

from ...exceptions import MalformedTransactionError
from ...utils.channels import DIRECT_CHANNEL, normalize_channel
from ...utils.dates import parse_timestamp, secondary_feed_date, to_utc_naive
from ..interfaces import ConversionRepository
from .confidence import calculate_confidence_score
from .over_attribution import OverAttributionDetector
from .secondary_validator import SecondarySourceValidator, top_channel
from .session_finder import DEFAULT_WINDOW_HOURS, PixelSessionFinder, normalize_email
from .sessions import session_channel, time_proximity, utm_completeness
from .types import (
    AttributionMatch,
    AttributionStats,
    OverAttributionResult,
    TransactionData,
    VerifiedConversionRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "PHP"
OVER_ATTRIBUTION_LOOKBACK_DAYS = 7


def transaction_from_raw_event(
    event_data: Dict[str, Any], timestamp: datetime, platform: str
) -> TransactionData:
    """Extract a transaction from a Stripe charge or PayPal transaction payload.

    Missing ids or emails come through empty; attribute() rejects them so a
    batch records the bad payment instead of failing the whole listing.
    """
    data = event_data or {}
    transaction_id = data.get("id") or data.get("transaction_id")
    email = data.get("receipt_email") or data.get("payer_email")

    amount = data.get("amount")
    if amount is None:
        amount = data.get("gross_amount")

    return TransactionData(
        id=str(transaction_id) if transaction_id else "",
        email=normalize_email(email),
        amount=float(amount or 0),
        currency=data.get("currency") or DEFAULT_CURRENCY,
        timestamp=parse_timestamp(timestamp),
        platform=platform,
        metadata=data.get("metadata") or {},
    )


class AttributionService:
    """Attributes transactions to channels and reports on the results.

    Usage:
        service = AttributionService(finder, validator, detector, conversions)
        conversion = service.attribute(user_id, transaction)
        print(conversion.attributed_channel, conversion.confidence_score)
    """

    def __init__(
        self,
        session_finder: PixelSessionFinder,
        validator: SecondarySourceValidator,
        over_attribution: OverAttributionDetector,
        conversions: ConversionRepository,
        window_hours: float = DEFAULT_WINDOW_HOURS,
        over_attribution_lookback_days: int = OVER_ATTRIBUTION_LOOKBACK_DAYS,
    ):
        self.session_finder = session_finder
        self.validator = validator
        self.over_attribution = over_attribution
        self.conversions = conversions
        self.window_hours = window_hours
        self.over_attribution_lookback_days = over_attribution_lookback_days

    def attribute(self, user_id: Optional[UUID], txn: TransactionData) -> VerifiedConversionRecord:
        """Attribute one transaction and persist the verified conversion.

        Args:
            user_id: Owner of the transaction. Without it, GA4 and
                     over-attribution checks are skipped.
            txn: The payment transaction

        Returns:
            The stored conversion (existing row if already attributed)

        Raises:
            MalformedTransactionError: transaction has no id or email
        """
        if not txn.id:
            raise MalformedTransactionError("missing transaction id")
        if not txn.email:
            raise MalformedTransactionError("missing buyer email", transaction_id=txn.id)

        logger.info("[ATTRIBUTION] Attributing transaction %s", txn.id)
        timestamp = to_utc_naive(txn.timestamp)

        sessions = self.session_finder.find_sessions(txn.email, timestamp, self.window_hours)
        match = AttributionMatch(candidate_session_ids=[s.session_id for s in sessions])
        secondary_top_channels = []

        if sessions:
            best = sessions[0]
            match.pixel_match = True
            match.pixel_session_id = best.session_id
            match.pixel_channel = session_channel(best)
            match.pixel_time_proximity = time_proximity(
                best.last_event, timestamp, self.window_hours
            )
            match.pixel_has_conversion = best.has_conversion
            match.pixel_utm_completeness = utm_completeness(best)

            if user_id:
                validation = self.validator.validate(
                    user_id, match.pixel_channel, secondary_feed_date(timestamp)
                )
                secondary_top_channels = validation.top_channels
                match.secondary_match = len(validation.top_channels) > 0
                match.secondary_channel = top_channel(validation)
                match.secondary_has_traffic = validation.has_traffic
                match.secondary_conversion_count = validation.conversion_count

                if (
                    match.secondary_channel
                    and normalize_channel(match.pixel_channel)
                    != normalize_channel(match.secondary_channel)
                ):
                    match.conflict_reason = "channel_mismatch"

        confidence = calculate_confidence_score(match)

        over = OverAttributionResult()
        if user_id:
            over = self.over_attribution.detect(
                user_id,
                timestamp - timedelta(days=self.over_attribution_lookback_days),
                timestamp,
            )

        metadata: Dict[str, Any] = {
            "platform": txn.platform,
            "all_candidate_sessions": match.candidate_session_ids,
            "conflict_reason": match.conflict_reason,
            "secondary_top_channels": secondary_top_channels,
        }
        if not match.pixel_match:
            metadata["reason"] = "no_pixel_match"

        record = VerifiedConversionRecord(
            user_id=user_id,
            transaction_id=txn.id,
            email=txn.email,
            amount=txn.amount,
            currency=txn.currency or DEFAULT_CURRENCY,
            pixel_session_id=match.pixel_session_id,
            attributed_channel=match.pixel_channel or DIRECT_CHANNEL,
            confidence_score=confidence.score,
            confidence_level=confidence.level,
            attribution_method=confidence.method,
            is_platform_over_attributed=over.is_over_attributed,
            conflicting_sources=(
                [match.pixel_channel, match.secondary_channel] if match.conflict_reason else None
            ),
            timestamp=timestamp,
            metadata=metadata,
        )

        stored = self.conversions.insert_if_absent(record)
        logger.info(
            "[ATTRIBUTION] Transaction %s -> %s (%s, score=%d)",
            stored.transaction_id,
            stored.attributed_channel,
            stored.confidence_level,
            stored.confidence_score,
        )
        return stored

    def get_stats(self, user_id: UUID, start: datetime, end: datetime) -> AttributionStats:
        """Summarize verified conversions in range."""
        records = self.conversions.list_by_user(user_id, start, end)
        if not records:
            return AttributionStats()

        attributed = [r for r in records if r.attributed_channel != DIRECT_CHANNEL]
        return AttributionStats(
            total_conversions=len(records),
            total_revenue=round(sum(r.amount for r in records), 2),
            attributed_conversions=len(attributed),
            attribution_rate=round(len(attributed) / len(records) * 100, 2),
            avg_confidence_score=round(
                sum(r.confidence_score for r in records) / len(records), 2
            ),
            by_confidence_level=dict(Counter(r.confidence_level for r in records)),
            by_method=dict(Counter(r.attribution_method for r in records)),
            over_attributed_count=sum(1 for r in records if r.is_platform_over_attributed),
        )
