"""GA4 cross-checks for pixel attribution.

WHAT:
    - validate: does GA4 show traffic for the attributed channel that day?
    - match_session: link a GA4 session back to a pixel session

WHY:
    An independent source seeing the same channel on the same day raises
    confidence. GA4 being unavailable must never block attribution, so both
    operations degrade to "no signal" on error.

REFERENCES:
    - channelproof/services/attribution/orchestrator.py
    - channelproof/services/attribution/confidence.py
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional
from uuid import UUID

from ...telemetry import capture_exception
from ...utils.channels import normalize_channel
from ..interfaces import PixelEventStore, SecondaryAnalyticsFeed, UserDirectory
from .sessions import time_proximity
from .types import SecondarySession, SecondarySessionMatch, SecondaryValidationResult

logger = logging.getLogger(__name__)

SESSION_MATCH_WINDOW_MINUTES = 30
SESSION_MATCH_CANDIDATES = 5


def _to_number(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class SecondarySourceValidator:
    """Validates pixel attribution against the GA4 daily feed."""

    def __init__(
        self,
        feed: SecondaryAnalyticsFeed,
        users: Optional[UserDirectory] = None,
        pixel_events: Optional[PixelEventStore] = None,
    ):
        self.feed = feed
        self.users = users
        self.pixel_events = pixel_events

    def validate(self, user_id: UUID, channel: Optional[str], day: str) -> SecondaryValidationResult:
        """Aggregate GA4 channel stats for a YYYYMMDD day.

        has_traffic is true when the normalized attributed channel was seen
        that day or, with no attributed channel, when any channel was seen.
        """
        try:
            records = self.feed.list_daily_channel_stats(user_id, day)
        except Exception as e:
            logger.warning("[ATTRIBUTION] GA4 validation failed for user %s: %s", user_id, e)
            capture_exception(e, extra={"user_id": str(user_id), "date": day})
            return SecondaryValidationResult()

        # dict keeps first-seen order for top_channels
        seen: Dict[str, None] = {}
        conversions = 0.0
        for record in records:
            data = record.data or {}
            for label in (data.get("channel_group"), data.get("sessionSource")):
                if label:
                    seen.setdefault(normalize_channel(label), None)
            conversions += _to_number(data.get("conversions"))

        top_channels = list(seen)
        if channel:
            has_traffic = normalize_channel(channel) in seen
        else:
            has_traffic = len(top_channels) > 0

        return SecondaryValidationResult(
            has_traffic=has_traffic,
            conversion_count=int(conversions),
            top_channels=top_channels,
        )

    def match_session(
        self, user_id: UUID, session: SecondarySession
    ) -> Optional[SecondarySessionMatch]:
        """Find the pixel session behind a GA4 session.

        Strategies, in order:
            1. client_id: pixel metadata carries the GA4 client id (confidence 1.0)
            2. utm_timestamp: closest UTM-compatible event within +/-30 minutes,
               confidence = 0.5 * time proximity + 0.5 * matching UTM fields / 3
        """
        if self.users is None or self.pixel_events is None:
            raise RuntimeError("match_session requires a user directory and pixel event store")

        try:
            user = self.users.get(user_id)
            if not user or not user.pixel_id:
                return None

            if session.client_id:
                event = self.pixel_events.find_by_client_id(user.pixel_id, session.client_id)
                if event:
                    return SecondarySessionMatch(
                        pixel_session_id=event.session_id,
                        strategy="client_id",
                        confidence=1.0,
                    )

            window = timedelta(minutes=SESSION_MATCH_WINDOW_MINUTES)
            utm_filters = {
                "utm_source": session.source,
                "utm_medium": session.medium,
                "utm_campaign": session.campaign,
            }
            utm_filters = {k: v for k, v in utm_filters.items() if v}
            candidates = self.pixel_events.list_events_by_utm(
                user.pixel_id,
                session.session_start - window,
                session.session_start + window,
                utm_filters,
                limit=SESSION_MATCH_CANDIDATES,
            )
            if not candidates:
                return None

            best = min(
                candidates,
                key=lambda e: abs((e.timestamp - session.session_start).total_seconds()),
            )
            proximity = time_proximity(
                best.timestamp, session.session_start, SESSION_MATCH_WINDOW_MINUTES / 60
            )
            matched_fields = sum(
                1
                for name, value in (
                    ("utm_source", session.source),
                    ("utm_medium", session.medium),
                    ("utm_campaign", session.campaign),
                )
                if value and (getattr(best, name) or "").lower() == value.lower()
            )
            return SecondarySessionMatch(
                pixel_session_id=best.session_id,
                strategy="utm_timestamp",
                confidence=0.5 * proximity + 0.5 * (matched_fields / 3),
            )

        except Exception as e:
            logger.warning("[ATTRIBUTION] GA4 session match failed for user %s: %s", user_id, e)
            capture_exception(e, extra={"user_id": str(user_id)})
            return None


def top_channel(result: SecondaryValidationResult) -> Optional[str]:
    return result.top_channels[0] if result.top_channels else None

