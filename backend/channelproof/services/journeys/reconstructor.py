"""Multi-touch journey reconstruction.

WHAT:
    For each verified conversion in a range, rebuilds the ordered list of
    pixel sessions that started in the 7 days before it and reduces them to
    a channel sequence.

HOW:
    1. Load the user's conversions in range (oldest first)
    2. Load pixel events once for [earliest conversion - 7d, latest conversion]
    3. Per conversion: keep sessions whose FIRST event falls in
       [conversion - 7d, conversion]; one touchpoint per session
    4. Collapse consecutive duplicate channels: [google, google, email]
       becomes [google, email] while [google, email, google] keeps all three
    5. No touchpoints: fall back to the conversion's attributed channel

REFERENCES:
    - channelproof/services/journeys/synergy.py, roles.py, patterns.py
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List
from uuid import UUID

from ...utils.channels import DIRECT_CHANNEL, normalize_channel
from ..attribution.sessions import group_sessions
from ..attribution.types import PixelSession
from ..interfaces import ConversionRepository, PixelEventStore, UserDirectory
from .types import ConversionJourney, Touchpoint

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 7


def collapse_consecutive(channels: Iterable[str]) -> List[str]:
    collapsed: List[str] = []
    for channel in channels:
        if not collapsed or collapsed[-1] != channel:
            collapsed.append(channel)
    return collapsed


def touchpoint_for_session(session: PixelSession, until: datetime) -> Touchpoint:
    """Touchpoint from the session's earliest event; later UTMs are ignored.

    Only events up to ``until`` (the conversion time) are counted.
    """
    first = session.events[0]
    return Touchpoint(
        session_id=session.session_id,
        channel=normalize_channel(first.utm_source or first.utm_medium or DIRECT_CHANNEL),
        timestamp=first.timestamp,
        utm_source=first.utm_source,
        utm_medium=first.utm_medium,
        utm_campaign=first.utm_campaign,
        event_count=sum(1 for e in session.events if e.timestamp <= until),
    )


class JourneyReconstructor:
    def __init__(
        self,
        conversions: ConversionRepository,
        users: UserDirectory,
        pixel_events: PixelEventStore,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ):
        self.conversions = conversions
        self.users = users
        self.pixel_events = pixel_events
        self.lookback = timedelta(days=lookback_days)

    def build_journeys(self, user_id: UUID, start: datetime, end: datetime) -> List[ConversionJourney]:
        """Reconstruct one journey per verified conversion in [start, end]."""
        conversions = self.conversions.list_by_user(user_id, start, end)
        if not conversions:
            return []

        user = self.users.get(user_id)
        if not user or not user.pixel_id:
            logger.info("[JOURNEYS] User %s has no pixel, using single-touch journeys", user_id)
            return [
                ConversionJourney(
                    conversion_id=str(c.id or c.transaction_id),
                    amount=c.amount,
                    channel_sequence=[normalize_channel(c.attributed_channel or DIRECT_CHANNEL)],
                )
                for c in conversions
            ]

        earliest = min(c.timestamp for c in conversions)
        latest = max(c.timestamp for c in conversions)
        events = self.pixel_events.list_events(user.pixel_id, earliest - self.lookback, latest)
        sessions = group_sessions(events)

        journeys = []
        for conversion in conversions:
            window_start = conversion.timestamp - self.lookback
            touchpoints = sorted(
                (
                    touchpoint_for_session(s, conversion.timestamp)
                    for s in sessions
                    if window_start <= s.first_event <= conversion.timestamp
                ),
                key=lambda t: t.timestamp,
            )

            sequence = collapse_consecutive(t.channel for t in touchpoints)
            if not sequence:
                sequence = [normalize_channel(conversion.attributed_channel or DIRECT_CHANNEL)]

            journeys.append(ConversionJourney(
                conversion_id=str(conversion.id or conversion.transaction_id),
                amount=conversion.amount,
                channel_sequence=sequence,
                touchpoints=touchpoints,
            ))

        logger.info(
            "[JOURNEYS] Built %d journeys for user %s (%d multi-touch)",
            len(journeys), user_id, sum(1 for j in journeys if j.is_multi_touch),
        )
        return journeys
