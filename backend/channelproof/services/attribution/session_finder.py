"""Candidate pixel sessions for a transaction.

WHAT:
    Resolves the buyer's email to a user and pixel, loads pixel events around
    the payment time and returns sessions ranked best-first.

WHY:
    The top-ranked session is the presumptive source of the sale. The full
    ranked list is kept on the conversion for auditability.
"""

import logging
from datetime import datetime, timedelta
from typing import List

from ..interfaces import PixelEventStore, UserDirectory
from .sessions import composite_score, group_sessions
from .types import PixelSession

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 24


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class PixelSessionFinder:
    """Ranks pixel sessions around a transaction.

    Usage:
        finder = PixelSessionFinder(users, pixel_events)
        sessions = finder.find_sessions("buyer@example.com", txn.timestamp)
        best = sessions[0] if sessions else None
    """

    def __init__(self, users: UserDirectory, pixel_events: PixelEventStore):
        self.users = users
        self.pixel_events = pixel_events

    def find_sessions(
        self,
        email: str,
        transaction_time: datetime,
        window_hours: float = DEFAULT_WINDOW_HOURS,
    ) -> List[PixelSession]:
        """Return candidate sessions sorted by composite score, best first.

        Args:
            email: Buyer email (matched case-insensitively, trimmed)
            transaction_time: Payment timestamp (naive UTC)
            window_hours: Half-width of the search window

        Returns:
            Ranked sessions; empty when the user or pixel is unknown
        """
        user = self.users.find_by_email(normalize_email(email))
        if not user or not user.pixel_id:
            logger.debug("[ATTRIBUTION] No pixel for email, skipping session search")
            return []

        window = timedelta(hours=window_hours)
        events = self.pixel_events.list_events(
            user.pixel_id,
            transaction_time - window,
            transaction_time + window,
            newest_first=True,
        )
        if not events:
            return []

        sessions = group_sessions(events)
        for session in sessions:
            session.score = composite_score(session, transaction_time, window_hours)

        # sorted() is stable: equal scores keep query order
        ranked = sorted(sessions, key=lambda s: s.score, reverse=True)
        logger.debug(
            "[ATTRIBUTION] %d candidate sessions for pixel %s", len(ranked), user.pixel_id
        )
        return ranked
