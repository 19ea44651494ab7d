"""Pixel session grouping and match scoring.

WHAT:
    - group_sessions: partition pixel events into time-ordered sessions
    - utm_completeness / time_proximity / composite_score: pure ranking math
    - session_channel: channel label a session is attributed to

WHY:
    A payment is matched to the browsing session most likely to have
    produced it. Ranking favors sessions that ended close to the payment,
    were properly UTM-tagged and contained a conversion event.

    composite = 0.5 * proximity(last event, payment)
              + 0.3 * utm completeness
              + 0.2 * (1 if conversion event else 0)

REFERENCES:
    - channelproof/services/attribution/session_finder.py (ranking consumer)
    - channelproof/services/journeys/reconstructor.py (touchpoint builder)
"""

from datetime import datetime
from typing import Dict, Iterable, List

from .types import UTM_FIELDS, PixelEventData, PixelSession

PROXIMITY_WEIGHT = 0.5
UTM_WEIGHT = 0.3
CONVERSION_WEIGHT = 0.2


def group_sessions(events: Iterable[PixelEventData]) -> List[PixelSession]:
    """Group events by session id.

    Sessions come back in order of first appearance in ``events``, which keeps
    the finder's stable sort tied to the store's query order. Each session's
    events are sorted by timestamp and its UTM snapshot is taken from the
    earliest event.
    """
    grouped: Dict[str, List[PixelEventData]] = {}
    for event in events:
        grouped.setdefault(event.session_id, []).append(event)

    sessions = []
    for session_id, session_events in grouped.items():
        ordered = sorted(session_events, key=lambda e: e.timestamp)
        first = ordered[0]
        sessions.append(PixelSession(
            session_id=session_id,
            events=ordered,
            first_event=first.timestamp,
            last_event=ordered[-1].timestamp,
            utm_source=first.utm_source,
            utm_medium=first.utm_medium,
            utm_campaign=first.utm_campaign,
            utm_term=first.utm_term,
            utm_content=first.utm_content,
            has_conversion=any(e.event_type == "conversion" for e in ordered),
        ))
    return sessions


def utm_completeness(session: PixelSession) -> float:
    """Fraction of the five UTM fields that are non-empty (0.0 to 1.0)."""
    filled = sum(1 for name in UTM_FIELDS if getattr(session, name))
    return filled / len(UTM_FIELDS)


def time_proximity(t1: datetime, t2: datetime, window_hours: float) -> float:
    """Linear decay from 1.0 at zero distance to 0.0 at the window edge."""
    if window_hours <= 0:
        raise ValueError("window_hours must be positive")
    distance = abs((t1 - t2).total_seconds())
    proximity = 1 - distance / (window_hours * 3600)
    return max(0.0, min(1.0, proximity))


def composite_score(session: PixelSession, transaction_time: datetime, window_hours: float) -> float:
    """Ranking score for a candidate session. Internal only, never reported."""
    proximity = time_proximity(session.last_event, transaction_time, window_hours)
    conversion = 1.0 if session.has_conversion else 0.0
    return (
        PROXIMITY_WEIGHT * proximity
        + UTM_WEIGHT * utm_completeness(session)
        + CONVERSION_WEIGHT * conversion
    )


def session_channel(session: PixelSession) -> str:
    """utm_source, else utm_medium, else "unknown"; lowercased."""
    return (session.utm_source or session.utm_medium or "unknown").lower()
