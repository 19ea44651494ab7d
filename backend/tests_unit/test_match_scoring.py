"""
Session Matching Tests (Unit)
=============================

WHAT: Session grouping, time proximity, UTM completeness and ranking.
WHY: The top-ranked session decides the attributed channel of every sale.

NOTE:
These tests live outside `backend/channelproof/tests/` so they run without
the database fixtures and environment configured there.

REFERENCES:
- backend/channelproof/services/attribution/sessions.py
- backend/channelproof/services/attribution/session_finder.py
"""

import uuid
from datetime import datetime, timedelta

import pytest

from channelproof.services.attribution.session_finder import PixelSessionFinder, normalize_email
from channelproof.services.attribution.sessions import (
    composite_score,
    group_sessions,
    session_channel,
    time_proximity,
    utm_completeness,
)
from channelproof.services.attribution.types import PixelEventData, UserRef

T0 = datetime(2025, 3, 10, 12, 0)


def _event(session_id, minutes_before, event_type="page_view", **utms):
    return PixelEventData(
        session_id=session_id,
        event_type=event_type,
        timestamp=T0 - timedelta(minutes=minutes_before),
        **utms,
    )


class _FakeUsers:
    def __init__(self, user):
        self.user = user
        self.lookups = []

    def find_by_email(self, email):
        self.lookups.append(email)
        return self.user

    def get(self, user_id):
        return self.user


class _FakePixelEvents:
    def __init__(self, events):
        self.events = events
        self.requested = None

    def list_events(self, pixel_id, start, end, newest_first=False):
        self.requested = (pixel_id, start, end, newest_first)
        return [e for e in self.events if start <= e.timestamp <= end]


# ============================================================================
# time_proximity
# ============================================================================

def test_time_proximity_is_one_at_zero_distance() -> None:
    assert time_proximity(T0, T0, 24) == 1.0


def test_time_proximity_decays_linearly_and_symmetrically() -> None:
    assert time_proximity(T0 - timedelta(hours=6), T0, 24) == pytest.approx(0.75)
    assert time_proximity(T0 + timedelta(hours=6), T0, 24) == pytest.approx(0.75)


def test_time_proximity_is_clamped_outside_window() -> None:
    assert time_proximity(T0 - timedelta(hours=30), T0, 24) == 0.0


def test_time_proximity_rejects_non_positive_window() -> None:
    with pytest.raises(ValueError):
        time_proximity(T0, T0, 0)


# ============================================================================
# group_sessions / utm_completeness
# ============================================================================

def test_group_sessions_takes_utms_from_first_event() -> None:
    events = [
        _event("s1", 5, utm_source="email"),
        _event("s1", 30, utm_source="facebook", utm_medium="cpc"),
        _event("s1", 1, event_type="conversion"),
    ]

    (session,) = group_sessions(events)

    assert session.first_event == T0 - timedelta(minutes=30)
    assert session.last_event == T0 - timedelta(minutes=1)
    assert session.utm_source == "facebook"
    assert session.utm_medium == "cpc"
    assert session.has_conversion is True
    assert session.event_count == 3


def test_group_sessions_keeps_first_appearance_order() -> None:
    events = [_event("b", 1), _event("a", 2), _event("b", 3)]

    assert [s.session_id for s in group_sessions(events)] == ["b", "a"]


def test_utm_completeness_counts_filled_fields() -> None:
    (empty,) = group_sessions([_event("s", 1)])
    (partial,) = group_sessions([_event("s", 1, utm_source="google", utm_campaign="brand")])

    assert utm_completeness(empty) == 0.0
    assert utm_completeness(partial) == pytest.approx(0.4)


def test_session_channel_falls_back_to_medium_then_unknown() -> None:
    (by_source,) = group_sessions([_event("s", 1, utm_source="Facebook", utm_medium="cpc")])
    (by_medium,) = group_sessions([_event("s", 1, utm_medium="Email")])
    (untagged,) = group_sessions([_event("s", 1)])

    assert session_channel(by_source) == "facebook"
    assert session_channel(by_medium) == "email"
    assert session_channel(untagged) == "unknown"


def test_composite_score_weights() -> None:
    (session,) = group_sessions([
        _event("s", 0, utm_source="google", utm_medium="cpc", utm_campaign="c", utm_term="t", utm_content="x"),
        _event("s", 0, event_type="conversion"),
    ])

    assert composite_score(session, T0, 24) == pytest.approx(1.0)


# ============================================================================
# PixelSessionFinder
# ============================================================================

def test_finder_ranks_sessions_best_first() -> None:
    user = UserRef(id=uuid.uuid4(), email="buyer@example.com", pixel_id="px_1")
    events = [
        _event("recent_untagged", 10),
        _event("earlier_converting", 120, utm_source="google", utm_medium="cpc"),
        _event("earlier_converting", 110, event_type="conversion"),
    ]
    finder = PixelSessionFinder(_FakeUsers(user), _FakePixelEvents(events))

    sessions = finder.find_sessions("buyer@example.com", T0)

    assert [s.session_id for s in sessions] == ["earlier_converting", "recent_untagged"]
    assert sessions[0].score > sessions[1].score


def test_finder_keeps_query_order_on_equal_scores() -> None:
    user = UserRef(id=uuid.uuid4(), email="buyer@example.com", pixel_id="px_1")
    events = [_event("first", 10), _event("second", 10)]
    finder = PixelSessionFinder(_FakeUsers(user), _FakePixelEvents(events))

    assert [s.session_id for s in finder.find_sessions("buyer@example.com", T0)] == ["first", "second"]


def test_finder_searches_symmetric_window_newest_first() -> None:
    user = UserRef(id=uuid.uuid4(), email="buyer@example.com", pixel_id="px_1")
    store = _FakePixelEvents([])
    users = _FakeUsers(user)

    PixelSessionFinder(users, store).find_sessions(" Buyer@Example.com ", T0, window_hours=2)

    assert users.lookups == ["buyer@example.com"]
    assert store.requested == ("px_1", T0 - timedelta(hours=2), T0 + timedelta(hours=2), True)


def test_finder_without_pixel_returns_empty() -> None:
    user = UserRef(id=uuid.uuid4(), email="buyer@example.com", pixel_id=None)
    store = _FakePixelEvents([_event("s", 1)])

    assert PixelSessionFinder(_FakeUsers(user), store).find_sessions("buyer@example.com", T0) == []
    assert store.requested is None


def test_finder_unknown_email_returns_empty() -> None:
    assert PixelSessionFinder(_FakeUsers(None), _FakePixelEvents([])).find_sessions("x@example.com", T0) == []


def test_normalize_email() -> None:
    assert normalize_email("  Buyer@Example.COM ") == "buyer@example.com"
    assert normalize_email(None) == ""
