"""Datetime helpers.

All timestamps inside the services are naive UTC, matching what SQLAlchemy
hands back from DateTime columns on both Postgres and SQLite.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Tuple


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC. Naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime) into naive UTC."""
    if isinstance(value, datetime):
        return to_utc_naive(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc_naive(datetime.fromisoformat(text))


def secondary_feed_date(value: datetime) -> str:
    """Format a timestamp as the YYYYMMDD key used by GA4 daily records."""
    return value.strftime("%Y%m%d")


def yesterday_range(now: datetime) -> Tuple[datetime, datetime]:
    """Return [start, end] covering the whole previous UTC day."""
    today = to_utc_naive(now).date()
    day = today - timedelta(days=1)
    return day_bounds(day)


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start, end
