"""Platform over-attribution detection.

WHAT:
    Compares conversions claimed by ad platforms (Meta, GA4) with settled
    payments over the same range.

WHY:
    Platforms routinely claim more purchases than actually happened. Flagging
    the gap on each verified conversion lets reports discount platform numbers.
    A 10% tolerance absorbs counting artifacts (refund timing, duplicate pings).
"""

import logging
from datetime import datetime
from typing import Iterable
from uuid import UUID

from ...telemetry import capture_exception
from ..interfaces import SpendFeed
from .types import OverAttributionResult, PlatformRecord

logger = logging.getLogger(__name__)

TOLERANCE = 1.1
CLAIMED_ACTION_TYPES = {"purchase", "conversion"}


def _number(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def claimed_conversions(records: Iterable[PlatformRecord]) -> float:
    """Sum top-level ``conversions`` plus purchase/conversion actions."""
    total = 0.0
    for record in records:
        data = record.data or {}
        total += _number(data.get("conversions"))
        for action in data.get("actions") or []:
            if isinstance(action, dict) and action.get("action_type") in CLAIMED_ACTION_TYPES:
                total += _number(action.get("value"))
    return total


def is_over_attributed(platform_claimed: float, actual_sales: int) -> bool:
    return platform_claimed > actual_sales * TOLERANCE


class OverAttributionDetector:
    def __init__(self, spend_feed: SpendFeed):
        self.spend_feed = spend_feed

    def detect(self, user_id: UUID, start: datetime, end: datetime) -> OverAttributionResult:
        """Soft check: any failure returns the neutral result."""
        try:
            actual = self.spend_feed.count_settled_payments(user_id, start, end)
            claimed = claimed_conversions(
                self.spend_feed.list_claimed_conversion_records(user_id, start, end)
            )
        except Exception as e:
            logger.warning("[ATTRIBUTION] Over-attribution check failed for user %s: %s", user_id, e)
            capture_exception(e, extra={"user_id": str(user_id)})
            return OverAttributionResult()

        return OverAttributionResult(
            is_over_attributed=is_over_attributed(claimed, actual),
            actual_sales=actual,
            platform_claimed=claimed,
            discrepancy=claimed - actual,
        )
