"""Per-channel revenue, spend and ROI (sales) or cost per lead (leads).

Revenue and conversion counts come from verified conversions; spend comes
from synced ad/email platform records mapped onto the same channel keys.
"""

import math
from collections import defaultdict
from typing import Dict, Iterable, List

from ...utils.channels import (
    DIRECT_CHANNEL,
    calculate_cpl,
    calculate_roi,
    get_leads_performance_rating,
    get_performance_rating,
    normalize_channel,
)
from ..attribution.types import PlatformRecord, VerifiedConversionRecord
from .synergy import BUSINESS_MODES
from .types import ChannelPerformance

SPEND_FIELDS = ("spend", "cost", "amount_spent")


def record_spend(data: Dict) -> float:
    """First present spend-like field; platforms name it differently."""
    for name in SPEND_FIELDS:
        value = data.get(name)
        if value is not None:
            try:
                return float(value)
            except (TypeError, ValueError):
                return 0.0
    return 0.0


def spend_channel(record: PlatformRecord) -> str:
    data = record.data or {}
    if record.platform == "meta":
        return "facebook"
    if record.platform == "google_ads":
        return "google"
    if record.platform in ("hubspot", "mailchimp"):
        return normalize_channel(data.get("channel") or "email")
    return normalize_channel(data.get("channel_group") or data.get("sessionSource") or "google")


def calculate_channel_performance(
    conversions: Iterable[VerifiedConversionRecord],
    spend_records: Iterable[PlatformRecord],
    business_mode: str = "sales",
) -> List[ChannelPerformance]:
    """Per-channel performance for channels with at least one conversion.

    sales: revenue, ROI and ROI rating; highest revenue first
    leads: cost per lead and CPL rating, revenue and ROI zeroed; most
           conversions first
    """
    if business_mode not in BUSINESS_MODES:
        raise ValueError(f"Unknown business mode: {business_mode}")

    revenue: Dict[str, float] = defaultdict(float)
    counts: Dict[str, int] = defaultdict(int)
    for conversion in conversions:
        channel = normalize_channel(conversion.attributed_channel or DIRECT_CHANNEL)
        revenue[channel] += conversion.amount
        counts[channel] += 1

    spend: Dict[str, float] = defaultdict(float)
    for record in spend_records:
        spend[spend_channel(record)] += record_spend(record.data or {})

    results = []
    for channel, channel_revenue in revenue.items():
        channel_spend = spend.get(channel, 0.0)
        if business_mode == "leads":
            cpl = calculate_cpl(channel_spend, counts[channel])
            results.append(ChannelPerformance(
                channel=channel,
                revenue=0.0,
                spend=round(channel_spend, 2),
                conversions=counts[channel],
                roi=0.0,
                performance_rating=get_leads_performance_rating(cpl, counts[channel]),
                cpl=0.0 if math.isinf(cpl) else round(cpl, 2),
            ))
            continue

        roi = calculate_roi(channel_revenue, channel_spend)
        results.append(ChannelPerformance(
            channel=channel,
            revenue=round(channel_revenue, 2),
            spend=round(channel_spend, 2),
            conversions=counts[channel],
            roi=roi,
            performance_rating=get_performance_rating(roi),
        ))

    if business_mode == "leads":
        results.sort(key=lambda p: p.conversions, reverse=True)
    else:
        results.sort(key=lambda p: p.revenue, reverse=True)
    return results
