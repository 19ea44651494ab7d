"""Channel naming and ROI rating helpers.

WHAT:
    - normalize_channel: collapse platform/source labels into one channel key
    - calculate_roi / get_performance_rating: ROI math for sales mode
    - calculate_cpl / get_leads_performance_rating: cost-per-lead math for
      leads mode

WHY:
    Pixel UTMs, GA4 channel groups and ad-platform names all describe the same
    channels with different spellings ("fb", "Meta", "facebook"). Every comparison
    between sources goes through normalize_channel so a label mismatch never
    looks like a real attribution conflict.

REFERENCES:
    - channelproof/services/attribution/orchestrator.py (conflict detection)
    - channelproof/services/journeys/performance.py (spend mapping)
"""

import math
from typing import Optional

DIRECT_CHANNEL = "direct"

_FACEBOOK_ALIASES = {"facebook", "fb", "meta", "facebook_ads", "meta_ads"}
_GOOGLE_ALIASES = {"adwords", "paid search", "paid_search", "cpc"}
_EMAIL_ALIASES = {"email", "e-mail", "mailchimp", "hubspot", "newsletter"}
_DIRECT_ALIASES = {"", "direct", "(direct)", "(none)", "none", "(not set)"}

# ROI thresholds in percent, highest first
ROI_RATING_THRESHOLDS = (
    (500.0, "exceptional"),
    (200.0, "excellent"),
    (100.0, "satisfactory"),
    (0.0, "poor"),
)

# Cost per lead in account currency, lowest first
CPL_RATING_THRESHOLDS = (
    (100.0, "exceptional"),
    (250.0, "excellent"),
    (500.0, "satisfactory"),
    (1000.0, "poor"),
)


def normalize_channel(value: Optional[str]) -> str:
    """Return the canonical channel key for a raw source/medium/platform label.

    Examples:
        >>> normalize_channel(" Meta ")
        'facebook'
        >>> normalize_channel("google / cpc")
        'google'
        >>> normalize_channel("Organic Search")
        'organic_search'
    """
    label = (value or "").strip().lower()

    if label in _DIRECT_ALIASES:
        return DIRECT_CHANNEL
    if label in _FACEBOOK_ALIASES:
        return "facebook"
    if "google" in label or label in _GOOGLE_ALIASES:
        return "google"
    if label in _EMAIL_ALIASES:
        return "email"

    return "_".join(label.split())


def calculate_roi(revenue: float, spend: float) -> float:
    """ROI percentage. Zero spend is unbounded when there is revenue, else 0."""
    if spend == 0:
        return math.inf if revenue > 0 else 0.0
    return (revenue - spend) / spend * 100


def get_performance_rating(roi: float) -> str:
    """Bucket an ROI percentage into a rating tier."""
    for threshold, rating in ROI_RATING_THRESHOLDS:
        if roi >= threshold:
            return rating
    return "failing"


def calculate_cpl(spend: float, conversions: int) -> float:
    """Cost per lead. Unbounded when there are no conversions."""
    if conversions <= 0:
        return math.inf
    return spend / conversions


def get_leads_performance_rating(cpl: float, conversions: int) -> str:
    """Bucket a cost per lead into the same rating tiers as ROI.

    Leads with no tracked spend rate exceptional; no leads at all is failing.
    """
    if conversions <= 0 or math.isinf(cpl):
        return "failing"
    for threshold, rating in CPL_RATING_THRESHOLDS:
        if cpl <= threshold:
            return rating
    return "failing"
