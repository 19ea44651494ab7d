"""Confidence scoring for an attribution decision.

Score breakdown (0-100):

    Pixel (max 70)                 Secondary source (max 30)
    +30  pixel session matched     +15  GA4 saw traffic that day
    +20  x time proximity          +15  GA4 top channel == pixel channel
    +10  session had a conversion   (+5 instead, when a channel is missing
    +10  x UTM completeness             but the attributed channel had traffic)

The channel bonus only applies when GA4 matched.

A pixel/GA4 channel conflict caps the score at 50.

    score >= 85  high    dual_verified
    score >= 70  medium  dual_verified if GA4 matched, else single_source
    score >= 40  low     single_source
    otherwise    low     uncertain
"""

import math

from ...utils.channels import normalize_channel
from .types import AttributionMatch, ConfidenceResult

CONFLICT_CAP = 50


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_confidence_score(match: AttributionMatch) -> ConfidenceResult:
    score = 0.0

    if match.pixel_match:
        score += 30
        if match.pixel_time_proximity is not None:
            score += 20 * match.pixel_time_proximity
        if match.pixel_has_conversion:
            score += 10
        if match.pixel_utm_completeness is not None:
            score += 10 * match.pixel_utm_completeness

    if match.secondary_match:
        score += 15
        if match.pixel_channel and match.secondary_channel:
            if normalize_channel(match.pixel_channel) == normalize_channel(match.secondary_channel):
                score += 15
        elif match.secondary_has_traffic:
            score += 5

    if match.conflict_reason:
        score = min(score, CONFLICT_CAP)

    final = max(0, min(100, _round_half_up(score)))

    if final >= 85:
        return ConfidenceResult(final, "high", "dual_verified")
    if final >= 70:
        method = "dual_verified" if match.secondary_match else "single_source"
        return ConfidenceResult(final, "medium", method)
    if final >= 40:
        return ConfidenceResult(final, "low", "single_source")
    return ConfidenceResult(final, "low", "uncertain")
