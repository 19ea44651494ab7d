"""Rule-based channel recommendations.

Rules:
    scale     synergy pair with score >= 2.0 and confidence >= 50
    stop      isolated channel rated poor or failing
    optimize  non-isolated channel rated poor or failing

Sorted high > medium > low priority, then by estimated impact.
"""

from typing import Dict, Iterable, List

from .types import ChannelPerformance, ChannelRole, ChannelSynergy, Recommendation

SCALE_MIN_SCORE = 2.0
SCALE_MIN_CONFIDENCE = 50
SCALE_HIGH_PRIORITY_SCORE = 3.0
UNDERPERFORMING_RATINGS = ("poor", "failing")
OPTIMIZE_RECOVERABLE_SHARE = 0.25

STOP_CONFIDENCE = 85
OPTIMIZE_CONFIDENCE = 70

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _scale(synergy: ChannelSynergy) -> Recommendation:
    pair = f"{synergy.channel_a} + {synergy.channel_b}"
    return Recommendation(
        id="",
        type="scale",
        channel=pair,
        action=f"Increase budget on campaigns that combine {synergy.channel_a} and {synergy.channel_b}",
        reason=(
            f"Journeys touching both channels convert at {synergy.synergy_score}x the best "
            f"solo channel across {synergy.frequency} conversions"
        ),
        estimated_impact=round(synergy.synergy_score * synergy.frequency),
        confidence=synergy.confidence,
        priority="high" if synergy.synergy_score >= SCALE_HIGH_PRIORITY_SCORE else "medium",
    )


def _stop(perf: ChannelPerformance) -> Recommendation:
    return Recommendation(
        id="",
        type="stop",
        channel=perf.channel,
        action=f"Pause spend on {perf.channel}",
        reason=(
            f"{perf.channel} converts mostly on its own and is rated {perf.performance_rating} "
            f"(ROI {round(perf.roi)}%)"
        ),
        estimated_impact=round(perf.spend),
        confidence=STOP_CONFIDENCE,
        priority="high" if perf.performance_rating == "failing" else "medium",
    )


def _optimize(perf: ChannelPerformance) -> Recommendation:
    return Recommendation(
        id="",
        type="optimize",
        channel=perf.channel,
        action=f"Rework targeting and creative on {perf.channel} before cutting it",
        reason=(
            f"{perf.channel} assists other channels but is rated {perf.performance_rating} "
            f"(ROI {round(perf.roi)}%)"
        ),
        estimated_impact=round(perf.spend * OPTIMIZE_RECOVERABLE_SHARE),
        confidence=OPTIMIZE_CONFIDENCE,
        priority="medium" if perf.performance_rating == "failing" else "low",
    )


def generate_recommendations(
    synergies: Iterable[ChannelSynergy],
    performance: Iterable[ChannelPerformance],
    roles: Iterable[ChannelRole],
) -> List[Recommendation]:
    """Apply the scale/stop/optimize rules and rank the results."""
    recommendations: List[Recommendation] = []

    for synergy in synergies:
        if synergy.synergy_score >= SCALE_MIN_SCORE and synergy.confidence >= SCALE_MIN_CONFIDENCE:
            recommendations.append(_scale(synergy))

    role_by_channel: Dict[str, ChannelRole] = {r.channel: r for r in roles}
    for perf in performance:
        if perf.performance_rating not in UNDERPERFORMING_RATINGS:
            continue
        role = role_by_channel.get(perf.channel)
        if role is not None and role.primary_role == "isolated":
            recommendations.append(_stop(perf))
        else:
            recommendations.append(_optimize(perf))

    recommendations.sort(key=lambda r: (PRIORITY_ORDER[r.priority], -r.estimated_impact))
    for index, recommendation in enumerate(recommendations, start=1):
        recommendation.id = f"rec-{index}"
    return recommendations
