"""Pairwise channel synergy.

WHAT:
    For every unordered channel pair that co-occurs in a multi-touch journey,
    compares the pair's journeys with the channels' solo (single-touch)
    journeys.

    sales mode:  score = avg pair revenue / max(solo avg A, solo avg B)
    leads mode:  score = pair frequency / sqrt(solo count A * solo count B)

    A score of 1.0 means the pair does no better than the stronger channel
    alone. When the solo baseline is missing the score defaults to 1.0.

    confidence = min(95, round(20 + 25 * log2(frequency)))

REFERENCES:
    - channelproof/services/journeys/recommendations.py (scale rule)
"""

import math
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from .types import ChannelSynergy, ConversionJourney

BUSINESS_MODES = ("sales", "leads")
MAX_CONFIDENCE = 95


def synergy_confidence(frequency: int) -> int:
    if frequency <= 0:
        return 0
    return min(MAX_CONFIDENCE, int(math.floor(20 + 25 * math.log2(frequency) + 0.5)))


def synergy_status(score: float) -> str:
    if score >= 1.5:
        return "strong"
    if score >= 1.0:
        return "needs_improvement"
    if score >= 0.5:
        return "needs_attention"
    return "urgent"


def _unique_in_order(channels: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for channel in channels:
        seen.setdefault(channel, None)
    return list(seen)


def analyze_channel_synergies(
    journeys: Iterable[ConversionJourney], business_mode: str = "sales"
) -> List[ChannelSynergy]:
    """Synergy per co-occurring channel pair, strongest first."""
    if business_mode not in BUSINESS_MODES:
        raise ValueError(f"Unknown business mode: {business_mode}")

    journeys = list(journeys)

    solo_revenue: Dict[str, float] = defaultdict(float)
    solo_count: Dict[str, int] = defaultdict(int)
    for journey in journeys:
        if not journey.is_multi_touch:
            channel = journey.channel_sequence[0]
            solo_revenue[channel] += journey.amount
            solo_count[channel] += 1

    pair_revenue: Dict[Tuple[str, str], float] = defaultdict(float)
    pair_count: Dict[Tuple[str, str], int] = defaultdict(int)
    for journey in journeys:
        if not journey.is_multi_touch:
            continue
        channels = _unique_in_order(journey.channel_sequence)
        for i in range(len(channels)):
            for j in range(i + 1, len(channels)):
                key = tuple(sorted((channels[i], channels[j])))
                pair_revenue[key] += journey.amount
                pair_count[key] += 1

    synergies = []
    for (channel_a, channel_b), frequency in pair_count.items():
        if business_mode == "leads":
            baseline = math.sqrt(solo_count[channel_a] * solo_count[channel_b])
            score = frequency / baseline if baseline > 0 else 1.0
        else:
            avg_pair = pair_revenue[(channel_a, channel_b)] / frequency
            solo_a = solo_revenue[channel_a] / solo_count[channel_a] if solo_count[channel_a] else 0.0
            solo_b = solo_revenue[channel_b] / solo_count[channel_b] if solo_count[channel_b] else 0.0
            best_solo = max(solo_a, solo_b)
            score = avg_pair / best_solo if best_solo > 0 else 1.0

        score = round(score, 2)
        synergies.append(ChannelSynergy(
            channel_a=channel_a,
            channel_b=channel_b,
            synergy_score=score,
            frequency=frequency,
            confidence=synergy_confidence(frequency),
            status=synergy_status(score),
        ))

    synergies.sort(key=lambda s: s.synergy_score, reverse=True)
    return synergies
