"""Dominant conversion paths."""

from typing import Dict, Iterable, List, Tuple

from .synergy import BUSINESS_MODES
from .types import ConversionJourney, JourneyPattern


def aggregate_journey_patterns(
    journeys: Iterable[ConversionJourney], business_mode: str = "sales"
) -> List[JourneyPattern]:
    """Group journeys by exact channel sequence, most frequent first.

    In leads mode journeys carry no revenue; each one is a single lead.
    """
    if business_mode not in BUSINESS_MODES:
        raise ValueError(f"Unknown business mode: {business_mode}")

    grouped: Dict[Tuple[str, ...], List[ConversionJourney]] = {}
    for journey in journeys:
        grouped.setdefault(tuple(journey.channel_sequence), []).append(journey)

    patterns = []
    for sequence, members in grouped.items():
        if business_mode == "leads":
            patterns.append(JourneyPattern(
                channel_sequence=list(sequence),
                frequency=len(members),
                total_revenue=0.0,
                avg_revenue=0.0,
                total_conversions=len(members),
                avg_conversions=1.0,
            ))
            continue

        total_revenue = sum(j.amount for j in members)
        patterns.append(JourneyPattern(
            channel_sequence=list(sequence),
            frequency=len(members),
            total_revenue=round(total_revenue, 2),
            avg_revenue=round(total_revenue / len(members), 2),
            total_conversions=len(members),
        ))

    patterns.sort(key=lambda p: p.frequency, reverse=True)
    return patterns
