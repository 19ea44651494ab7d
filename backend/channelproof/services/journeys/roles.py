"""Funnel role classification.

Each appearance of a channel in a journey counts as one of:
    solo        journey has a single channel
    introducer  first of several
    closer      last of several
    supporter   anywhere in between

A channel that converts alone in more than 60% of its appearances is
"isolated" no matter how its assisted appearances split. Otherwise its role
is whichever of introducer / closer / supporter it plays most (ties favor
that order).
"""

from typing import Dict, Iterable, List

from .types import ChannelRole, ConversionJourney

ISOLATION_THRESHOLD = 0.6


def identify_channel_roles(journeys: Iterable[ConversionJourney]) -> List[ChannelRole]:
    roles: Dict[str, ChannelRole] = {}

    def role_for(channel: str) -> ChannelRole:
        if channel not in roles:
            roles[channel] = ChannelRole(channel=channel, primary_role="isolated")
        return roles[channel]

    for journey in journeys:
        sequence = journey.channel_sequence
        if len(sequence) == 1:
            role_for(sequence[0]).solo_conversions += 1
            continue

        last = len(sequence) - 1
        for position, channel in enumerate(sequence):
            role = role_for(channel)
            role.assisted_conversions += 1
            if position == 0:
                role.introducer_count += 1
            elif position == last:
                role.closer_count += 1
            else:
                role.supporter_count += 1

    for role in roles.values():
        role.primary_role = classify_role(role)

    return sorted(roles.values(), key=lambda r: r.total_appearances, reverse=True)


def classify_role(role: ChannelRole) -> str:
    total = role.total_appearances
    if total and role.solo_conversions / total > ISOLATION_THRESHOLD:
        return "isolated"

    counts = (
        ("introducer", role.introducer_count),
        ("closer", role.closer_count),
        ("supporter", role.supporter_count),
    )
    # max() keeps the first of equal counts
    return max(counts, key=lambda item: item[1])[0]
