"""Per-channel narrative insights.

WHAT:
    Turns performance, role, synergy and campaign aggregates into strengths,
    weaknesses and cross-channel effects for each converting channel.

WHY:
    The dashboard shows one card per channel. These strings are the
    deterministic baseline that any AI-written summary builds on.
"""

import math
from collections import defaultdict
from typing import Dict, Iterable, List, Set, Tuple

from ...utils.channels import DIRECT_CHANNEL, normalize_channel
from ..attribution.types import PixelEventData
from .types import (
    CampaignInsight,
    ChannelInsight,
    ChannelPerformance,
    ChannelRole,
    ChannelSynergy,
    CrossChannelEffect,
)

STRONG_SYNERGY = 1.5
WEAK_SYNERGY = 0.5


def build_campaign_insights(events: Iterable[PixelEventData]) -> List[CampaignInsight]:
    """Sessions and conversions per (utm_campaign, channel)."""
    sessions: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
    conversions: Dict[Tuple[str, str], int] = defaultdict(int)
    channels_by_campaign: Dict[str, Dict[str, None]] = defaultdict(dict)

    for event in events:
        if not event.utm_campaign:
            continue
        channel = normalize_channel(event.utm_source or DIRECT_CHANNEL)
        key = (event.utm_campaign, channel)
        sessions[key].add(event.session_id)
        if event.event_type == "conversion":
            conversions[key] += 1
        channels_by_campaign[event.utm_campaign].setdefault(channel, None)

    insights = []
    for (campaign, channel), session_ids in sessions.items():
        others = [c for c in channels_by_campaign[campaign] if c != channel]
        insights.append(CampaignInsight(
            campaign_name=campaign,
            channel=channel,
            observation=f"{len(session_ids)} sessions, {conversions[(campaign, channel)]} conversions",
            cross_platform_impact=f"Also appears on {', '.join(others)}" if others else None,
        ))
    return insights


def _strengths(perf: ChannelPerformance, role, synergies: List[ChannelSynergy], business_mode: str) -> List[str]:
    strengths = []
    if perf.performance_rating in ("exceptional", "excellent"):
        if business_mode == "leads":
            strengths.append(f"Strong performer, CPL of {round(perf.cpl or 0)} across {perf.conversions} conversions")
        elif perf.roi_unbounded:
            strengths.append(f"Converts with no tracked spend across {perf.conversions} conversions")
        else:
            strengths.append(f"High ROI at {round(perf.roi)}% across {perf.conversions} conversions")

    if role is not None and role.total_appearances > 0:
        total = role.total_appearances
        if role.primary_role == "introducer":
            pct = round(role.introducer_count / total * 100)
            strengths.append(f"Strong introducer, first touch in {pct}% of its journeys")
        elif role.primary_role == "closer":
            pct = round(role.closer_count / total * 100)
            strengths.append(f"Strong closer, last touch in {pct}% of its journeys")
        elif role.primary_role == "supporter":
            strengths.append(f"Key supporter, assists in {role.assisted_conversions} multi-touch journeys")

    strong = [s for s in synergies if s.synergy_score >= STRONG_SYNERGY]
    if strong:
        strengths.append(f"Strong synergy with {len(strong)} channel{'s' if len(strong) > 1 else ''}")

    if not strengths:
        strengths.append(f"Active channel with {perf.conversions} conversions in period")
    return strengths


def _weaknesses(perf: ChannelPerformance, role, synergies: List[ChannelSynergy], business_mode: str) -> List[str]:
    weaknesses = []
    if perf.performance_rating in ("poor", "failing"):
        rating = perf.performance_rating.capitalize()
        if business_mode == "leads":
            weaknesses.append(f"{rating} CPL ({round(perf.cpl or 0)}), above target threshold")
        else:
            weaknesses.append(f"{rating} ROI ({round(perf.roi)}%), below target threshold")
    if role is not None and role.primary_role == "isolated":
        total = role.total_appearances
        solo_pct = round(role.solo_conversions / total * 100) if total else 0
        weaknesses.append(f"Operates in isolation, {solo_pct}% solo conversion ratio")

    weak = [s for s in synergies if s.synergy_score < WEAK_SYNERGY]
    if weak:
        weaknesses.append(
            f"Urgent synergy status with {len(weak)} channel pair{'s' if len(weak) > 1 else ''}"
        )
    return weaknesses


def _effect(channel: str, synergy: ChannelSynergy) -> CrossChannelEffect:
    target = synergy.channel_b if synergy.channel_a == channel else synergy.channel_a
    if synergy.synergy_score > 1.0:
        effect = "amplifies"
        description = f"{channel} audiences convert better when also exposed to {target}"
    elif synergy.synergy_score < 1.0:
        effect = "weakens"
        description = f"Combined {channel} + {target} journeys underperform solo conversions"
    else:
        effect = "neutral"
        description = f"Neutral interaction between {channel} and {target}"
    return CrossChannelEffect(
        target_channel=target,
        effect=effect,
        magnitude=synergy.synergy_score,
        description=description,
    )


def generate_channel_insights(
    performance: Iterable[ChannelPerformance],
    roles: Iterable[ChannelRole],
    synergies: Iterable[ChannelSynergy],
    campaigns: Iterable[CampaignInsight],
    business_mode: str = "sales",
) -> List[ChannelInsight]:
    """One insight per performance row. business_mode must match the mode
    performance was computed in; it picks CPL or ROI wording."""
    role_by_channel = {r.channel: r for r in roles}

    synergies_by_channel: Dict[str, List[ChannelSynergy]] = defaultdict(list)
    for synergy in synergies:
        synergies_by_channel[synergy.channel_a].append(synergy)
        synergies_by_channel[synergy.channel_b].append(synergy)

    campaigns_by_channel: Dict[str, List[CampaignInsight]] = defaultdict(list)
    for campaign in campaigns:
        campaigns_by_channel[campaign.channel].append(campaign)

    insights = []
    for perf in performance:
        channel = perf.channel
        role = role_by_channel.get(channel)
        channel_synergies = synergies_by_channel.get(channel, [])

        appearances = role.total_appearances if role else perf.conversions
        confidence = min(95, int(math.floor(30 + 20 * math.log2(max(1, appearances)) + 0.5)))

        insights.append(ChannelInsight(
            id=f"insight-{channel}",
            channel=channel,
            strengths=_strengths(perf, role, channel_synergies, business_mode),
            weaknesses=_weaknesses(perf, role, channel_synergies, business_mode),
            cross_channel_effects=[_effect(channel, s) for s in channel_synergies],
            campaign_insights=campaigns_by_channel.get(channel, []),
            confidence=confidence,
        ))
    return insights
