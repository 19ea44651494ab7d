"""Journey sequence, synergy, role, pattern and performance tests."""

import math
from datetime import datetime

import pytest

from channelproof.services.attribution.types import PlatformRecord, VerifiedConversionRecord
from channelproof.services.journeys.patterns import aggregate_journey_patterns
from channelproof.services.journeys.performance import (
    calculate_channel_performance,
    record_spend,
    spend_channel,
)
from channelproof.services.journeys.reconstructor import collapse_consecutive
from channelproof.services.journeys.roles import classify_role, identify_channel_roles
from channelproof.services.journeys.synergy import (
    analyze_channel_synergies,
    synergy_confidence,
    synergy_status,
)
from channelproof.services.journeys.types import ChannelRole, ConversionJourney


def _journey(sequence, amount=1000.0, conversion_id="c"):
    return ConversionJourney(conversion_id=conversion_id, amount=amount, channel_sequence=list(sequence))


def _conversion(channel, amount):
    return VerifiedConversionRecord(
        transaction_id=f"{channel}-{amount}",
        email="buyer@example.com",
        amount=amount,
        currency="PHP",
        attributed_channel=channel,
        confidence_score=70,
        confidence_level="medium",
        attribution_method="single_source",
        timestamp=datetime(2025, 3, 10),
    )


# ============================================================================
# Sequences
# ============================================================================

@pytest.mark.parametrize(
    "channels,expected",
    [
        (["google", "google", "email"], ["google", "email"]),
        (["google", "email", "google"], ["google", "email", "google"]),
        (["facebook"], ["facebook"]),
        ([], []),
    ],
)
def test_collapse_consecutive(channels, expected) -> None:
    assert collapse_consecutive(channels) == expected


def test_is_multi_touch() -> None:
    assert _journey(["google", "email"]).is_multi_touch
    assert not _journey(["google"]).is_multi_touch


# ============================================================================
# Synergy
# ============================================================================

def _synergy_fixture():
    journeys = [_journey(["a", "b"], 5000) for _ in range(10)]
    journeys += [_journey(["a"], 2000), _journey(["a"], 2000)]
    journeys += [_journey(["b"], 1000), _journey(["b"], 2000)]
    return journeys


def test_synergy_score_against_best_solo_channel() -> None:
    (synergy,) = analyze_channel_synergies(_synergy_fixture())

    assert (synergy.channel_a, synergy.channel_b) == ("a", "b")
    assert synergy.synergy_score == 2.5
    assert synergy.frequency == 10
    assert synergy.confidence == 95
    assert synergy.status == "strong"


def test_synergy_leads_mode_uses_frequency_lift() -> None:
    (synergy,) = analyze_channel_synergies(_synergy_fixture(), business_mode="leads")

    # 10 / sqrt(2 * 2)
    assert synergy.synergy_score == 5.0


def test_synergy_pairs_are_unordered_and_counted_once_per_journey() -> None:
    journeys = [_journey(["b", "a", "b"], 300), _journey(["a", "b"], 100), _journey(["a"], 100)]

    (synergy,) = analyze_channel_synergies(journeys)

    assert (synergy.channel_a, synergy.channel_b) == ("a", "b")
    assert synergy.frequency == 2
    assert synergy.synergy_score == 2.0


def test_synergy_without_solo_baseline_defaults_to_one() -> None:
    (synergy,) = analyze_channel_synergies([_journey(["x", "y"], 500)])

    assert synergy.synergy_score == 1.0
    assert synergy.status == "needs_improvement"


def test_single_touch_journeys_produce_no_pairs() -> None:
    assert analyze_channel_synergies([_journey(["a"]), _journey(["b"])]) == []


def test_unknown_business_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        analyze_channel_synergies([], business_mode="ecommerce")


@pytest.mark.parametrize("frequency,confidence", [(1, 20), (2, 45), (3, 60), (4, 70), (10, 95), (0, 0)])
def test_synergy_confidence(frequency, confidence) -> None:
    assert synergy_confidence(frequency) == confidence


@pytest.mark.parametrize(
    "score,status",
    [(1.5, "strong"), (1.49, "needs_improvement"), (1.0, "needs_improvement"), (0.5, "needs_attention"), (0.49, "urgent")],
)
def test_synergy_status(score, status) -> None:
    assert synergy_status(score) == status


# ============================================================================
# Roles
# ============================================================================

def test_roles_count_positions() -> None:
    journeys = [
        _journey(["facebook", "email", "google"]),
        _journey(["facebook", "google"]),
        _journey(["email"]),
    ]

    roles = {r.channel: r for r in identify_channel_roles(journeys)}

    assert roles["facebook"].primary_role == "introducer"
    assert roles["facebook"].introducer_count == 2
    assert roles["google"].primary_role == "closer"
    assert roles["email"].supporter_count == 1
    assert roles["email"].solo_conversions == 1
    assert roles["email"].primary_role == "supporter"


def test_mostly_solo_channel_is_isolated_even_if_it_closes() -> None:
    journeys = [_journey(["tiktok"]) for _ in range(7)] + [_journey(["google", "tiktok"]) for _ in range(3)]

    roles = {r.channel: r for r in identify_channel_roles(journeys)}

    assert roles["tiktok"].closer_count == 3
    assert roles["tiktok"].primary_role == "isolated"


def test_exactly_sixty_percent_solo_is_not_isolated() -> None:
    role = ChannelRole(channel="x", primary_role="", solo_conversions=3, assisted_conversions=2, closer_count=2)

    assert classify_role(role) == "closer"


def test_role_ties_prefer_introducer_then_closer() -> None:
    tie_all = ChannelRole(channel="x", primary_role="", assisted_conversions=2, introducer_count=1, closer_count=1)
    tie_late = ChannelRole(channel="y", primary_role="", assisted_conversions=2, closer_count=1, supporter_count=1)

    assert classify_role(tie_all) == "introducer"
    assert classify_role(tie_late) == "closer"


# ============================================================================
# Patterns
# ============================================================================

def test_patterns_group_by_exact_sequence() -> None:
    journeys = [
        _journey(["google", "email"], 100),
        _journey(["google", "email"], 300),
        _journey(["email", "google"], 50),
    ]

    patterns = aggregate_journey_patterns(journeys)

    assert patterns[0].channel_sequence == ["google", "email"]
    assert patterns[0].frequency == 2
    assert patterns[0].total_revenue == 400
    assert patterns[0].avg_revenue == 200
    assert patterns[1].channel_sequence == ["email", "google"]


# ============================================================================
# Performance
# ============================================================================

def test_spend_is_mapped_to_channels() -> None:
    assert spend_channel(PlatformRecord("meta", "meta_insights", {})) == "facebook"
    assert spend_channel(PlatformRecord("google_ads", "google_ads_metrics", {})) == "google"
    assert spend_channel(PlatformRecord("mailchimp", "mailchimp_campaign", {})) == "email"
    assert spend_channel(PlatformRecord("google_analytics_4", "ga4_sessions", {"channel_group": "Organic Search"})) == "organic_search"


def test_record_spend_reads_first_spend_field() -> None:
    assert record_spend({"cost": "12.5"}) == 12.5
    assert record_spend({"amount_spent": 3}) == 3.0
    assert record_spend({"spend": "n/a"}) == 0.0
    assert record_spend({}) == 0.0


def test_channel_performance() -> None:
    conversions = [_conversion("facebook", 2000.0), _conversion("Meta", 1000.0), _conversion("email", 50.0)]
    spend = [
        PlatformRecord("meta", "meta_insights", {"spend": 1000}),
        PlatformRecord("mailchimp", "mailchimp_campaign", {"cost": 100}),
        PlatformRecord("google_ads", "google_ads_metrics", {"cost": 900}),
    ]

    performance = calculate_channel_performance(conversions, spend)

    assert [p.channel for p in performance] == ["facebook", "email"]
    facebook, email = performance
    assert facebook.conversions == 2
    assert facebook.roi == pytest.approx(200.0)
    assert facebook.performance_rating == "excellent"
    assert email.roi == pytest.approx(-50.0)
    assert email.performance_rating == "failing"


def test_zero_spend_with_revenue_is_exceptional() -> None:
    (perf,) = calculate_channel_performance([_conversion("direct", 500.0)], [])

    assert math.isinf(perf.roi)
    assert perf.roi_unbounded
    assert perf.performance_rating == "exceptional"


def test_leads_performance_sorts_by_conversions_and_zeroes_revenue() -> None:
    conversions = [_conversion("facebook", 5000.0)] + [_conversion("email", 10.0) for _ in range(3)]
    spend = [
        PlatformRecord("meta", "meta_insights", {"spend": 1500}),
        PlatformRecord("mailchimp", "mailchimp_campaign", {"cost": 900}),
    ]

    performance = calculate_channel_performance(conversions, spend, business_mode="leads")

    assert [p.channel for p in performance] == ["email", "facebook"]
    email, facebook = performance
    assert email.cpl == pytest.approx(300.0)
    assert email.performance_rating == "satisfactory"
    assert facebook.cpl == pytest.approx(1500.0)
    assert facebook.performance_rating == "failing"
    assert all(p.revenue == 0.0 and p.roi == 0.0 for p in performance)


def test_sales_performance_has_no_cpl() -> None:
    (perf,) = calculate_channel_performance([_conversion("facebook", 500.0)], [])

    assert perf.cpl is None


def test_leads_patterns_count_one_conversion_per_journey() -> None:
    journeys = [_journey(["google", "email"], 100), _journey(["google", "email"], 300)]

    (pattern,) = aggregate_journey_patterns(journeys, business_mode="leads")

    assert pattern.frequency == 2
    assert pattern.total_conversions == 2
    assert pattern.avg_conversions == 1.0
    assert (pattern.total_revenue, pattern.avg_revenue) == (0.0, 0.0)


def test_performance_rejects_unknown_business_mode() -> None:
    with pytest.raises(ValueError):
        calculate_channel_performance([], [], business_mode="ecommerce")


def test_patterns_reject_unknown_business_mode() -> None:
    with pytest.raises(ValueError):
        aggregate_journey_patterns([], business_mode="ecommerce")
