"""
Campaign context regression tests.

Guards against:
1. Type detection order drift (shopping must beat search, remarketing must beat prospecting)
2. Derived metric mistakes (CTR and CPM are scaled, zero denominators give 0)
3. Trend defaults leaking between campaigns
4. Window totals taking point-in-time fields from input order instead of the latest day
"""
from datetime import date

import pytest

from marketing_copilot.models.records import CampaignSnapshot, aggregate_snapshots
from marketing_copilot.services.context_builder import (
    Trends,
    build_context,
    get_campaign_type,
    get_expected_roas_threshold,
    infer_funnel_stage,
    is_brand_campaign,
)


def _snapshot(**overrides):
    data = {
        "account_id": "acct-1",
        "platform": "google",
        "campaign_id": "c1",
        "name": "Search - Generic",
        "spend": 100.0,
        "clicks": 50,
        "impressions": 10000,
        "conversions": 5,
        "revenue": 300.0,
    }
    data.update(overrides)
    return CampaignSnapshot(**data)


# ---------------------------------------------------------------------------
# Campaign type and funnel stage
# ---------------------------------------------------------------------------

def test_campaign_type_detection_order():
    assert get_campaign_type("PMax - All Products") == "shopping"
    assert get_campaign_type("Shopping Search Feed") == "shopping"
    assert get_campaign_type("Brand Search - Exact") == "search"
    assert get_campaign_type("GDN Banner Remarketing") == "display"
    assert get_campaign_type("YouTube Reels") == "video"
    assert get_campaign_type("Retargeting - Cart Abandoners") == "remarketing"
    assert get_campaign_type("Prospecting - Broad") == "prospecting"
    assert get_campaign_type("Q1 Reach Push") == "awareness"
    assert get_campaign_type("Sales - BOF") == "conversion"
    assert get_campaign_type("Campaign 7") == "unknown"
    assert get_campaign_type("") == "unknown"


def test_funnel_stage_mapping():
    assert infer_funnel_stage("video") == "awareness"
    assert infer_funnel_stage("search") == "consideration"
    assert infer_funnel_stage("shopping") == "conversion"
    assert infer_funnel_stage("remarketing") == "retention"
    assert infer_funnel_stage("unknown") == "consideration"


def test_brand_detection_uses_store_name_as_whole_word():
    assert is_brand_campaign("Brand - Exact")
    assert is_brand_campaign("Acme Search", store_name="Acme")
    assert not is_brand_campaign("Acmeish Search", store_name="Acme")
    assert not is_brand_campaign("Generic Search", store_name="Acme")
    # Store names of two characters or fewer are ignored
    assert not is_brand_campaign("AB Search", store_name="AB")


def test_expected_roas_threshold_only_for_known_types():
    assert get_expected_roas_threshold("remarketing") == {"min": 2.0, "good": 5.0}
    assert get_expected_roas_threshold("search") is None


# ---------------------------------------------------------------------------
# Context metrics
# ---------------------------------------------------------------------------

def test_build_context_derives_metrics():
    ctx = build_context(_snapshot(), "google")

    assert ctx.campaign_type == "search"
    assert ctx.funnel_stage == "consideration"
    assert ctx.roas == 3.0
    assert ctx.ctr == pytest.approx(0.5)      # percent, not a 0-1 fraction
    assert ctx.cpc == 2.0
    assert ctx.cpa == 20.0
    assert ctx.cpm == pytest.approx(10.0)
    assert ctx.roas_trend == "stable"
    assert ctx.ctr_trend == "stable"


def test_build_context_zero_denominators_are_zero():
    ctx = build_context(_snapshot(spend=0, clicks=0, impressions=0, conversions=0, revenue=0), "meta")
    assert (ctx.roas, ctx.ctr, ctx.cpc, ctx.cpa, ctx.cpm) == (0, 0, 0, 0, 0)


def test_build_context_applies_trends_and_optional_fields():
    snap = _snapshot(days_since_launch=5, frequency=4.5, is_learning=True)
    ctx = build_context(snap, "meta", Trends(roas="declining", ctr="improving"))

    assert ctx.roas_trend == "declining"
    assert ctx.ctr_trend == "improving"
    assert ctx.days_since_launch == 5
    assert ctx.frequency_score == 4.5
    assert ctx.is_learning is True

    # A later campaign without trends goes back to stable
    assert build_context(snap, "meta").roas_trend == "stable"


def test_aggregate_snapshots_sums_days_per_campaign():
    rows = aggregate_snapshots([
        _snapshot(spend=10, clicks=5, revenue=20, frequency=2.0),
        _snapshot(spend=15, clicks=7, revenue=40, frequency=None),
        _snapshot(campaign_id="c2", spend=1),
    ])
    by_id = {r.campaign_id: r for r in rows}

    assert len(rows) == 2
    assert by_id["c1"].spend == 25
    assert by_id["c1"].clicks == 12
    assert by_id["c1"].revenue == 60
    assert by_id["c1"].frequency == 2.0
    assert by_id["c1"].day is None


def test_aggregate_snapshots_latest_day_wins_regardless_of_order():
    rows = aggregate_snapshots([
        _snapshot(day=date(2024, 1, 3), is_learning=False, frequency=4.5, days_since_launch=30),
        _snapshot(day=date(2024, 1, 1), is_learning=True, frequency=1.2, days_since_launch=28),
        _snapshot(day=date(2024, 1, 2), is_learning=None, frequency=None, days_since_launch=29),
    ])

    assert len(rows) == 1
    assert rows[0].is_learning is False
    assert rows[0].frequency == 4.5
    assert rows[0].days_since_launch == 30
    assert rows[0].spend == 300.0
