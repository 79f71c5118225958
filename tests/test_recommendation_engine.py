"""
Recommendation engine regression tests.

Guards against:
1. Confidence scores escaping the 20-100 band or the high/medium/low cut-offs
2. The same rule surfacing once per campaign instead of once per account
3. Analyzer output being dropped or mis-prioritised when merged with rule output
4. One failing platform fetch or analyzer emptying the whole run
"""
import asyncio
from datetime import date, datetime, timedelta

import pytest

from marketing_copilot.analyzers.types import (
    ActionableRecommendation,
    KeywordAction,
    Suggestion,
)
from marketing_copilot.connectors.memory import InMemoryDataSource
from marketing_copilot.models.records import CampaignSnapshot
from marketing_copilot.models.recommendation_log import RecommendationLog
from marketing_copilot.services.context_builder import Trends, build_context
from marketing_copilot.services.knowledge_base import MatchedRecommendation
from marketing_copilot.services.learning_service import LearningCreate, LearningService
from marketing_copilot.services.recommendation_engine import (
    Confidence,
    ExplainableRecommendation,
    RecommendationEngine,
    base_key,
    calculate_confidence,
    confidence_level,
    deduplicate,
    format_for_display,
    from_actionable_recommendation,
    from_analyzer_suggestion,
    from_text_suggestion,
    infer_priority_from_text,
    sort_recommendations,
    summarize,
)
from marketing_copilot.services.recommendation_tracker import RecommendationTracker


def _run(coro):
    """Run an async coroutine in a sync test."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            return pool.submit(asyncio.run, coro).result()
    return asyncio.run(coro)


def _snapshot(**overrides):
    data = {
        "account_id": "acct-1",
        "platform": "google",
        "campaign_id": "c1",
        "name": "Search - Generic",
        "spend": 300.0,
        "clicks": 150,
        "impressions": 5000,
        "conversions": 0,
        "revenue": 0.0,
    }
    data.update(overrides)
    return CampaignSnapshot(**data)


def _match(confidence="high", priority=1, tags=()):
    return MatchedRecommendation(
        id="rule",
        text="text",
        explanation="why",
        confidence=confidence,
        priority=priority,
        category="optimization",
        platform="both",
        tags=tags,
    )


def _rec(rec_id, score, priority=2, category="budget"):
    return ExplainableRecommendation(
        id=rec_id,
        text=rec_id,
        priority=priority,
        category=category,
        explanation="",
        data_points=(),
        confidence=Confidence(level=confidence_level(score), score=score),
        source="knowledge_base",
        rule_id=rec_id,
    )


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

def test_confidence_levels():
    assert confidence_level(75) == "high"
    assert confidence_level(74) == "medium"
    assert confidence_level(50) == "medium"
    assert confidence_level(49) == "low"


def test_confidence_is_capped_at_100():
    ctx = build_context(_snapshot(conversions=60, spend=2000.0, revenue=8000.0), "google")
    confidence = calculate_confidence(_match(confidence="high", priority=1), ctx)

    assert confidence.score == 100
    assert confidence.level == "high"
    assert "Large conversion sample (50+)" in confidence.factors
    assert "Critical issue detected" in confidence.factors


def test_confidence_penalises_thin_data():
    ctx = build_context(_snapshot(conversions=2, spend=50.0), "google")
    confidence = calculate_confidence(_match(confidence="low", priority=3), ctx)

    assert confidence.score == 30
    assert confidence.level == "low"
    assert confidence.factors == ("Limited conversion data (<10)", "Limited spend data (<$100)")


def test_declining_trend_bonus_needs_matching_tag():
    ctx = build_context(_snapshot(conversions=30, spend=500.0), "google", Trends(roas="declining"))
    tagged = calculate_confidence(_match(confidence="medium", priority=2, tags=("declining",)), ctx)
    untagged = calculate_confidence(_match(confidence="medium", priority=2), ctx)

    assert tagged.score == untagged.score + 5
    assert "Trend aligns with recommendation" in tagged.factors


def test_analyzer_confidence_is_clamped_to_band():
    low = from_analyzer_suggestion(Suggestion(id="funnel_x", text="t", source="funnel", confidence=5))
    assert low.confidence.score == 20
    assert low.confidence.level == "low"


# ---------------------------------------------------------------------------
# Conversion from analyzer output
# ---------------------------------------------------------------------------

def test_from_analyzer_suggestion_keeps_priority_and_platform():
    suggestion = Suggestion(
        id="ltv_ltv_leader",
        text="google customers have higher LTV",
        source="ltv",
        priority=2,
        category="budget",
        confidence=65,
        platform="google",
        data_points=("Customers: 12",),
    )
    rec = from_analyzer_suggestion(suggestion)

    assert rec.id == "ltv_ltv_leader"
    assert rec.source == "analyzer"
    assert rec.priority == 2
    assert rec.platform == "google"
    assert rec.confidence == Confidence(level="medium", score=65, factors=("Score: 65",))


def test_from_actionable_recommendation_carries_action():
    action = KeywordAction(keyword="red shoes", operation="add_keyword", suggested_cpc=0.8, campaign_name="Search")
    rec = from_actionable_recommendation(ActionableRecommendation(
        id="kw_opp_red_shoes",
        headline="Add keyword",
        action=action,
        source="keyword_opportunity",
        priority=1,
        confidence=80,
        platform="google",
    ))

    assert rec.action is action
    assert rec.text == "Add keyword"
    assert rec.campaign_name == "Search"
    assert rec.confidence.level == "high"


def test_text_priority_inference():
    assert infer_priority_from_text("Critical: ROAS collapsed") == 1
    assert infer_priority_from_text("CTR is declining") == 2
    assert infer_priority_from_text("Bid opportunity on mobile") == 2
    assert infer_priority_from_text("ROAS improved week over week") == 3
    assert infer_priority_from_text("Funnel looks healthy") == 3
    assert infer_priority_from_text("Consider new creative") == 2


def test_from_text_suggestion_gets_unique_ids():
    a = from_text_suggestion("Urgent: tracking broken", "optimization")
    b = from_text_suggestion("Urgent: tracking broken", "optimization")

    assert a.id != b.id
    assert a.priority == 1
    assert a.rule_id == "analyzer"


# ---------------------------------------------------------------------------
# Dedup, sort, summary, display
# ---------------------------------------------------------------------------

def test_base_key_uses_first_two_tokens():
    assert base_key("scale_winner_c123") == "scale_winner"
    assert base_key("learning_7_c1") == "learning_7"
    assert base_key("single") == "single"


def test_deduplicate_keeps_highest_confidence():
    kept = deduplicate([_rec("scale_winner_c1", 60), _rec("scale_winner_c2", 80), _rec("low_ctr_c1", 50)])
    assert sorted(r.id for r in kept) == ["low_ctr_c1", "scale_winner_c2"]


def test_sort_by_priority_then_confidence():
    ordered = sort_recommendations([
        _rec("a_x", 90, priority=3),
        _rec("b_x", 60, priority=1),
        _rec("c_x", 80, priority=1),
        _rec("d_x", 70, priority=2),
    ])
    assert [r.id for r in ordered] == ["c_x", "b_x", "d_x", "a_x"]


def test_summarize_counts():
    recs = [_rec("a_x", 90, priority=1), _rec("b_x", 60, priority=2, category="creative"), _rec("c_x", 30, priority=3)]
    summary = summarize(recs)

    assert summary.total == 3
    assert summary.by_priority == {"urgent": 1, "important": 1, "info": 1}
    assert summary.by_category == {"budget": 2, "creative": 1}
    assert summary.avg_confidence == 60
    assert [r.id for r in summary.top_recommendations] == ["a_x", "b_x", "c_x"]


def test_summarize_empty():
    summary = summarize([])
    assert summary.total == 0
    assert summary.avg_confidence == 0
    assert summary.top_recommendations == []


def test_format_for_display():
    rec = _rec("a_x", 80)
    assert format_for_display([rec]) == ["a_x"]

    detailed = format_for_display([rec], include_explanations=True)[0]
    assert "*Why*" in detailed
    assert "*Confidence*: high (80%)" in detailed
    assert "*Data*" not in detailed


# ---------------------------------------------------------------------------
# Rule generation per campaign
# ---------------------------------------------------------------------------

def test_same_rule_across_campaigns_collapses_to_strongest():
    engine = RecommendationEngine()
    recs = engine.generate_from_campaigns([
        _snapshot(campaign_id="c1"),
        _snapshot(campaign_id="c2", name="Search - Generic 2", spend=1500.0, clicks=500, impressions=10000),
    ], "google")

    tracking = [r for r in recs if r.rule_id == "no_conversions_check"]
    assert [r.id for r in tracking] == ["no_conversions_check_c2"]
    assert tracking[0].confidence.score == 75
    assert tracking[0].source == "knowledge_base"
    assert tracking[0].campaign_name == "Search - Generic 2"


def test_learnings_surface_as_rule_source(db):
    learnings = LearningService(db)
    learning = learnings.create("acct-1", LearningCreate(
        category="optimization",
        condition="low roas on search campaigns",
        recommendation="Pause search campaigns below 1x ROAS for a week",
    ))
    engine = RecommendationEngine(learning_service=learnings)

    recs = engine.generate_from_campaigns([_snapshot()], "google", account_id="acct-1")
    learned = [r for r in recs if r.rule_id == f"learning_{learning.id}"]

    assert len(learned) == 1
    assert learned[0].source == "rule"
    assert learned[0].id == f"learning_{learning.id}_c1"


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------

def _data_source(**overrides):
    data = {
        "snapshots": [_snapshot(day=date.today())],
        "products": [{"id": "p1", "account_id": "acct-1", "title": "Leather Wallet", "sku": "LW-01"}],
        "paid_keywords": [{
            "account_id": "acct-1",
            "keyword": "free wallpaper download",
            "campaign_name": "Search - Generic",
            "clicks": 10,
            "impressions": 400,
            "spend": 25.0,
            "conversions": 0,
        }],
    }
    data.update(overrides)
    return InMemoryDataSource(**data)


def test_generate_recommendations_merges_rules_and_analyzers(db):
    tracker = RecommendationTracker(db)
    engine = RecommendationEngine(
        learning_service=LearningService(db),
        data_source=_data_source(),
        tracker=tracker,
    )

    recs = _run(engine.generate_recommendations("acct-1"))
    ids = [r.id for r in recs]

    assert "no_conversions_check_c1" in ids
    assert any(i.startswith("neg_kw_free_wallpaper") for i in ids)
    assert {"knowledge_base", "analyzer"} <= {r.source for r in recs}

    ranks = [(r.priority, -r.confidence.score) for r in recs]
    assert ranks == sorted(ranks)
    assert all(20 <= r.confidence.score <= 100 for r in recs)

    assert db.query(RecommendationLog).count() == len(recs)
    # A second run logs nothing new
    _run(engine.generate_recommendations("acct-1"))
    assert db.query(RecommendationLog).count() == len(recs)


def test_platform_filter_excludes_other_platform():
    engine = RecommendationEngine(data_source=_data_source())
    recs = _run(engine.generate_recommendations("acct-1", platform="meta"))

    assert all(r.platform in (None, "both", "meta") for r in recs)
    assert not any(r.id.startswith("neg_kw_") for r in recs)


def test_period_over_period_decline_feeds_rule_trends():
    today = datetime.utcnow().date()
    source = InMemoryDataSource(snapshots=[
        _snapshot(day=today - timedelta(days=10), spend=300.0, revenue=900.0, clicks=100, conversions=10),
        _snapshot(day=today - timedelta(days=1), spend=600.0, revenue=600.0, clicks=200,
                  impressions=10000, conversions=10),
    ])
    engine = RecommendationEngine(data_source=source, analyzers=[])

    recs = {r.id: r for r in _run(engine.generate_recommendations("acct-1"))}

    declining = recs["roas_declining_trend_c1"]
    # medium rule + trend alignment + urgent
    assert declining.confidence.score == 70
    assert "Trend aligns with recommendation" in declining.confidence.factors
    assert "multi_period_roas_google" in recs


def test_failed_snapshot_fetch_keeps_analyzer_output():
    class FlakySource(InMemoryDataSource):
        async def get_campaign_snapshots(self, *args, **kwargs):
            raise ConnectionError("ads API down")

    source = FlakySource(
        products=[{"id": "p1", "account_id": "acct-1", "title": "Leather Wallet"}],
        paid_keywords=[{
            "account_id": "acct-1", "keyword": "free wallpaper download",
            "clicks": 10, "spend": 25.0, "conversions": 0,
        }],
    )
    engine = RecommendationEngine(data_source=source)

    recs = _run(engine.generate_recommendations("acct-1"))

    assert [r.source for r in recs] == ["analyzer"]
    assert recs[0].id.startswith("neg_kw_")


def test_generate_recommendations_requires_data_source():
    with pytest.raises(ValueError):
        _run(RecommendationEngine().generate_recommendations("acct-1"))
