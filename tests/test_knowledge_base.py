"""
Knowledge base and learning-match regression tests.

Guards against:
1. Rules firing outside their platform or funnel stage
2. One broken predicate taking down matching for every other rule
3. Learning store failures bubbling up instead of falling back to static rules
4. Pending AI-derived learnings matching before approval
5. Cross-platform rules diverging between google and meta for the same campaign
"""
from marketing_copilot.models.learning import MarketingLearning
from marketing_copilot.models.records import CampaignSnapshot
from marketing_copilot.services import knowledge_base
from marketing_copilot.services.context_builder import Trends, build_context
from marketing_copilot.services.knowledge_base import (
    KNOWLEDGE_BASE,
    KnowledgeEntry,
    entry_count,
    evaluate_learning_condition,
    find_matches,
    find_matches_with_learnings,
    get_entries_by_category,
    get_entries_by_platform,
    get_entry,
    learning_confidence_tier,
)
from marketing_copilot.services.learning_service import LearningCreate, LearningService


def _context(platform="google", trends=None, **overrides):
    data = {
        "account_id": "acct-1",
        "platform": platform,
        "campaign_id": "c1",
        "name": "Search - Generic",
        "spend": 100.0,
        "clicks": 50,
        "impressions": 10000,
        "conversions": 5,
        "revenue": 300.0,
    }
    data.update(overrides)
    return build_context(CampaignSnapshot(**data), platform, trends)


def _ids(matches):
    return [m.id for m in matches]


# ---------------------------------------------------------------------------
# Static rules
# ---------------------------------------------------------------------------

def test_awareness_campaign_gets_context_not_alarms():
    """Low ROAS on a cheap-CPM awareness campaign is expected, not a CPA or trend alert."""
    ctx = _context(
        platform="meta",
        name="Awareness - Reach Q1",
        spend=120.0,
        impressions=10000,
        clicks=30,
        conversions=2,
        revenue=48.0,
    )
    assert ctx.funnel_stage == "awareness"

    ids = _ids(find_matches(ctx))
    assert ids == ["awareness_roas_context"]


def test_no_conversions_with_traffic_flags_tracking():
    ctx = _context(conversions=0, clicks=150, impressions=5000, spend=300.0, revenue=0.0)
    matches = find_matches(ctx)

    tracking = next(m for m in matches if m.id == "no_conversions_check")
    assert tracking.priority == 1
    assert tracking.category == "optimization"
    assert tracking.data_points == ("ROAS: 0.00x", "CPA: $0.00", "Conversions: 0")


def test_platform_scoping():
    fatigued = dict(frequency=5.0, trends=Trends(ctr="declining"))

    assert "meta_creative_fatigue" in _ids(find_matches(_context(platform="meta", **fatigued)))
    assert "meta_creative_fatigue" not in _ids(find_matches(_context(platform="google", **fatigued)))


_SCOPING_CASES = [
    # Tracking gap with traffic
    dict(conversions=0, clicks=150, impressions=5000, spend=300.0, revenue=0.0),
    # Awareness campaign on a cheap CPM
    dict(name="Awareness - Reach Q1", spend=120.0, clicks=30, conversions=2, revenue=48.0),
    # Expensive search clicks, still in learning
    dict(spend=150.0, clicks=40, impressions=4000, is_learning=True),
    # Fatigued creative on a declining campaign
    dict(spend=800.0, frequency=5.0, impressions=200000, clicks=600, revenue=900.0,
         trends=Trends(ctr="declining", roas="declining")),
    # Strong remarketing
    dict(name="Remarketing - Cart Abandoners", revenue=900.0, conversions=30),
]


def test_cross_platform_rules_match_identically_and_scoped_rules_stay_put():
    scoped_hits = set()
    for case in _SCOPING_CASES:
        google = {m.id for m in find_matches(_context(platform="google", **case))}
        meta = {m.id for m in find_matches(_context(platform="meta", **case))}

        for entry in KNOWLEDGE_BASE:
            if entry.platform == "both":
                assert (entry.id in google) == (entry.id in meta), entry.id
            elif entry.platform == "google":
                assert entry.id not in meta, entry.id
            elif entry.platform == "meta":
                assert entry.id not in google, entry.id
        scoped_hits |= google | meta

    assert "google_search_low_quality_score" in scoped_hits
    assert "meta_cbo_learning" in scoped_hits


def test_matches_sorted_by_priority():
    # Declining high-spend search campaign with high CPC and low CTR
    ctx = _context(
        trends=Trends(roas="declining"),
        spend=900.0,
        clicks=200,
        impressions=20000,
        conversions=0,
        revenue=900.0,
    )
    matches = find_matches(ctx)
    priorities = [m.priority for m in matches]

    assert {"roas_declining_trend", "no_conversions_check", "google_search_low_quality_score"} <= set(_ids(matches))
    assert priorities == sorted(priorities)


def test_failing_predicate_is_a_non_match(monkeypatch):
    def boom(ctx):
        raise ZeroDivisionError("bad rule")

    broken = KnowledgeEntry(
        id="broken_rule",
        platform="both",
        category="optimization",
        condition=boom,
        recommendation="never shown",
        explanation="",
        confidence="high",
        priority=1,
    )
    always = KnowledgeEntry(
        id="always_rule",
        platform="both",
        category="budget",
        condition=lambda ctx: True,
        recommendation="shown",
        explanation="",
        confidence="medium",
        priority=2,
    )
    monkeypatch.setattr(knowledge_base, "KNOWLEDGE_BASE", (broken, always))

    assert _ids(find_matches(_context())) == ["always_rule"]


def test_matching_does_not_mutate_table():
    before = tuple(KNOWLEDGE_BASE)
    find_matches(_context(conversions=0, clicks=150))
    assert knowledge_base.KNOWLEDGE_BASE == before
    assert entry_count() == 15


def test_catalog_lookups():
    google = get_entries_by_platform("google")
    assert all(e.platform in ("google", "both") for e in google)
    assert not any(e.id.startswith("meta_") for e in google)

    assert all(e.category == "budget" for e in get_entries_by_category("budget"))
    assert get_entry("scale_winner").priority == 2
    assert get_entry("missing") is None


# ---------------------------------------------------------------------------
# Learning heuristic
# ---------------------------------------------------------------------------

def test_learning_condition_overlap_score():
    shopping = _context(name="Shopping - Feed", spend=100.0, revenue=150.0)   # ROAS 1.5

    assert evaluate_learning_condition("low roas on shopping campaigns", shopping) == 1.0
    # ROAS check fails, campaign type check passes
    assert evaluate_learning_condition("high roas on shopping campaigns", shopping) == 0.5
    # No recognised topic at all
    assert evaluate_learning_condition("weekends are slow", shopping) == 0.0


def test_learning_confidence_tiers():
    assert learning_confidence_tier(61) == "high"
    assert learning_confidence_tier(60) == "medium"
    assert learning_confidence_tier(31) == "medium"
    assert learning_confidence_tier(30) == "low"


def test_active_learning_matches_and_counts_application(db):
    service = LearningService(db)
    active = service.create("acct-1", LearningCreate(
        category="budget",
        condition="low roas shopping",
        recommendation="Trim shopping budgets on low ROAS weeks",
    ))
    service.create("acct-1", LearningCreate(
        category="budget",
        condition="low roas shopping",
        recommendation="Pending rule",
        source="ai_derived",
    ))

    ctx = _context(name="Shopping - Feed", spend=100.0, revenue=150.0)
    matches = find_matches_with_learnings(ctx, "acct-1", service)
    learned = [m for m in matches if m.id.startswith("learning_")]

    assert _ids(learned) == [f"learning_{active.id}"]
    assert learned[0].confidence == "low"
    assert learned[0].tags == ("custom", "user")

    db.expire_all()
    assert db.get(MarketingLearning, active.id).applied_count == 1


def test_learning_store_failure_falls_back_to_static_rules():
    class BrokenStore:
        def list(self, *args, **kwargs):
            raise RuntimeError("database unavailable")

    ctx = _context(conversions=0, clicks=150)
    assert _ids(find_matches_with_learnings(ctx, "acct-1", BrokenStore())) == _ids(find_matches(ctx))
