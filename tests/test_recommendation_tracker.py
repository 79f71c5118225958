"""
Recommendation tracker regression tests.

Guards against:
1. Duplicate pending rows when the pipeline re-runs for the same account
2. Feedback overwriting a row that already left pending
3. ROAS outcome math (percent change, zero baseline)
4. A learning being credited twice for one recommendation
5. A zero-day stats window falling back to the default window
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from marketing_copilot.models.learning import MarketingLearning
from marketing_copilot.models.recommendation_log import RecommendationLog
from marketing_copilot.services.learning_service import LearningCreate, LearningService
from marketing_copilot.services.recommendation_engine import Confidence, ExplainableRecommendation
from marketing_copilot.services.recommendation_tracker import RecommendationTracker, calculate_roas_change


def _rec(rec_id="scale_winner_c1", rule_id="scale_winner", category="budget", **overrides):
    data = {
        "id": rec_id,
        "text": "**Scale Opportunity**: Strong ROAS with room to grow.",
        "priority": 2,
        "category": category,
        "explanation": "Profitable campaigns can take more budget.",
        "data_points": ("Spend: $500", "ROAS: 4.00x"),
        "confidence": Confidence(level="medium", score=65, factors=("Medium-confidence knowledge base rule",)),
        "source": "knowledge_base",
        "rule_id": rule_id,
        "platform": "google",
        "campaign_name": "Shopping - Feed",
        "tags": ("scaling", "budget"),
    }
    data.update(overrides)
    return ExplainableRecommendation(**data)


def _pending_row(db, key, age_days, account_id="acct-1"):
    row = RecommendationLog(
        account_id=account_id,
        recommendation_id="scale_winner",
        recommendation_key=key,
        text="Scale it",
        category="budget",
        status="pending",
        created_at=datetime.utcnow() - timedelta(days=age_days),
    )
    db.add(row)
    db.commit()
    return row


def _log_one(db, tracker, **rec_overrides):
    tracker.log_recommendations("acct-1", [_rec(**rec_overrides)])
    return db.query(RecommendationLog).order_by(RecommendationLog.id.desc()).first()


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def test_log_recommendations_is_idempotent(db):
    tracker = RecommendationTracker(db)
    recs = [_rec(), _rec(rec_id="high_cpa_warning_c2", rule_id="high_cpa_warning", category="optimization")]

    assert tracker.log_recommendations("acct-1", recs) == 2
    assert tracker.log_recommendations("acct-1", recs) == 0
    assert db.query(RecommendationLog).count() == 2


def test_log_stores_rule_id_and_per_campaign_key(db):
    tracker = RecommendationTracker(db)
    row = _log_one(db, tracker)

    assert row.recommendation_id == "scale_winner"
    assert row.recommendation_key == "scale_winner_c1"
    assert row.status == "pending"
    assert row.confidence_score == 65
    assert row.confidence_level == "medium"
    assert row.data_points == ["Spend: $500", "ROAS: 4.00x"]
    assert row.tags == ["scaling", "budget"]


def test_duplicates_within_one_batch_are_logged_once(db):
    tracker = RecommendationTracker(db)
    assert tracker.log_recommendations("acct-1", [_rec(), _rec()]) == 1


def test_same_key_is_logged_per_account(db):
    tracker = RecommendationTracker(db)
    assert tracker.log_recommendations("acct-1", [_rec()]) == 1
    assert tracker.log_recommendations("acct-2", [_rec()]) == 1


def test_resolved_recommendation_can_be_logged_again(db):
    tracker = RecommendationTracker(db)
    row = _log_one(db, tracker)
    tracker.record_feedback(row.id, "dismissed", dismiss_reason="will_do_later")

    assert tracker.log_recommendations("acct-1", [_rec()]) == 1
    assert db.query(RecommendationLog).filter(RecommendationLog.status == "pending").count() == 1


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------

def test_expire_old_recommendations(db):
    old = _pending_row(db, "old_key", age_days=8)
    fresh = _pending_row(db, "fresh_key", age_days=1)
    other = _pending_row(db, "other_key", age_days=8, account_id="acct-2")
    tracker = RecommendationTracker(db)

    assert tracker.expire_old_recommendations("acct-1") == 1

    db.expire_all()
    assert db.get(RecommendationLog, old.id).status == "expired"
    assert db.get(RecommendationLog, old.id).expired_at is not None
    assert db.get(RecommendationLog, fresh.id).status == "pending"
    assert db.get(RecommendationLog, other.id).status == "pending"


def test_logging_expires_stale_row_before_reinserting(db):
    stale = _pending_row(db, "scale_winner_c1", age_days=10)
    tracker = RecommendationTracker(db)

    assert tracker.log_recommendations("acct-1", [_rec()]) == 1

    db.expire_all()
    assert db.get(RecommendationLog, stale.id).status == "expired"
    assert db.query(RecommendationLog).filter(RecommendationLog.status == "pending").count() == 1


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------

def test_feedback_moves_pending_once(db):
    tracker = RecommendationTracker(db)
    row = _log_one(db, tracker)

    assert tracker.record_feedback(row.id, "implemented", notes="Raised budget 20%") is True
    assert tracker.record_feedback(row.id, "dismissed", dismiss_reason="disagree") is False

    db.expire_all()
    stored = db.get(RecommendationLog, row.id)
    assert stored.status == "implemented"
    assert stored.implemented_at is not None
    assert stored.dismissed_at is None
    assert stored.feedback_notes == "Raised budget 20%"


def test_dismiss_records_reason(db):
    tracker = RecommendationTracker(db)
    row = _log_one(db, tracker)

    assert tracker.record_feedback(row.id, "dismissed", dismiss_reason="already_done") is True
    db.expire_all()
    stored = db.get(RecommendationLog, row.id)
    assert stored.status == "dismissed"
    assert stored.dismiss_reason == "already_done"


def test_invalid_feedback_is_rejected(db):
    tracker = RecommendationTracker(db)
    row = _log_one(db, tracker)

    assert tracker.record_feedback(row.id, "expired") is False
    assert tracker.record_feedback(row.id, "dismissed", dismiss_reason="too_busy") is False
    assert tracker.record_feedback(9999, "implemented") is False

    db.expire_all()
    assert db.get(RecommendationLog, row.id).status == "pending"


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

def test_roas_change_math():
    assert calculate_roas_change(2.0, 3.0) == 50.0
    assert calculate_roas_change(4.0, 3.0) == -25.0
    assert calculate_roas_change(0, 3.0) == 0.0


def test_record_outcome_success(db):
    tracker = RecommendationTracker(db)
    row = _log_one(db, tracker)
    tracker.record_feedback(row.id, "implemented")

    assert tracker.record_outcome(row.id, 2.0, 3.0, notes="two weeks later") is True

    db.expire_all()
    stored = db.get(RecommendationLog, row.id)
    assert stored.roas_change == 50.0
    assert stored.was_successful is True
    assert stored.outcome_recorded_at is not None


def test_zero_baseline_is_not_a_success(db):
    tracker = RecommendationTracker(db)
    row = _log_one(db, tracker)

    assert tracker.record_outcome(row.id, 0.0, 3.0) is True
    db.expire_all()
    stored = db.get(RecommendationLog, row.id)
    assert stored.roas_change == 0.0
    assert stored.was_successful is False


def test_outcome_for_missing_row(db):
    assert RecommendationTracker(db).record_outcome(12345, 2.0, 3.0) is False


def test_learning_success_is_credited_once(db):
    learnings = LearningService(db)
    learning = learnings.create("acct-1", LearningCreate(
        category="budget", condition="high roas remarketing", recommendation="Raise caps",
    ))
    learning_id = learning.id
    tracker = RecommendationTracker(db, learning_service=learnings)
    row = _log_one(db, tracker, rec_id=f"learning_{learning_id}_c1", rule_id=f"learning_{learning_id}")
    tracker.record_feedback(row.id, "implemented")

    tracker.record_outcome(row.id, 2.0, 3.0)
    tracker.record_outcome(row.id, 2.0, 3.5)

    db.expire_all()
    assert db.get(MarketingLearning, learning_id).success_count == 1


# ---------------------------------------------------------------------------
# History and stats
# ---------------------------------------------------------------------------

def test_history_newest_first_with_status_filter(db):
    tracker = RecommendationTracker(db)
    tracker.log_recommendations("acct-1", [_rec(rec_id=f"scale_winner_c{i}") for i in range(3)])
    rows = tracker.get_history("acct-1")
    tracker.record_feedback(rows[0].id, "implemented")

    assert len(rows) == 3
    assert [r.id for r in rows] == sorted((r.id for r in rows), reverse=True)
    assert len(tracker.get_history("acct-1", status="implemented")) == 1
    assert len(tracker.get_history("acct-1", limit=2)) == 2
    assert tracker.get_history("acct-2") == []


def test_stats_and_rule_success_rate(db):
    tracker = RecommendationTracker(db)
    recs = [_rec(rec_id=f"scale_winner_c{i}") for i in range(4)]
    recs.append(_rec(rec_id="low_ctr_general_c9", rule_id="low_ctr_general", category="creative"))
    tracker.log_recommendations("acct-1", recs)

    rows = {r.recommendation_key: r for r in tracker.get_history("acct-1")}
    outcomes = {"scale_winner_c0": 3.0, "scale_winner_c1": 2.5, "scale_winner_c2": 1.5}
    for key, roas_after in outcomes.items():
        tracker.record_feedback(rows[key].id, "implemented")
        tracker.record_outcome(rows[key].id, 2.0, roas_after)
    assert tracker.get_success_rate_for_rule("scale_winner", "acct-1") == 2 / 3

    tracker.record_feedback(rows["low_ctr_general_c9"].id, "dismissed", dismiss_reason="not_relevant")

    stats = tracker.get_stats("acct-1")
    assert stats.total_generated == 5
    assert stats.implemented == 3
    assert stats.dismissed == 1
    assert stats.pending == 1
    assert stats.success_rate == 67
    assert stats.avg_roas_improvement == 37.5
    assert stats.by_category["budget"] == {"count": 4, "implemented": 3, "success_rate": 67}
    assert stats.by_category["creative"]["implemented"] == 0
    assert stats.top_performing_rules == [{"recommendation_id": "scale_winner", "count": 3, "success_rate": 67}]


def test_rule_success_rate_needs_minimum_sample(db):
    tracker = RecommendationTracker(db)
    tracker.log_recommendations("acct-1", [_rec(rec_id=f"scale_winner_c{i}") for i in range(2)])
    for row in tracker.get_history("acct-1"):
        tracker.record_feedback(row.id, "implemented")
        tracker.record_outcome(row.id, 2.0, 3.0)

    assert tracker.get_success_rate_for_rule("scale_winner") is None


def test_zero_day_stats_window_is_empty(db):
    _pending_row(db, "scale_winner_c1", age_days=10)
    tracker = RecommendationTracker(db)

    assert tracker.get_stats("acct-1", days=0).total_generated == 0
    assert tracker.get_stats("acct-1").total_generated == 1


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

def test_pending_key_index_is_unique_and_partial(db):
    index = next(
        i for i in RecommendationLog.__table__.indexes
        if i.name == "uq_recommendation_logs_pending_key"
    )
    assert index.unique is True
    assert "pending" in str(index.dialect_options["sqlite"]["where"])

    _pending_row(db, "scale_winner_c1", age_days=0)
    with pytest.raises(IntegrityError):
        _pending_row(db, "scale_winner_c1", age_days=0)
    db.rollback()

    # Resolved rows are outside the index
    resolved = db.query(RecommendationLog).filter_by(recommendation_key="scale_winner_c1").one()
    resolved.status = "dismissed"
    db.commit()
    _pending_row(db, "scale_winner_c1", age_days=0)
    assert db.query(RecommendationLog).filter_by(recommendation_key="scale_winner_c1").count() == 2
