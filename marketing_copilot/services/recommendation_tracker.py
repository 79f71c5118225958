"""
Recommendation Tracker - logs emitted recommendations, user feedback and
measured outcomes so the learning service can mine what works.

Lifecycle of a log row:
  1. log_recommendations()  - pending (older pending rows expire first)
  2. record_feedback()      - pending -> implemented | dismissed
  3. record_outcome()       - ROAS before/after, success flag
  4. get_stats()            - dashboard aggregates and top rules
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from marketing_copilot.config import get_settings
from marketing_copilot.models.recommendation_log import RecommendationLog
from marketing_copilot.utils.logger import log

FEEDBACK_STATUSES = ("implemented", "dismissed")
DISMISS_REASONS = ("not_relevant", "already_done", "disagree", "will_do_later")


@dataclass
class RecommendationStats:
    total_generated: int = 0
    implemented: int = 0
    dismissed: int = 0
    pending: int = 0
    expired: int = 0
    success_rate: int = 0               # % of implemented-with-outcome that improved ROAS
    avg_roas_improvement: float = 0.0   # mean ROAS change of the successful ones
    by_category: Dict[str, Dict] = field(default_factory=dict)
    top_performing_rules: List[Dict] = field(default_factory=list)


def calculate_roas_change(roas_before: float, roas_after: float) -> float:
    if not roas_before or roas_before <= 0:
        return 0.0
    return (roas_after - roas_before) / roas_before * 100


def _learning_id(recommendation_id: str) -> Optional[int]:
    if not recommendation_id or not recommendation_id.startswith("learning_"):
        return None
    try:
        return int(recommendation_id.split("_")[1])
    except (IndexError, ValueError):
        return None


class RecommendationTracker:
    def __init__(self, db: Session, learning_service=None):
        self.db = db
        self.learning_service = learning_service
        self.settings = get_settings()

    def log_recommendations(self, account_id: str, recommendations: Sequence) -> int:
        """
        Expire stale pending rows, then insert one pending row per
        recommendation. Recommendations that already have a pending row are
        skipped, so re-running the pipeline never duplicates. Returns the
        number of rows inserted; persistence errors are logged and yield 0.
        """
        try:
            self.expire_old_recommendations(account_id)

            keys = {rec.id for rec in recommendations}
            pending = {
                key for (key,) in self.db.query(RecommendationLog.recommendation_key).filter(
                    RecommendationLog.account_id == account_id,
                    RecommendationLog.status == "pending",
                    RecommendationLog.recommendation_key.in_(keys),
                ).all()
            } if keys else set()

            new_recs = []
            for rec in recommendations:
                if rec.id in pending:
                    continue
                pending.add(rec.id)
                new_recs.append(rec)

            if not new_recs:
                return 0

            try:
                self.db.add_all([self._to_row(account_id, rec) for rec in new_recs])
                self.db.commit()
                inserted = len(new_recs)
            except IntegrityError:
                # A concurrent run inserted some of these keys; retry row by row
                self.db.rollback()
                inserted = self._insert_skipping_duplicates(account_id, new_recs)

            log.info(f"Logged {inserted} recommendations for account {account_id}")
            return inserted
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Failed to log recommendations for account {account_id}: {e!r}")
            return 0

    def _insert_skipping_duplicates(self, account_id: str, recommendations: Sequence) -> int:
        inserted = 0
        for rec in recommendations:
            try:
                self.db.add(self._to_row(account_id, rec))
                self.db.commit()
                inserted += 1
            except IntegrityError:
                self.db.rollback()
        return inserted

    def _to_row(self, account_id: str, rec) -> RecommendationLog:
        return RecommendationLog(
            account_id=account_id,
            recommendation_id=rec.rule_id,
            recommendation_key=rec.id,
            text=rec.text,
            category=rec.category,
            priority=rec.priority,
            platform=rec.platform,
            campaign_name=rec.campaign_name,
            confidence_score=rec.confidence.score,
            confidence_level=rec.confidence.level,
            data_points=list(rec.data_points),
            tags=list(rec.tags),
            status="pending",
        )

    def expire_old_recommendations(self, account_id: str) -> int:
        """Bulk pending -> expired for rows older than the expiry window."""
        now = datetime.utcnow()
        cutoff = now - timedelta(days=self.settings.recommendation_expiry_days)
        expired = self.db.query(RecommendationLog).filter(
            RecommendationLog.account_id == account_id,
            RecommendationLog.status == "pending",
            RecommendationLog.created_at < cutoff,
        ).update(
            {
                RecommendationLog.status: "expired",
                RecommendationLog.expired_at: now,
                RecommendationLog.updated_at: now,
            },
            synchronize_session=False,
        )
        self.db.commit()
        if expired:
            log.info(f"Expired {expired} pending recommendations for account {account_id}")
        return expired

    def record_feedback(
        self,
        log_id: int,
        status: str,
        dismiss_reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """Move a pending row to implemented or dismissed. Returns False otherwise."""
        if status not in FEEDBACK_STATUSES:
            log.warning(f"Ignoring feedback for {log_id}: unknown status {status!r}")
            return False
        if dismiss_reason is not None and dismiss_reason not in DISMISS_REASONS:
            log.warning(f"Ignoring feedback for {log_id}: unknown dismiss reason {dismiss_reason!r}")
            return False

        now = datetime.utcnow()
        values = {
            RecommendationLog.status: status,
            RecommendationLog.updated_at: now,
            RecommendationLog.feedback_notes: notes,
        }
        if status == "implemented":
            values[RecommendationLog.implemented_at] = now
        else:
            values[RecommendationLog.dismissed_at] = now
            values[RecommendationLog.dismiss_reason] = dismiss_reason

        try:
            updated = self.db.query(RecommendationLog).filter(
                RecommendationLog.id == log_id,
                RecommendationLog.status == "pending",
            ).update(values, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Failed to record feedback for {log_id}: {e!r}")
            return False

        if not updated:
            log.warning(f"Feedback for {log_id} ignored: not found or no longer pending")
            return False
        log.info(f"Recorded feedback for recommendation {log_id}: {status}")
        return True

    def record_outcome(
        self,
        log_id: int,
        roas_before: float,
        roas_after: float,
        notes: Optional[str] = None,
    ) -> bool:
        """Store the measured ROAS change; a second call overwrites the first."""
        try:
            row = self.db.query(RecommendationLog).filter(RecommendationLog.id == log_id).first()
            if not row:
                log.warning(f"Outcome for {log_id} ignored: recommendation not found")
                return False

            was_already_successful = bool(row.was_successful)
            roas_change = calculate_roas_change(roas_before, roas_after)

            row.outcome_recorded_at = datetime.utcnow()
            row.roas_before = roas_before
            row.roas_after = roas_after
            row.roas_change = roas_change
            row.was_successful = roas_change > 0
            row.outcome_notes = notes
            row.updated_at = datetime.utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Failed to record outcome for {log_id}: {e!r}")
            return False

        log.info(f"Recorded outcome for recommendation {log_id}: {roas_change:.1f}% ROAS change")

        learning_id = _learning_id(row.recommendation_id)
        if row.was_successful and not was_already_successful and learning_id and self.learning_service:
            try:
                self.learning_service.record_success(learning_id)
            except SQLAlchemyError as e:
                self.db.rollback()
                log.error(f"Failed to credit learning {learning_id}: {e!r}")
        return True

    def get_history(
        self,
        account_id: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[RecommendationLog]:
        query = self.db.query(RecommendationLog).filter(RecommendationLog.account_id == account_id)
        if status:
            query = query.filter(RecommendationLog.status == status)
        return query.order_by(
            RecommendationLog.created_at.desc(), RecommendationLog.id.desc()
        ).offset(offset).limit(limit).all()

    def get_stats(self, account_id: str, days: Optional[int] = None) -> RecommendationStats:
        if days is None:
            days = self.settings.stats_default_days
        start_date = datetime.utcnow() - timedelta(days=days)
        stats = RecommendationStats()

        logs = self.db.query(RecommendationLog).filter(
            RecommendationLog.account_id == account_id,
            RecommendationLog.created_at >= start_date,
        ).all()
        stats.total_generated = len(logs)

        for row in logs:
            if row.status == "implemented":
                stats.implemented += 1
            elif row.status == "dismissed":
                stats.dismissed += 1
            elif row.status == "pending":
                stats.pending += 1
            elif row.status == "expired":
                stats.expired += 1

            category = stats.by_category.setdefault(
                row.category, {"count": 0, "implemented": 0, "success_rate": 0}
            )
            category["count"] += 1
            if row.status == "implemented":
                category["implemented"] += 1

        with_outcome = [r for r in logs if r.status == "implemented" and r.was_successful is not None]
        if with_outcome:
            successful = [r for r in with_outcome if r.was_successful]
            stats.success_rate = round(len(successful) / len(with_outcome) * 100)
            improvements = [r.roas_change for r in successful if r.roas_change is not None]
            if improvements:
                stats.avg_roas_improvement = round(sum(improvements) / len(improvements), 1)

        for name, category in stats.by_category.items():
            rows = [r for r in with_outcome if r.category == name]
            if rows:
                category["success_rate"] = round(sum(1 for r in rows if r.was_successful) / len(rows) * 100)

        rules: Dict[str, Dict] = {}
        for row in with_outcome:
            rule = rules.setdefault(row.recommendation_id, {"count": 0, "successful": 0})
            rule["count"] += 1
            if row.was_successful:
                rule["successful"] += 1

        stats.top_performing_rules = sorted(
            (
                {
                    "recommendation_id": rule_id,
                    "count": data["count"],
                    "success_rate": round(data["successful"] / data["count"] * 100),
                }
                for rule_id, data in rules.items()
                if data["count"] >= self.settings.top_rules_min_sample
            ),
            key=lambda r: r["success_rate"],
            reverse=True,
        )[:self.settings.top_rules_limit]
        return stats

    def get_success_rate_for_rule(self, recommendation_id: str, account_id: Optional[str] = None) -> Optional[float]:
        """Fraction (0-1) of implemented outcomes that succeeded; None below the minimum sample."""
        query = self.db.query(RecommendationLog).filter(
            RecommendationLog.recommendation_id == recommendation_id,
            RecommendationLog.status == "implemented",
            RecommendationLog.was_successful.isnot(None),
        )
        if account_id:
            query = query.filter(RecommendationLog.account_id == account_id)
        rows = query.all()

        if len(rows) < self.settings.top_rules_min_sample:
            return None
        return sum(1 for r in rows if r.was_successful) / len(rows)
