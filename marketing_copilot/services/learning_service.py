"""
Learning Service - account-scoped rules layered on the static knowledge base.

Two sources:
  - user        created active, take part in matching immediately
  - ai_derived  mined from successful recommendation outcomes; always created
                pending and only matched after approve_pending()
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from marketing_copilot.config import get_settings
from marketing_copilot.models.learning import MarketingLearning
from marketing_copilot.models.recommendation_log import RecommendationLog
from marketing_copilot.utils.logger import log


class LearningCreate(BaseModel):
    platform: str = "both"                  # google, meta, both
    category: str
    condition: str
    recommendation: str
    explanation: Optional[str] = None
    source: str = "user"                    # user, ai_derived
    is_pending: bool = False
    derived_from_recommendation_ids: Optional[List[int]] = None


class LearningUpdate(BaseModel):
    condition: Optional[str] = None
    recommendation: Optional[str] = None
    explanation: Optional[str] = None
    is_active: Optional[bool] = None


class LearningService:
    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def create(self, account_id: str, data: LearningCreate) -> MarketingLearning:
        learning = MarketingLearning(
            account_id=account_id,
            platform=data.platform,
            category=data.category,
            condition=data.condition,
            recommendation=data.recommendation,
            explanation=data.explanation,
            source=data.source,
            # AI-derived rules never go live without approval
            is_pending=True if data.source == "ai_derived" else data.is_pending,
            derived_from_recommendation_ids=data.derived_from_recommendation_ids,
        )
        self.db.add(learning)
        self.db.commit()
        self.db.refresh(learning)

        log.info(f"Created marketing learning {learning.id} for account {account_id} (source={data.source})")
        return learning

    def update(self, learning_id: int, account_id: str, data: LearningUpdate) -> Optional[MarketingLearning]:
        learning = self.get_by_id(learning_id, account_id)
        if not learning:
            return None

        for field, value in data.model_dump(exclude_none=True).items():
            setattr(learning, field, value)
        learning.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(learning)
        return learning

    def delete(self, learning_id: int, account_id: str) -> bool:
        learning = self.get_by_id(learning_id, account_id)
        if not learning:
            return False

        self.db.delete(learning)
        self.db.commit()
        log.info(f"Deleted marketing learning {learning_id} for account {account_id}")
        return True

    def list(
        self,
        account_id: str,
        platform: Optional[str] = None,
        category: Optional[str] = None,
        include_inactive: bool = False,
        include_pending: bool = False,
    ) -> List[MarketingLearning]:
        """Learnings for an account, newest first. A platform filter also returns 'both' rules."""
        query = self.db.query(MarketingLearning).filter(MarketingLearning.account_id == account_id)

        if not include_inactive:
            query = query.filter(MarketingLearning.is_active == True)
        if not include_pending:
            query = query.filter(MarketingLearning.is_pending == False)
        if platform:
            query = query.filter(MarketingLearning.platform.in_([platform, "both"]))
        if category:
            query = query.filter(MarketingLearning.category == category)

        return query.order_by(MarketingLearning.created_at.desc(), MarketingLearning.id.desc()).all()

    def get_by_id(self, learning_id: int, account_id: str) -> Optional[MarketingLearning]:
        return self.db.query(MarketingLearning).filter(
            MarketingLearning.id == learning_id,
            MarketingLearning.account_id == account_id,
        ).first()

    def approve_pending(self, learning_id: int, account_id: str) -> bool:
        updated = self.db.query(MarketingLearning).filter(
            MarketingLearning.id == learning_id,
            MarketingLearning.account_id == account_id,
            MarketingLearning.is_pending == True,
        ).update(
            {MarketingLearning.is_pending: False, MarketingLearning.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
        self.db.commit()

        if not updated:
            log.warning(f"No pending learning {learning_id} for account {account_id}")
            return False
        log.info(f"Approved marketing learning {learning_id} for account {account_id}")
        return True

    def get_pending(self, account_id: str) -> List[MarketingLearning]:
        return self.db.query(MarketingLearning).filter(
            MarketingLearning.account_id == account_id,
            MarketingLearning.is_pending == True,
            MarketingLearning.source == "ai_derived",
        ).order_by(MarketingLearning.created_at.desc(), MarketingLearning.id.desc()).all()

    # ------------------------------------------------------------------
    # Counters (single SQL increment, never read-modify-write)
    # ------------------------------------------------------------------

    def record_application(self, learning_id: int) -> None:
        self.db.query(MarketingLearning).filter(MarketingLearning.id == learning_id).update(
            {MarketingLearning.applied_count: MarketingLearning.applied_count + 1},
            synchronize_session=False,
        )
        self.db.commit()

    def record_success(self, learning_id: int) -> None:
        self.db.query(MarketingLearning).filter(MarketingLearning.id == learning_id).update(
            {MarketingLearning.success_count: MarketingLearning.success_count + 1},
            synchronize_session=False,
        )
        self.db.commit()

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def derive_from_outcomes(self, account_id: str) -> List[MarketingLearning]:
        """
        Turn repeatedly successful recommendations into pending AI-derived learnings.

        Groups implemented, successful log rows by (rule id, category, platform)
        and keeps groups with at least `learning_min_pattern_count` rows. A
        group is skipped when an ai_derived learning already exists for its
        category and platform.
        """
        min_count = self.settings.learning_min_pattern_count
        patterns = self.db.query(
            RecommendationLog.recommendation_id,
            RecommendationLog.category,
            RecommendationLog.platform,
            func.count(RecommendationLog.id),
        ).filter(
            RecommendationLog.account_id == account_id,
            RecommendationLog.status == "implemented",
            RecommendationLog.was_successful == True,
        ).group_by(
            RecommendationLog.recommendation_id,
            RecommendationLog.category,
            RecommendationLog.platform,
        ).having(
            func.count(RecommendationLog.id) >= min_count,
        ).all()

        derived = []
        for rule_id, category, platform, count in patterns:
            platform = platform or "both"
            existing = self.db.query(MarketingLearning).filter(
                MarketingLearning.account_id == account_id,
                MarketingLearning.category == category,
                MarketingLearning.platform == platform,
                MarketingLearning.source == "ai_derived",
            ).first()
            if existing:
                continue

            samples = self.db.query(RecommendationLog).filter(
                RecommendationLog.account_id == account_id,
                RecommendationLog.recommendation_id == rule_id,
                RecommendationLog.was_successful == True,
            ).order_by(
                RecommendationLog.roas_change.desc(),
            ).limit(self.settings.learning_sample_size).all()
            if not samples:
                continue

            derived.append(self.create(account_id, LearningCreate(
                platform=platform,
                category=category,
                condition=f"Pattern detected: {rule_id} has been successful {count} times",
                recommendation=samples[0].text,
                explanation=(
                    f"AI-derived from {count} successful implementations. "
                    f"Average ROAS improvement: {_average_roas_change(samples)}%"
                ),
                source="ai_derived",
                is_pending=True,
                derived_from_recommendation_ids=[s.id for s in samples],
            )))

        if derived:
            log.info(f"Derived {len(derived)} new marketing learnings for account {account_id}")
        return derived


def _average_roas_change(samples: List[RecommendationLog]) -> str:
    changes = [s.roas_change for s in samples if s.roas_change is not None]
    if not changes:
        return "N/A"
    return f"{sum(changes) / len(changes):.1f}"
