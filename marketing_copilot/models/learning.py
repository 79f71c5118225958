"""Account-scoped learned rules layered on top of the static knowledge base."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, Index
from datetime import datetime

from marketing_copilot.models.base import Base


class MarketingLearning(Base):
    """
    A user-authored or AI-derived rule for one account.

    User rules start active. AI-derived rules start pending and only take
    part in matching once approved.
    """
    __tablename__ = "marketing_learnings"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)

    platform = Column(String, nullable=False, default="both")   # google, meta, both
    category = Column(String, nullable=False)                    # bid_strategy, audience, creative, ...
    condition = Column(Text, nullable=False)                     # free text, matched by keyword overlap
    recommendation = Column(Text, nullable=False)
    explanation = Column(Text, nullable=True)

    source = Column(String, nullable=False, default="user")     # user, ai_derived
    is_active = Column(Boolean, nullable=False, default=True)
    is_pending = Column(Boolean, nullable=False, default=False)

    # Only ever incremented in SQL
    applied_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)

    derived_from_recommendation_ids = Column(JSON, nullable=True)  # RecommendationLog ids

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_marketing_learnings_account_active", "account_id", "is_active", "is_pending"),
    )

    @property
    def success_rate(self) -> int:
        if not self.applied_count:
            return 0
        return round((self.success_count or 0) / self.applied_count * 100)
