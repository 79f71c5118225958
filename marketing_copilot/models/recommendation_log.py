"""Recommendation log: one row per emitted recommendation instance."""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Text, JSON, Index
from sqlalchemy import text as sa_text
from datetime import datetime

from marketing_copilot.models.base import Base


class RecommendationLog(Base):
    """
    Append-only record of a recommendation shown to an account.

    Status moves one way: pending -> implemented | dismissed | expired.
    Outcome columns are filled later when ROAS after the change is known.
    """
    __tablename__ = "recommendation_logs"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)

    recommendation_id = Column(String, index=True, nullable=False)   # base rule id, e.g. scale_winner
    recommendation_key = Column(String, nullable=False)              # per-campaign id, used to skip duplicates
    text = Column(Text, nullable=False)
    category = Column(String, index=True)
    priority = Column(Integer)
    platform = Column(String, nullable=True)                         # google, meta, both
    campaign_name = Column(String, nullable=True)
    confidence_score = Column(Integer)
    confidence_level = Column(String)                                # high, medium, low
    data_points = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=True)

    status = Column(String, nullable=False, default="pending", index=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    implemented_at = Column(DateTime, nullable=True)
    dismissed_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)

    # Feedback
    dismiss_reason = Column(String, nullable=True)    # not_relevant, already_done, disagree, will_do_later
    feedback_notes = Column(Text, nullable=True)

    # Outcome
    outcome_recorded_at = Column(DateTime, nullable=True)
    roas_before = Column(Float, nullable=True)
    roas_after = Column(Float, nullable=True)
    roas_change = Column(Float, nullable=True)        # percent
    was_successful = Column(Boolean, nullable=True)   # derived from roas_change
    outcome_notes = Column(Text, nullable=True)

    __table_args__ = (
        # At most one pending row per account + recommendation instance
        Index(
            "uq_recommendation_logs_pending_key",
            "account_id",
            "recommendation_key",
            unique=True,
            sqlite_where=sa_text("status = 'pending'"),
            postgresql_where=sa_text("status = 'pending'"),
        ),
        Index("ix_recommendation_logs_account_status", "account_id", "status"),
    )
