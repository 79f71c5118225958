"""Database models and typed ingestion records for the recommendation core"""

from marketing_copilot.models.learning import MarketingLearning
from marketing_copilot.models.recommendation_log import RecommendationLog

from marketing_copilot.models.records import (
    CampaignSnapshot,
    LineItem,
    Order,
    Customer,
    Product,
    AnalyticsSession,
    AnalyticsEvent,
    OrganicQuery,
    PaidKeyword,
)

__all__ = [
    "MarketingLearning",
    "RecommendationLog",
    "CampaignSnapshot",
    "LineItem",
    "Order",
    "Customer",
    "Product",
    "AnalyticsSession",
    "AnalyticsEvent",
    "OrganicQuery",
    "PaidKeyword",
]
