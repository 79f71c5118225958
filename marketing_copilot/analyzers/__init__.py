"""Domain analyzers for the recommendation core"""
from typing import List, Optional

from marketing_copilot.analyzers.base import BaseAnalyzer, combine_results, run_analyzers
from marketing_copilot.analyzers.audience import AudienceAnalyzer
from marketing_copilot.analyzers.cannibalization import CannibalizationAnalyzer
from marketing_copilot.analyzers.cross_channel import CrossChannelAnalyzer
from marketing_copilot.analyzers.funnel import FunnelAnalyzer
from marketing_copilot.analyzers.keyword_opportunity import KeywordOpportunityAnalyzer
from marketing_copilot.analyzers.ltv import LTVAnalyzer
from marketing_copilot.analyzers.multi_period import MultiPeriodAnalyzer
from marketing_copilot.analyzers.negative_keyword import NegativeKeywordAnalyzer
from marketing_copilot.analyzers.product_opportunity import ProductOpportunityAnalyzer
from marketing_copilot.config import Settings, get_settings
from marketing_copilot.connectors.base import AccountDataSource

# Multi-period runs separately since its trends feed rule evaluation
ANALYZER_CLASSES = {
    "cross_channel": CrossChannelAnalyzer,
    "ltv": LTVAnalyzer,
    "funnel": FunnelAnalyzer,
    "audience": AudienceAnalyzer,
    "keyword_opportunity": KeywordOpportunityAnalyzer,
    "product_opportunity": ProductOpportunityAnalyzer,
    "cannibalization": CannibalizationAnalyzer,
    "negative_keyword": NegativeKeywordAnalyzer,
}


def build_default_analyzers(
    data_source: AccountDataSource, settings: Optional[Settings] = None
) -> List[BaseAnalyzer]:
    """Instantiate every analyzer enabled in settings."""
    settings = settings or get_settings()
    return [
        cls(data_source, settings)
        for name, cls in ANALYZER_CLASSES.items()
        if getattr(settings, f"enable_{name}", True)
    ]


__all__ = [
    "ANALYZER_CLASSES",
    "AudienceAnalyzer",
    "BaseAnalyzer",
    "CannibalizationAnalyzer",
    "CrossChannelAnalyzer",
    "FunnelAnalyzer",
    "KeywordOpportunityAnalyzer",
    "LTVAnalyzer",
    "MultiPeriodAnalyzer",
    "NegativeKeywordAnalyzer",
    "ProductOpportunityAnalyzer",
    "build_default_analyzers",
    "combine_results",
    "run_analyzers",
]
