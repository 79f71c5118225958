"""
Shared output types for analyzers.

Suggestion is the plain-text unit every analyzer emits. ActionableRecommendation
carries a structured action (budget, keyword or product) describing what to
change. Neither executes anything.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

PRIORITY_URGENT = 1
PRIORITY_IMPORTANT = 2
PRIORITY_INFO = 3

CATEGORIES = (
    "bid_strategy", "audience", "creative", "budget",
    "structure", "optimization", "performance",
)


def _clamp_confidence(value: float) -> int:
    return int(round(max(0, min(100, value))))


@dataclass(frozen=True)
class Suggestion:
    id: str
    text: str
    source: str
    priority: int = PRIORITY_INFO
    category: str = "optimization"
    explanation: str = ""
    data_points: Tuple[str, ...] = ()
    confidence: int = 50
    platform: Optional[str] = None          # google, meta, both
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "confidence", _clamp_confidence(self.confidence))
        object.__setattr__(self, "data_points", tuple(self.data_points))
        object.__setattr__(self, "tags", tuple(self.tags))


# ---------------------------------------------------------------------------
# Structured actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BudgetAction:
    platform: str
    current_budget: Optional[float] = None
    recommended_budget: Optional[float] = None
    change_percent: Optional[float] = None
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    type: str = "budget_change"


@dataclass(frozen=True)
class KeywordAction:
    keyword: str
    operation: str                          # add_keyword, pause_keyword, adjust_bid, add_negative
    match_type: str = "exact"               # exact, phrase, broad
    suggested_cpc: Optional[float] = None
    current_cpc: Optional[float] = None
    estimated_roas: Optional[float] = None
    campaign_name: Optional[str] = None
    type: str = "keyword"


@dataclass(frozen=True)
class ProductAction:
    product_id: str
    product_title: str
    operation: str                          # start_advertising, increase_budget
    suggested_daily_budget: Optional[float] = None
    sku: Optional[str] = None
    type: str = "product"


Action = Union[BudgetAction, KeywordAction, ProductAction]


@dataclass(frozen=True)
class EstimatedImpact:
    metric: str                             # revenue, roas, spend_saved, conversions
    value: float
    direction: str = "increase"             # increase, decrease
    timeframe: str = "monthly"


@dataclass(frozen=True)
class ActionableRecommendation:
    id: str
    headline: str
    action: Action
    source: str
    priority: int = PRIORITY_IMPORTANT
    category: str = "optimization"
    explanation: str = ""
    data_points: Tuple[str, ...] = ()
    confidence: int = 50
    estimated_impact: Optional[EstimatedImpact] = None
    platform: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "confidence", _clamp_confidence(self.confidence))
        object.__setattr__(self, "data_points", tuple(self.data_points))
        object.__setattr__(self, "tags", tuple(self.tags))


def format_cpc_recommendation(cpc: float) -> str:
    return f"${cpc:.2f} max CPC"


def create_keyword_headline(action: KeywordAction) -> str:
    if action.operation == "add_keyword":
        return f"Add keyword \"{action.keyword}\" ({action.match_type} match)"
    if action.operation == "pause_keyword":
        return f"Pause or reduce bid on \"{action.keyword}\""
    if action.operation == "add_negative":
        return f"Add \"{action.keyword}\" as a negative keyword"
    if action.suggested_cpc is not None:
        return f"Raise bid on \"{action.keyword}\" to {format_cpc_recommendation(action.suggested_cpc)}"
    return f"Adjust bid on \"{action.keyword}\""


def create_product_headline(action: ProductAction) -> str:
    if action.operation == "start_advertising":
        budget = f" at ${action.suggested_daily_budget:.0f}/day" if action.suggested_daily_budget else ""
        return f"Start advertising \"{action.product_title}\"{budget}"
    return f"Increase ad budget for \"{action.product_title}\""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalysisMetadata:
    analyzed_at: datetime
    duration_ms: int
    source: str
    account_id: str


@dataclass
class AnalysisResult:
    has_data: bool = False
    suggestions: List[Suggestion] = field(default_factory=list)
    actionable_recommendations: List[ActionableRecommendation] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    metadata: Optional[AnalysisMetadata] = None
