"""
Campaign context builder.

Turns a campaign's window totals into the canonical AnalysisContext that
knowledge-base rules are evaluated against. Campaign type and funnel stage
are inferred from the campaign name.

Type detection (first match wins):
  shopping > search > display > video > remarketing > prospecting >
  awareness > conversion > unknown
"""
import re
from dataclasses import dataclass
from typing import Dict, Optional

from marketing_copilot.models.records import CampaignSnapshot
from marketing_copilot.utils.helpers import safe_divide

TRENDS = ("improving", "stable", "declining")
FUNNEL_STAGES = ("awareness", "consideration", "conversion", "retention")

# ---------------------------------------------------------------------------
# Campaign type patterns
# ---------------------------------------------------------------------------

CAMPAIGN_TYPE_PATTERNS = (
    ("shopping", (r"\bshopping\b", r"\bpmax\b", r"\bperformance\s*max\b", r"\bpla\b")),
    ("search", (r"\bsearch\b", r"\bsem\b", r"\btext\s*ads?\b")),
    ("display", (r"\bdisplay\b", r"\bgdn\b", r"\bbanner\b")),
    ("video", (r"\bvideo\b", r"\byoutube\b", r"\breels?\b")),
    ("remarketing", (r"\bremarket", r"\bretarget", r"\brmkt\b", r"\bwebsite\s*visitors?\b")),
    ("prospecting", (r"\bprospect", r"\bcold\b", r"\bnew\s*audience\b", r"\btof\b", r"\btop\s*of\s*funnel\b")),
    ("awareness", (r"\bawareness\b", r"\breach\b", r"\bimpressions\b")),
    ("conversion", (r"\bconversion\b", r"\bpurchase\b", r"\bsales\b", r"\bbof\b", r"\bbottom\s*of\s*funnel\b")),
)
_COMPILED_TYPE_PATTERNS = tuple(
    (campaign_type, tuple(re.compile(p, re.IGNORECASE) for p in patterns))
    for campaign_type, patterns in CAMPAIGN_TYPE_PATTERNS
)

BRAND_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"\bbrand\b",
    r"\bbranded\b",
    r"\btrademark\b",
    r"\[brand\]",
    r"\bexact\s*match\b",
    r"\bbrand\s*terms?\b",
    r"\bbrand\s*protection\b",
    r"\bdefense\b",
    r"\bowned\b",
))

FUNNEL_STAGE_BY_TYPE = {
    "awareness": "awareness",
    "video": "awareness",
    "display": "awareness",
    "prospecting": "consideration",
    "search": "consideration",
    "shopping": "conversion",
    "conversion": "conversion",
    "brand": "conversion",
    "remarketing": "retention",
}

EXPECTED_ROAS = {
    "brand": {"min": 0.5, "good": 1.5},
    "awareness": {"min": 0.3, "good": 1.0},
    "prospecting": {"min": 0.3, "good": 1.0},
    "remarketing": {"min": 2.0, "good": 5.0},
    "shopping": {"min": 1.0, "good": 3.0},
    "conversion": {"min": 1.0, "good": 3.0},
}


def get_campaign_type(campaign_name: str) -> str:
    """Infer campaign type from its name."""
    for campaign_type, patterns in _COMPILED_TYPE_PATTERNS:
        if any(p.search(campaign_name or "") for p in patterns):
            return campaign_type
    return "unknown"


def is_brand_campaign(campaign_name: str, store_name: Optional[str] = None) -> bool:
    """Brand campaigns target searches for the store's own name."""
    name = (campaign_name or "").lower()
    if any(p.search(name) for p in BRAND_PATTERNS):
        return True
    if store_name and len(store_name) > 2:
        return re.search(rf"\b{re.escape(store_name.lower())}\b", name) is not None
    return False


def infer_funnel_stage(campaign_type: str) -> str:
    return FUNNEL_STAGE_BY_TYPE.get(campaign_type, "consideration")


def get_expected_roas_threshold(campaign_type: str) -> Optional[Dict[str, float]]:
    """Type-specific ROAS expectations, or None for standard thresholds."""
    return EXPECTED_ROAS.get(campaign_type)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Trends:
    roas: str = "stable"
    ctr: str = "stable"


@dataclass(frozen=True)
class AnalysisContext:
    platform: str                       # google, meta, both
    campaign_type: str
    campaign_name: str
    spend: float
    roas: float
    ctr: float                          # percent
    cpc: float
    cpa: float
    cpm: float
    conversions: float
    impressions: int
    clicks: int
    roas_trend: str = "stable"
    ctr_trend: str = "stable"
    funnel_stage: str = "consideration"
    days_since_launch: Optional[int] = None
    frequency_score: Optional[float] = None
    is_learning: Optional[bool] = None


def build_context(campaign: CampaignSnapshot, platform: str, trends: Optional[Trends] = None) -> AnalysisContext:
    """Build the rule-evaluation context for one campaign."""
    trends = trends or Trends()
    campaign_type = get_campaign_type(campaign.name)
    return AnalysisContext(
        platform=platform,
        campaign_type=campaign_type,
        campaign_name=campaign.name,
        spend=campaign.spend,
        roas=campaign.roas,
        ctr=campaign.ctr,
        cpc=campaign.cpc,
        cpa=campaign.cpa,
        cpm=safe_divide(campaign.spend, campaign.impressions) * 1000,
        conversions=campaign.conversions,
        impressions=campaign.impressions,
        clicks=campaign.clicks,
        roas_trend=trends.roas,
        ctr_trend=trends.ctr,
        funnel_stage=infer_funnel_stage(campaign_type),
        days_since_launch=campaign.days_since_launch,
        frequency_score=campaign.frequency,
        is_learning=campaign.is_learning,
    )
