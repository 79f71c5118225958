"""
Recommendation Engine

Turns campaign snapshots and analyzer output into one ranked list of
explainable recommendations. Every recommendation carries the data points
that triggered it and a confidence score built from named factors.

Pipeline for generate_recommendations():
  1. load the lookback window of snapshots per platform
  2. run multi-period + domain analyzers concurrently
  3. match knowledge-base rules (and account learnings) per campaign
  4. merge, dedup, sort, log through the tracker
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import uuid

from marketing_copilot.analyzers import build_default_analyzers
from marketing_copilot.analyzers.base import BaseAnalyzer, run_analyzers
from marketing_copilot.analyzers.multi_period import MultiPeriodAnalyzer, campaign_trends, platform_trends
from marketing_copilot.analyzers.types import (
    Action,
    ActionableRecommendation,
    AnalysisResult,
    PRIORITY_IMPORTANT,
    PRIORITY_INFO,
    PRIORITY_URGENT,
    Suggestion,
)
from marketing_copilot.config import Settings, get_settings
from marketing_copilot.connectors.base import AccountDataSource
from marketing_copilot.models.records import CampaignSnapshot, aggregate_snapshots
from marketing_copilot.services.context_builder import AnalysisContext, Trends, build_context
from marketing_copilot.services.knowledge_base import (
    MatchedRecommendation,
    find_matches,
    find_matches_with_learnings,
)
from marketing_copilot.utils.helpers import clamp
from marketing_copilot.utils.logger import log

PLATFORMS = ("google", "meta")
MIN_CONFIDENCE = 20
MAX_CONFIDENCE = 100


@dataclass(frozen=True)
class Confidence:
    level: str                          # high, medium, low
    score: int                          # 20-100
    factors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExplainableRecommendation:
    id: str
    text: str
    priority: int
    category: str
    explanation: str
    data_points: Tuple[str, ...]
    confidence: Confidence
    source: str                         # knowledge_base, rule, analyzer
    rule_id: str                        # id without the per-campaign suffix
    platform: Optional[str] = None
    campaign_name: Optional[str] = None
    tags: Tuple[str, ...] = ()
    action: Optional[Action] = None


@dataclass
class RecommendationSummary:
    total: int = 0
    by_priority: Dict[str, int] = field(default_factory=lambda: {"urgent": 0, "important": 0, "info": 0})
    by_category: Dict[str, int] = field(default_factory=dict)
    avg_confidence: int = 0
    top_recommendations: List[ExplainableRecommendation] = field(default_factory=list)


def confidence_level(score: float) -> str:
    if score >= 75:
        return "high"
    if score < 50:
        return "low"
    return "medium"


def calculate_confidence(match: MatchedRecommendation, context: AnalysisContext) -> Confidence:
    """Additive confidence from rule tier, sample size, spend, trend and urgency."""
    factors = []
    score = 50

    if match.confidence == "high":
        score += 20
        factors.append("High-confidence knowledge base rule")
    elif match.confidence == "medium":
        score += 10
        factors.append("Medium-confidence knowledge base rule")

    if context.conversions > 50:
        score += 15
        factors.append("Large conversion sample (50+)")
    elif context.conversions > 20:
        score += 10
        factors.append("Moderate conversion sample (20+)")
    elif context.conversions < 10:
        score -= 10
        factors.append("Limited conversion data (<10)")

    if context.spend > 1000:
        score += 10
        factors.append("Substantial spend ($1000+)")
    elif context.spend < 100:
        score -= 10
        factors.append("Limited spend data (<$100)")

    if context.roas_trend == "declining" and "declining" in match.tags:
        score += 5
        factors.append("Trend aligns with recommendation")

    if match.priority == PRIORITY_URGENT:
        score += 5
        factors.append("Critical issue detected")

    score = int(clamp(score, MIN_CONFIDENCE, MAX_CONFIDENCE))
    return Confidence(level=confidence_level(score), score=score, factors=tuple(factors))


def _score_confidence(score: float) -> Confidence:
    score = int(clamp(round(score), MIN_CONFIDENCE, MAX_CONFIDENCE))
    return Confidence(level=confidence_level(score), score=score, factors=(f"Score: {score}",))


def infer_priority_from_text(text: str) -> int:
    lowered = text.lower()
    if any(word in lowered for word in ("critical", "alert", "warning", "urgent")):
        return PRIORITY_URGENT
    if "declining" in lowered or "opportunity" in lowered:
        return PRIORITY_IMPORTANT
    if any(word in lowered for word in ("improved", "improving", "healthy", "on track")):
        return PRIORITY_INFO
    return PRIORITY_IMPORTANT


def from_analyzer_suggestion(suggestion: Suggestion) -> ExplainableRecommendation:
    return ExplainableRecommendation(
        id=suggestion.id,
        text=suggestion.text,
        priority=suggestion.priority,
        category=suggestion.category,
        explanation=suggestion.explanation,
        data_points=suggestion.data_points,
        confidence=_score_confidence(suggestion.confidence),
        source="analyzer",
        rule_id=suggestion.id,
        platform=suggestion.platform,
        campaign_name=suggestion.campaign_name,
        tags=suggestion.tags,
    )


def from_text_suggestion(
    text: str,
    category: str,
    explanation: str = "",
    data_points: Iterable[str] = (),
    confidence_score: float = 50,
    tags: Iterable[str] = (),
) -> ExplainableRecommendation:
    """Wrap free text with no structured priority; priority is inferred from wording."""
    rec_id = f"analyzer_{uuid.uuid4().hex[:12]}"
    return ExplainableRecommendation(
        id=rec_id,
        text=text,
        priority=infer_priority_from_text(text),
        category=category,
        explanation=explanation,
        data_points=tuple(data_points),
        confidence=_score_confidence(confidence_score),
        source="analyzer",
        rule_id="analyzer",
        tags=tuple(tags),
    )


def from_actionable_recommendation(rec: ActionableRecommendation) -> ExplainableRecommendation:
    return ExplainableRecommendation(
        id=rec.id,
        text=rec.headline,
        priority=rec.priority,
        category=rec.category,
        explanation=rec.explanation,
        data_points=rec.data_points,
        confidence=_score_confidence(rec.confidence),
        source="analyzer",
        rule_id=rec.id,
        platform=rec.platform,
        campaign_name=getattr(rec.action, "campaign_name", None),
        tags=rec.tags,
        action=rec.action,
    )


def base_key(rec_id: str) -> str:
    return "_".join(rec_id.split("_")[:2])


def deduplicate(recommendations: Sequence[ExplainableRecommendation]) -> List[ExplainableRecommendation]:
    """One recommendation per base key (first two id tokens); higher confidence wins."""
    seen: Dict[str, ExplainableRecommendation] = {}
    for rec in recommendations:
        key = base_key(rec.id)
        existing = seen.get(key)
        if existing is None or rec.confidence.score > existing.confidence.score:
            seen[key] = rec
    return list(seen.values())


def sort_recommendations(recommendations: Iterable[ExplainableRecommendation]) -> List[ExplainableRecommendation]:
    return sorted(recommendations, key=lambda r: (r.priority, -r.confidence.score))


def summarize(recommendations: Sequence[ExplainableRecommendation]) -> RecommendationSummary:
    summary = RecommendationSummary(total=len(recommendations))
    total_score = 0
    for rec in recommendations:
        summary.by_category[rec.category] = summary.by_category.get(rec.category, 0) + 1
        total_score += rec.confidence.score
        if rec.priority == PRIORITY_URGENT:
            summary.by_priority["urgent"] += 1
        elif rec.priority == PRIORITY_IMPORTANT:
            summary.by_priority["important"] += 1
        elif rec.priority == PRIORITY_INFO:
            summary.by_priority["info"] += 1

    if recommendations:
        summary.avg_confidence = round(total_score / len(recommendations))
    summary.top_recommendations = list(recommendations[:5])
    return summary


def format_for_display(recommendations: Sequence[ExplainableRecommendation], include_explanations: bool = False) -> List[str]:
    lines = []
    for rec in recommendations:
        output = rec.text
        if include_explanations:
            output += f"\n   -> *Why*: {rec.explanation}"
            output += f"\n   -> *Confidence*: {rec.confidence.level} ({rec.confidence.score}%)"
            if rec.data_points:
                output += f"\n   -> *Data*: {' | '.join(rec.data_points)}"
        lines.append(output)
    return lines


class RecommendationEngine:
    """
    Knowledge-base matching plus analyzer fan-out for one account.

    The learning service and tracker are optional: without a learning
    service only static rules match; without a tracker nothing is logged.
    """

    def __init__(
        self,
        learning_service=None,
        data_source: Optional[AccountDataSource] = None,
        analyzers: Optional[List[BaseAnalyzer]] = None,
        tracker=None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.learning_service = learning_service
        self.data_source = data_source
        self.tracker = tracker
        if analyzers is None and data_source is not None:
            analyzers = build_default_analyzers(data_source, self.settings)
        self.analyzers = analyzers or []

    def generate_from_campaigns(
        self,
        campaigns: Iterable[CampaignSnapshot],
        platform: str,
        trends: Optional[Trends] = None,
        account_id: Optional[str] = None,
        campaign_trends: Optional[Dict[str, Trends]] = None,
    ) -> List[ExplainableRecommendation]:
        """Match rules against each campaign; deduplicated and sorted."""
        campaign_trends = campaign_trends or {}
        recommendations = []

        for campaign in campaigns:
            try:
                context = build_context(campaign, platform, campaign_trends.get(campaign.campaign_id, trends))
                if account_id and self.learning_service is not None:
                    matches = find_matches_with_learnings(context, account_id, self.learning_service)
                else:
                    matches = find_matches(context)

                for match in matches:
                    recommendations.append(ExplainableRecommendation(
                        id=f"{match.id}_{campaign.campaign_id}",
                        text=match.text,
                        priority=match.priority,
                        category=match.category,
                        explanation=match.explanation,
                        data_points=match.data_points,
                        confidence=calculate_confidence(match, context),
                        source="rule" if match.id.startswith("learning_") else "knowledge_base",
                        rule_id=match.id,
                        platform=platform,
                        campaign_name=campaign.name,
                        tags=match.tags,
                    ))
            except Exception as e:
                log.warning(f"Failed to analyze campaign {campaign.campaign_id}: {e!r}")

        return sort_recommendations(deduplicate(recommendations))

    async def generate_recommendations(self, account_id: str, platform: Optional[str] = None) -> List[ExplainableRecommendation]:
        if self.data_source is None:
            raise ValueError("generate_recommendations requires a data source")

        platforms = [platform] if platform else list(PLATFORMS)
        multi_period = MultiPeriodAnalyzer(self.data_source, self.settings) if self.settings.enable_multi_period else None

        analyzers = ([multi_period] if multi_period else []) + list(self.analyzers)
        snapshots_by_platform, results = await asyncio.gather(
            self._load_campaigns(account_id, platforms),
            run_analyzers(analyzers, account_id),
        )
        period_result = results[0] if multi_period else AnalysisResult()
        per_campaign = campaign_trends(period_result)

        rule_recs = []
        for name, campaigns in snapshots_by_platform.items():
            rule_recs.extend(self.generate_from_campaigns(
                campaigns,
                name,
                trends=platform_trends(period_result, name),
                account_id=account_id,
                campaign_trends=per_campaign,
            ))

        analyzer_recs: Dict[str, ExplainableRecommendation] = {}
        for result in results:
            converted = [from_analyzer_suggestion(s) for s in result.suggestions]
            converted += [from_actionable_recommendation(a) for a in result.actionable_recommendations]
            for rec in converted:
                if platform and rec.platform not in (None, "both", platform):
                    continue
                existing = analyzer_recs.get(rec.id)
                if existing is None or rec.confidence.score > existing.confidence.score:
                    analyzer_recs[rec.id] = rec

        recommendations = sort_recommendations(rule_recs + list(analyzer_recs.values()))
        log.info(
            f"Generated {len(recommendations)} recommendations for account {account_id} "
            f"({len(rule_recs)} rule, {len(analyzer_recs)} analyzer)"
        )

        if self.tracker is not None:
            try:
                self.tracker.log_recommendations(account_id, recommendations)
            except Exception as e:
                log.error(f"Failed to log recommendations for account {account_id}: {e!r}")

        return recommendations

    async def _load_campaigns(self, account_id: str, platforms: List[str]) -> Dict[str, List[CampaignSnapshot]]:
        start_date = datetime.utcnow() - timedelta(days=self.settings.campaign_lookback_days)
        campaigns = {}
        for platform in platforms:
            try:
                snapshots = await asyncio.wait_for(
                    self.data_source.get_campaign_snapshots(account_id, platform=platform, start_date=start_date),
                    timeout=self.settings.analyzer_timeout_seconds,
                )
            except Exception as e:
                log.error(f"Failed to load {platform} campaigns for account {account_id}: {e!r}")
                continue
            campaigns[platform] = aggregate_snapshots(snapshots)
        return campaigns
