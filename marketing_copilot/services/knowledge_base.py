"""
Marketing Knowledge Base

Curated platform best practices as a static table of rule descriptors. Each
rule holds a pure predicate over AnalysisContext; matching never mutates the
table. Account-specific learnings from the learning store are layered on top
by find_matches_with_learnings().
"""
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from marketing_copilot.config import get_settings
from marketing_copilot.services.context_builder import AnalysisContext
from marketing_copilot.utils.logger import log


@dataclass(frozen=True)
class KnowledgeEntry:
    id: str
    platform: str                                   # google, meta, both
    category: str
    condition: Callable[[AnalysisContext], bool]
    recommendation: str
    explanation: str
    confidence: str                                 # high, medium
    priority: int
    tags: Tuple[str, ...] = ()
    source: Optional[str] = None


@dataclass(frozen=True)
class MatchedRecommendation:
    id: str
    text: str
    explanation: str
    confidence: str                                 # high, medium, low
    priority: int
    category: str
    platform: str
    data_points: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()


KNOWLEDGE_BASE: Tuple[KnowledgeEntry, ...] = (
    # ---------------------------------------------------------------------
    # Google Ads
    # ---------------------------------------------------------------------
    KnowledgeEntry(
        id="google_pmax_learning",
        platform="google",
        category="structure",
        condition=lambda ctx: (
            ctx.campaign_type == "shopping"
            and ctx.conversions < 30
            and (ctx.days_since_launch or 0) < 14
        ),
        recommendation="**Learning Phase**: Performance Max needs 30+ conversions before optimization. "
                       "Avoid major changes.",
        explanation="Google's machine learning requires sufficient conversion data to optimize effectively. "
                    "Making changes during the learning phase resets the algorithm.",
        confidence="high",
        priority=2,
        source="Google Ads Best Practices",
        tags=("pmax", "learning", "patience"),
    ),
    KnowledgeEntry(
        id="google_pmax_low_conversions",
        platform="google",
        category="optimization",
        condition=lambda ctx: (
            ctx.campaign_type == "shopping"
            and ctx.conversions < 15
            and ctx.spend > 500
            and (ctx.days_since_launch or 30) > 14
        ),
        recommendation="**Low Conversion Volume**: PMax campaign has limited conversions. "
                       "Consider switching to Maximize Clicks to build data.",
        explanation="Performance Max struggles with low conversion volume. "
                    "Building click data first can help the algorithm learn your audience.",
        confidence="medium",
        priority=2,
        tags=("pmax", "bid_strategy", "conversions"),
    ),
    KnowledgeEntry(
        id="google_search_low_quality_score",
        platform="google",
        category="optimization",
        condition=lambda ctx: ctx.campaign_type == "search" and ctx.cpc > 3 and ctx.ctr < 2,
        recommendation="**Quality Score Issue**: High CPC with low CTR suggests Quality Score problems. "
                       "Review ad relevance and landing pages.",
        explanation="Google rewards relevant ads with lower CPCs. Improving ad copy relevance and landing page "
                    "experience can significantly reduce costs.",
        confidence="high",
        priority=2,
        tags=("search", "quality_score", "cpc"),
    ),
    KnowledgeEntry(
        id="google_broad_match_tip",
        platform="google",
        category="audience",
        condition=lambda ctx: ctx.campaign_type == "search" and ctx.conversions > 30 and ctx.roas > 2,
        recommendation="**Expand with Broad Match**: Strong conversion data - consider testing broad match "
                       "keywords with smart bidding.",
        explanation="With sufficient conversion history, Google's smart bidding can effectively optimize broad "
                    "match keywords, potentially expanding reach.",
        confidence="medium",
        priority=3,
        tags=("search", "keywords", "expansion"),
    ),

    # ---------------------------------------------------------------------
    # Meta Ads
    # ---------------------------------------------------------------------
    KnowledgeEntry(
        id="meta_creative_fatigue",
        platform="meta",
        category="creative",
        condition=lambda ctx: (ctx.frequency_score or 0) > 4 and ctx.ctr_trend == "declining",
        recommendation="**Creative Fatigue**: High frequency with declining CTR. Refresh creatives or expand audience.",
        explanation="When users see the same ad repeatedly, engagement drops. "
                    "Fresh creative or broader targeting can restore performance.",
        confidence="high",
        priority=1,
        tags=("creative", "fatigue", "frequency"),
    ),
    KnowledgeEntry(
        id="meta_asc_recommendation",
        platform="meta",
        category="structure",
        condition=lambda ctx: (
            ctx.conversions > 50
            and ctx.campaign_type != "remarketing"
            and ctx.funnel_stage == "conversion"
        ),
        recommendation="**Try Advantage+**: With 50+ conversions, test Advantage+ Shopping Campaigns "
                       "for automated optimization.",
        explanation="Advantage+ uses Meta's AI to automatically find converting audiences. "
                    "Works best with strong conversion data.",
        confidence="medium",
        priority=3,
        tags=("advantage_plus", "automation", "scaling"),
    ),
    KnowledgeEntry(
        id="meta_lookalike_tip",
        platform="meta",
        category="audience",
        condition=lambda ctx: ctx.funnel_stage == "consideration" and ctx.cpa > 50 and ctx.conversions > 10,
        recommendation="**Lookalike Optimization**: High CPA on prospecting. Test 1% lookalikes from purchasers "
                       "instead of broader audiences.",
        explanation="Narrower lookalike audiences often convert better. "
                    "Start with 1% and expand only if hitting scale limitations.",
        confidence="medium",
        priority=2,
        tags=("lookalike", "audience", "cpa"),
    ),
    KnowledgeEntry(
        id="meta_cbo_learning",
        platform="meta",
        category="budget",
        condition=lambda ctx: ctx.is_learning is True and ctx.spend < 200,
        recommendation="**CBO Learning**: Campaign is still learning. Avoid edits that reset the learning phase.",
        explanation="Meta campaigns need ~50 optimization events to exit learning. "
                    "Significant edits restart this process.",
        confidence="high",
        priority=2,
        tags=("cbo", "learning", "patience"),
    ),

    # ---------------------------------------------------------------------
    # Cross-platform
    # ---------------------------------------------------------------------
    KnowledgeEntry(
        id="low_ctr_general",
        platform="both",
        category="creative",
        condition=lambda ctx: ctx.ctr < 0.5 and ctx.impressions > 10000 and ctx.funnel_stage != "awareness",
        recommendation="**Low CTR**: Click-through rate is below 0.5%. Test new ad copy, images, or offers.",
        explanation="Low CTR indicates your ads aren't resonating with the audience. "
                    "A/B test creative elements to improve engagement.",
        confidence="high",
        priority=2,
        tags=("ctr", "creative", "testing"),
    ),
    KnowledgeEntry(
        id="high_cpa_warning",
        platform="both",
        category="optimization",
        condition=lambda ctx: ctx.cpa > 100 and ctx.conversions > 5 and ctx.funnel_stage == "conversion",
        recommendation="**High CPA Alert**: Cost per acquisition exceeds $100. Review targeting, bids, "
                       "and landing page conversion rate.",
        explanation="High CPA erodes profitability. Check if you're targeting too broadly or if your landing "
                    "page has friction points.",
        confidence="high",
        priority=1,
        tags=("cpa", "efficiency", "optimization"),
    ),
    KnowledgeEntry(
        id="roas_declining_trend",
        platform="both",
        category="optimization",
        condition=lambda ctx: ctx.roas_trend == "declining" and ctx.roas < 2 and ctx.spend > 500,
        recommendation="**ROAS Declining**: Performance trending down. Audit recent changes, "
                       "competitive landscape, and seasonal factors.",
        explanation="Declining ROAS can be caused by audience saturation, increased competition, "
                    "seasonal changes, or landing page issues.",
        confidence="medium",
        priority=1,
        tags=("roas", "trend", "declining"),
    ),
    KnowledgeEntry(
        id="awareness_roas_context",
        platform="both",
        category="structure",
        condition=lambda ctx: ctx.funnel_stage == "awareness" and ctx.roas < 1 and ctx.cpm < 20,
        recommendation="**Awareness Context**: Low ROAS is expected for awareness campaigns. "
                       "CPM is the key metric here.",
        explanation="Awareness campaigns build brand familiarity, not immediate conversions. "
                    "Judge them on reach and CPM, not ROAS.",
        confidence="high",
        priority=3,
        tags=("awareness", "funnel", "context"),
    ),
    KnowledgeEntry(
        id="remarketing_high_roas",
        platform="both",
        category="budget",
        condition=lambda ctx: ctx.funnel_stage == "retention" and ctx.roas > 5,
        recommendation="**Scale Remarketing**: Remarketing ROAS is excellent. "
                       "Ensure budget isn't limiting impression share.",
        explanation="High-performing remarketing should be given sufficient budget to capture all available demand.",
        confidence="high",
        priority=2,
        tags=("remarketing", "scaling", "budget"),
    ),
    KnowledgeEntry(
        id="no_conversions_check",
        platform="both",
        category="optimization",
        condition=lambda ctx: ctx.conversions == 0 and ctx.clicks > 100,
        recommendation="**Conversion Tracking Issue?**: 100+ clicks but no conversions. "
                       "Verify tracking is configured correctly.",
        explanation="Zero conversions with significant traffic often indicates a tracking problem "
                    "rather than a performance issue.",
        confidence="high",
        priority=1,
        tags=("tracking", "conversions", "debug"),
    ),
    KnowledgeEntry(
        id="scale_winner",
        platform="both",
        category="budget",
        condition=lambda ctx: ctx.roas > 3 and ctx.conversions > 20 and ctx.spend < 1000,
        recommendation="**Scale Opportunity**: Strong ROAS with room to grow. Consider 20-30% budget increase.",
        explanation="Profitable campaigns with stable performance can often handle gradual budget increases "
                    "without efficiency loss.",
        confidence="medium",
        priority=2,
        tags=("scaling", "budget", "growth"),
    ),
)


def _applies_to(entry_platform: str, platform: str) -> bool:
    return entry_platform == "both" or entry_platform == platform


def extract_data_points(context: AnalysisContext, entry: KnowledgeEntry) -> Tuple[str, ...]:
    """Metric strings relevant to the rule's category."""
    points: List[str] = []
    if entry.category == "creative":
        points.append(f"CTR: {context.ctr:.2f}%")
        if context.frequency_score:
            points.append(f"Frequency: {context.frequency_score:.1f}")
    elif entry.category == "budget":
        points.append(f"Spend: ${context.spend:.0f}")
        points.append(f"ROAS: {context.roas:.2f}x")
    elif entry.category == "optimization":
        points.append(f"ROAS: {context.roas:.2f}x")
        points.append(f"CPA: ${context.cpa:.2f}")
        points.append(f"Conversions: {context.conversions:g}")
    elif entry.category == "audience":
        points.append(f"CPA: ${context.cpa:.2f}")
        points.append(f"Conversions: {context.conversions:g}")
    elif entry.category == "structure":
        points.append(f"Campaign Type: {context.campaign_type}")
        points.append(f"Funnel Stage: {context.funnel_stage}")
        if context.days_since_launch:
            points.append(f"Days Active: {context.days_since_launch}")
    elif entry.category == "bid_strategy":
        points.append(f"CPC: ${context.cpc:.2f}")
        points.append(f"Conversions: {context.conversions:g}")
    return tuple(points)


def find_matches(context: AnalysisContext) -> List[MatchedRecommendation]:
    """All static rules whose platform and predicate match, urgent first."""
    matches = []
    for entry in KNOWLEDGE_BASE:
        if not _applies_to(entry.platform, context.platform):
            continue
        try:
            matched = entry.condition(context)
        except Exception as e:
            log.debug(f"Rule {entry.id} skipped for {context.campaign_name}: {e!r}")
            continue
        if not matched:
            continue
        matches.append(MatchedRecommendation(
            id=entry.id,
            text=entry.recommendation,
            explanation=entry.explanation,
            confidence=entry.confidence,
            priority=entry.priority,
            category=entry.category,
            platform=entry.platform,
            data_points=extract_data_points(context, entry),
            tags=entry.tags,
        ))

    matches.sort(key=lambda m: m.priority)
    return matches


def evaluate_learning_condition(condition: str, context: AnalysisContext) -> float:
    """
    Keyword-overlap score (0-1) between a learning's free-text condition and
    the context. Each mentioned topic is one check; the score is the share of
    checks the context satisfies.

    A structured condition format would replace this heuristic.
    """
    condition = (condition or "").lower()
    score = 0
    checks = 0

    if "roas" in condition:
        checks += 1
        if "low" in condition and context.roas < 2:
            score += 1
        elif "high" in condition and context.roas > 3:
            score += 1
        elif "declining" in condition and context.roas_trend == "declining":
            score += 1

    if "ctr" in condition:
        checks += 1
        if "low" in condition and context.ctr < 1:
            score += 1
        elif "declining" in condition and context.ctr_trend == "declining":
            score += 1

    if "cpa" in condition:
        checks += 1
        if "high" in condition and context.cpa > 50:
            score += 1

    if "conversion" in condition:
        checks += 1
        if "low" in condition and context.conversions < 20:
            score += 1
        elif "high" in condition and context.conversions > 50:
            score += 1

    if context.funnel_stage in condition:
        checks += 1
        score += 1

    if context.campaign_type in condition:
        checks += 1
        score += 1

    return score / checks if checks > 0 else 0.0


def learning_confidence_tier(success_rate: float) -> str:
    if success_rate > 60:
        return "high"
    if success_rate > 30:
        return "medium"
    return "low"


def find_matches_with_learnings(context: AnalysisContext, account_id: str, learning_service) -> List[MatchedRecommendation]:
    """
    Static matches plus the account's active learnings whose condition text
    scores above the match threshold. Each matched learning has its applied
    count incremented. If the learning store fails, static matches are
    returned alone.
    """
    static_matches = find_matches(context)
    if learning_service is None:
        return static_matches

    threshold = get_settings().learning_match_threshold
    try:
        learnings = learning_service.list(
            account_id,
            platform=context.platform,
            include_inactive=False,
            include_pending=False,
        )

        dynamic_matches = []
        for learning in learnings:
            if evaluate_learning_condition(learning.condition, context) <= threshold:
                continue
            dynamic_matches.append(MatchedRecommendation(
                id=f"learning_{learning.id}",
                text=learning.recommendation,
                explanation=learning.explanation or f"Custom rule: {learning.condition}",
                confidence=learning_confidence_tier(learning.success_rate),
                priority=2,
                category=learning.category,
                platform=learning.platform,
                data_points=(
                    f"Applied: {learning.applied_count} times",
                    f"Success Rate: {learning.success_rate}%",
                ),
                tags=("custom", learning.source),
            ))
            learning_service.record_application(learning.id)
    except Exception as e:
        log.warning(f"Error loading learnings for account {account_id}, using static rules only: {e!r}")
        return static_matches

    merged = static_matches + dynamic_matches
    merged.sort(key=lambda m: m.priority)
    return merged


def get_entries_by_platform(platform: str) -> List[KnowledgeEntry]:
    return [e for e in KNOWLEDGE_BASE if e.platform == platform or e.platform == "both"]


def get_entries_by_category(category: str) -> List[KnowledgeEntry]:
    return [e for e in KNOWLEDGE_BASE if e.category == category]


def get_entry(rule_id: str) -> Optional[KnowledgeEntry]:
    return next((e for e in KNOWLEDGE_BASE if e.id == rule_id), None)


def entry_count() -> int:
    return len(KNOWLEDGE_BASE)
