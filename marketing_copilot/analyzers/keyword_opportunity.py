"""
Keyword Opportunity Analyzer

Mines on-site search terms that lead to purchases and that the account is
not bidding on yet. Suggested CPC targets a 4x ROAS:

    cpc = avg_conversion_value x conversion_rate / 4

rounded to $0.05 and clamped to [$0.15, $2.00].
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Set

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.types import (
    ActionableRecommendation,
    AnalysisResult,
    EstimatedImpact,
    KeywordAction,
    PRIORITY_IMPORTANT,
    PRIORITY_URGENT,
    create_keyword_headline,
)
from marketing_copilot.utils.helpers import clamp, normalize_text, round_to_increment, safe_divide

MIN_SEARCHES = 3
MIN_CONVERSIONS = 2
MIN_CONVERSION_RATE = 2.0       # percent
TOP_N = 10
TARGET_ROAS = 4
DEFAULT_CPC = 0.50
MIN_CPC = 0.15
MAX_CPC = 2.00
MAX_ESTIMATED_ROAS = 10


@dataclass
class SearchTermStats:
    term: str
    searches: int
    conversions: int
    conversion_value: float
    conversion_rate: float       # percent


def suggested_cpc(stats: SearchTermStats) -> float:
    if stats.conversions == 0 or stats.searches == 0:
        return DEFAULT_CPC
    avg_value = stats.conversion_value / stats.conversions
    cvr = stats.conversions / stats.searches
    cpc = round_to_increment(avg_value * cvr / TARGET_ROAS, 0.05)
    return clamp(cpc, MIN_CPC, MAX_CPC)


def opportunity_confidence(stats: SearchTermStats) -> int:
    score = 40
    if stats.searches >= 20:
        score += 20
    elif stats.searches >= 10:
        score += 10

    if stats.conversions >= 5:
        score += 25
    elif stats.conversions >= 3:
        score += 15

    if stats.conversion_rate >= 5:
        score += 10
    return min(90, score)


def is_already_bid(term: str, active: Set[str]) -> bool:
    return term in active or any(term in k or k in term for k in active)


class KeywordOpportunityAnalyzer(BaseAnalyzer):
    name = "keyword_opportunity"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details={
            "total_search_terms_analyzed": 0,
            "opportunities_found": 0,
            "estimated_missed_revenue": 0.0,
        })

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        start_date = datetime.utcnow() - timedelta(days=self.settings.opportunity_lookback_days)

        searches = await self.data_source.get_analytics_events(
            account_id, event_types=["search"], start_date=start_date
        )
        if not searches:
            return result

        term_counts: Dict[str, Dict] = {}
        for event in searches:
            term = normalize_text(event.search.term if event.search else "")
            if len(term) < 2:
                continue
            entry = term_counts.setdefault(term, {"count": 0, "sessions": set()})
            entry["count"] += 1
            entry["sessions"].add(event.session.session_id)
        result.details["total_search_terms_analyzed"] = len(term_counts)

        purchases = await self.data_source.get_analytics_events(
            account_id, event_types=["purchase"], start_date=start_date
        )
        purchase_values = {
            p.session.session_id: (p.purchase.value if p.purchase else 0.0) for p in purchases
        }

        stats: List[SearchTermStats] = []
        for term, entry in term_counts.items():
            if entry["count"] < MIN_SEARCHES:
                continue
            converted = [s for s in entry["sessions"] if s in purchase_values]
            stats.append(SearchTermStats(
                term=term,
                searches=entry["count"],
                conversions=len(converted),
                conversion_value=sum(purchase_values[s] for s in converted),
                conversion_rate=safe_divide(len(converted), entry["count"]) * 100,
            ))
        result.has_data = bool(stats)

        active = {
            normalize_text(k.keyword)
            for k in await self.data_source.get_paid_keywords(account_id)
            if k.is_active
        }
        active.discard("")

        opportunities = sorted(
            (
                s for s in stats
                if not is_already_bid(s.term, active)
                and s.conversions >= MIN_CONVERSIONS
                and s.conversion_rate >= MIN_CONVERSION_RATE
            ),
            key=lambda s: s.conversion_value,
            reverse=True,
        )[:TOP_N]

        missed = 0.0
        for opp in opportunities:
            result.actionable_recommendations.append(self._build_recommendation(opp))
            missed += opp.conversion_value * 0.3

        result.details["opportunities_found"] = len(result.actionable_recommendations)
        result.details["estimated_missed_revenue"] = round(missed, 2)
        return result

    def _build_recommendation(self, opp: SearchTermStats) -> ActionableRecommendation:
        cpc = suggested_cpc(opp)
        estimated_roas = opp.conversion_value / (opp.searches * cpc)
        action = KeywordAction(
            keyword=opp.term,
            operation="add_keyword",
            match_type="phrase" if len(opp.term.split(" ")) >= 3 else "exact",
            suggested_cpc=cpc,
            estimated_roas=round(min(MAX_ESTIMATED_ROAS, estimated_roas), 2),
        )
        return ActionableRecommendation(
            id=f"kw_opp_{opp.term.replace(' ', '_')[:20]}",
            headline=f"{create_keyword_headline(action)} - {opp.conversions} organic conversions",
            action=action,
            source=self.name,
            priority=PRIORITY_URGENT if opp.conversions >= 5 else PRIORITY_IMPORTANT,
            category="optimization",
            explanation=(
                f"Users searching for \"{opp.term}\" on your site converted {opp.conversions} times with "
                f"${opp.conversion_value:.0f} in revenue. You're not bidding on this keyword in Google Ads."
            ),
            data_points=(
                f"{opp.searches} site searches in 30 days",
                f"{opp.conversions} conversions ({opp.conversion_rate:.1f}% CVR)",
                f"${opp.conversion_value:.0f} conversion value",
                f"Est. {estimated_roas:.1f}x ROAS at ${cpc:.2f} CPC",
            ),
            confidence=opportunity_confidence(opp),
            estimated_impact=EstimatedImpact(
                metric="revenue",
                value=round(opp.conversion_value * 0.5, 2),
                timeframe="30d",
            ),
            platform="google",
            tags=("keyword", "opportunity", "search"),
        )
