"""
Cannibalization Analyzer

Detects paid/organic overlap where paid clicks are bought for queries the
site already wins organically, and the reverse case where organic is weak
but paid converts well.

Outputs:
  - cannibalized        score >= 50 -> pause or reduce the paid keyword
  - paid opportunities  organic position > 10 and paid ROAS >= 2 -> raise bid
"""
import re
from typing import Dict, List, Optional

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.types import (
    ActionableRecommendation,
    AnalysisResult,
    EstimatedImpact,
    KeywordAction,
    PRIORITY_IMPORTANT,
    PRIORITY_INFO,
    PRIORITY_URGENT,
    create_keyword_headline,
)
from marketing_copilot.models.records import OrganicQuery, PaidKeyword
from marketing_copilot.utils.helpers import normalize_text

CANNIBALIZED_SCORE = 50
WEAK_ORGANIC_POSITION = 10
PAID_OPPORTUNITY_ROAS = 2
BID_INCREASE = 1.3
MAX_SUGGESTED_CPC = 5.0
MAX_OVERLAP_ROWS = 50


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------

def find_paid_match(query: str, paid_by_key: Dict[str, PaidKeyword]) -> Optional[str]:
    """Exact match first, then whole-word containment either way."""
    if query in paid_by_key:
        return query

    for key in paid_by_key:
        # Short pairs only match exactly ("ring" vs "earring")
        if len(key) < 4 and len(query) < 4:
            continue
        if len(query) > len(key) and re.search(rf"\b{re.escape(key)}\b", query):
            return key
        if len(key) > len(query) and re.search(rf"\b{re.escape(query)}\b", key):
            return key
    return None


def estimate_wasted_spend(organic: OrganicQuery, paid: PaidKeyword) -> float:
    """paid clicks x CPC x organic share of CTR."""
    if organic.ctr <= 0 or paid.clicks <= 0:
        return 0.0
    organic_share = organic.ctr / (organic.ctr + paid.ctr)
    return round(paid.clicks * paid.cpc * organic_share, 2)


def score_cannibalization(organic: OrganicQuery, paid: PaidKeyword) -> int:
    score = 0

    if organic.position <= 3:
        score += 35
    elif organic.position <= 5:
        score += 25
    elif organic.position <= 10:
        score += 10

    if organic.ctr >= 8:
        score += 25
    elif organic.ctr >= 5:
        score += 15
    elif organic.ctr >= 2:
        score += 5

    if paid.cpc >= 2:
        score += 20
    elif paid.cpc >= 1:
        score += 10
    elif paid.cpc >= 0.5:
        score += 5

    if paid.roas < 1 and paid.spend > 10:
        score += 15
    elif paid.roas < 2 and paid.spend > 10:
        score += 5

    return min(100, score)


def correlate(organic: List[OrganicQuery], paid: List[PaidKeyword]) -> List[Dict]:
    """Overlapping queries sorted by estimated waste, highest first."""
    paid_by_key: Dict[str, PaidKeyword] = {}
    for keyword in paid:
        key = normalize_text(keyword.keyword)
        if not key:
            continue
        existing = paid_by_key.get(key)
        if existing is None or keyword.spend > existing.spend:
            paid_by_key[key] = keyword

    overlap = []
    for query in organic:
        normalized = normalize_text(query.query)
        if len(normalized) < 3:
            continue
        key = find_paid_match(normalized, paid_by_key)
        if key is None:
            continue
        keyword = paid_by_key[key]
        overlap.append({
            "query": query.query,
            "organic": query,
            "paid": keyword,
            "estimated_wasted_spend": estimate_wasted_spend(query, keyword),
            "cannibalization_score": score_cannibalization(query, keyword),
        })

    overlap.sort(key=lambda o: o["estimated_wasted_spend"], reverse=True)
    return overlap[:MAX_OVERLAP_ROWS]


def _slug(query: str) -> str:
    return re.sub(r"\s+", "_", query)[:20]


class CannibalizationAnalyzer(BaseAnalyzer):
    name = "cannibalization"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details={
            "total_overlap_queries": 0,
            "cannibalization_count": 0,
            "paid_opportunity_count": 0,
            "estimated_monthly_waste": 0.0,
        })

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        organic = await self.data_source.get_organic_queries(account_id)
        paid = await self.data_source.get_paid_keywords(account_id)

        overlap = correlate(organic, paid)
        if not overlap:
            return result

        result.has_data = True
        details = result.details
        details["total_overlap_queries"] = len(overlap)

        waste = 0.0
        for row in overlap:
            if row["cannibalization_score"] >= CANNIBALIZED_SCORE:
                result.actionable_recommendations.append(self._cannibalized(row))
                details["cannibalization_count"] += 1
                waste += row["estimated_wasted_spend"]
            elif (row["organic"].position > WEAK_ORGANIC_POSITION
                  and row["paid"].roas >= PAID_OPPORTUNITY_ROAS):
                result.actionable_recommendations.append(self._paid_opportunity(row))
                details["paid_opportunity_count"] += 1

        details["estimated_monthly_waste"] = round(waste, 2)
        return result

    def _cannibalized(self, row: Dict) -> ActionableRecommendation:
        organic: OrganicQuery = row["organic"]
        paid: PaidKeyword = row["paid"]
        wasted = row["estimated_wasted_spend"]
        score = row["cannibalization_score"]

        if wasted >= 50:
            priority = PRIORITY_URGENT
        elif wasted >= 20:
            priority = PRIORITY_IMPORTANT
        else:
            priority = PRIORITY_INFO

        action = KeywordAction(
            keyword=row["query"],
            operation="pause_keyword",
            current_cpc=round(paid.cpc, 2),
            suggested_cpc=0.0,
            campaign_name=paid.campaign_name,
        )
        return ActionableRecommendation(
            id=f"cannibal_{_slug(row['query'])}",
            headline=f"Cannibalized: \"{row['query']}\" - save ~${wasted:.0f}/mo",
            action=action,
            source=self.name,
            priority=priority,
            category="optimization",
            explanation=(
                f"You rank #{organic.position:.0f} organically for \"{row['query']}\" with {organic.ctr:.1f}% CTR, "
                f"but you're also paying ${paid.cpc:.2f}/click for this term. Approx. ${wasted:.2f} of your monthly "
                f"paid spend on this keyword would come through organic clicks for free."
            ),
            data_points=(
                f"Organic: Position #{organic.position:.1f}, {organic.ctr:.1f}% CTR, {organic.clicks} clicks",
                f"Paid: ${paid.spend:.2f} spend, {paid.clicks} clicks, ${paid.cpc:.2f} CPC",
                f"Paid ROAS: {paid.roas:.2f}x",
                f"Cannibalization score: {score}/100",
                f"Est. monthly savings: ${wasted:.2f}",
            ),
            confidence=min(90, score),
            estimated_impact=EstimatedImpact(
                metric="spend", value=wasted, direction="decrease", timeframe="30d",
            ),
            platform="google",
            tags=("cannibalization", "waste-reduction", "organic-overlap"),
        )

    def _paid_opportunity(self, row: Dict) -> ActionableRecommendation:
        organic: OrganicQuery = row["organic"]
        paid: PaidKeyword = row["paid"]
        cpc = min(paid.cpc * BID_INCREASE, MAX_SUGGESTED_CPC)

        action = KeywordAction(
            keyword=row["query"],
            operation="adjust_bid",
            current_cpc=round(paid.cpc, 2),
            suggested_cpc=round(cpc, 2),
            estimated_roas=round(paid.roas, 2),
            campaign_name=paid.campaign_name,
        )
        return ActionableRecommendation(
            id=f"paid_opp_{_slug(row['query'])}",
            headline=f"{create_keyword_headline(action)} - {paid.roas:.1f}x ROAS, weak organic",
            action=action,
            source=self.name,
            priority=PRIORITY_URGENT if paid.roas >= 4 else PRIORITY_IMPORTANT,
            category="optimization",
            explanation=(
                f"\"{row['query']}\" converts at {paid.roas:.1f}x ROAS through paid search, but your organic "
                f"position is #{organic.position:.0f}, too low to rely on. Consider increasing the bid to capture "
                f"more of this high-converting traffic."
            ),
            data_points=(
                f"Organic position: #{organic.position:.1f} (weak)",
                f"Paid ROAS: {paid.roas:.2f}x",
                f"Current CPC: ${paid.cpc:.2f} -> suggested: ${cpc:.2f}",
                f"{paid.conversions:g} paid conversions this period",
            ),
            confidence=60,
            estimated_impact=EstimatedImpact(
                metric="revenue",
                value=round(paid.conversions * paid.roas * paid.cpc * 0.3, 2),
                timeframe="30d",
            ),
            platform="google",
            tags=("bid-optimization", "paid-opportunity", "organic-weak"),
        )
