"""
Negative Keyword Analyzer

Flags paid keywords that spend without converting and share little
vocabulary with the product catalog:

  1. spend >= $5 over the window
  2. at least 3 clicks and zero conversions
  3. catalog relevance < 30%
"""
import re
from typing import Iterable, Set

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
from marketing_copilot.models.records import PaidKeyword, Product

MIN_SPEND = 5
MIN_CLICKS = 3
MAX_RELEVANCE = 30
TOP_N = 15


def catalog_terms(products: Iterable[Product]) -> Set[str]:
    """Words longer than two characters from product titles and SKUs."""
    terms: Set[str] = set()
    for product in products:
        text = re.sub(r"[^\w\s]", " ", f"{product.title} {product.sku or ''}".lower())
        terms.update(w for w in text.split() if len(w) > 2)
    return terms


def score_relevance(keyword: str, terms: Set[str]) -> int:
    """Share of keyword words found in the catalog, 0-100."""
    words = [w for w in re.sub(r"[^\w\s]", "", keyword.lower()).split() if len(w) > 2]
    if not words:
        return 0
    matched = sum(1 for w in words if w in terms)
    return round(matched / len(words) * 100)


def negative_confidence(keyword: PaidKeyword, relevance: int) -> int:
    score = 30
    if keyword.spend >= 30:
        score += 25
    elif keyword.spend >= 15:
        score += 15
    elif keyword.spend >= 5:
        score += 5

    if keyword.clicks >= 20:
        score += 20
    elif keyword.clicks >= 10:
        score += 10

    if relevance == 0:
        score += 20
    elif relevance < 20:
        score += 10
    return min(95, score)


def _slug(keyword: str) -> str:
    return re.sub(r"\s+", "_", keyword)[:20]


class NegativeKeywordAnalyzer(BaseAnalyzer):
    name = "negative_keyword"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details={
            "total_keywords_analyzed": 0,
            "negative_candidates": 0,
            "estimated_monthly_savings": 0.0,
        })

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        keywords = await self.data_source.get_paid_keywords(account_id)
        if not keywords:
            return result

        terms = catalog_terms(await self.data_source.get_products(account_id))
        result.has_data = True
        result.details["total_keywords_analyzed"] = len(keywords)

        wasted = [
            k for k in keywords
            if k.spend >= MIN_SPEND and k.conversions == 0 and k.clicks >= MIN_CLICKS
        ]
        candidates = sorted(
            (
                (k, relevance) for k in wasted
                for relevance in [score_relevance(k.keyword, terms)]
                if relevance < MAX_RELEVANCE
            ),
            key=lambda c: c[0].spend,
            reverse=True,
        )[:TOP_N]

        savings = 0.0
        for keyword, relevance in candidates:
            result.actionable_recommendations.append(self._build_recommendation(keyword, relevance))
            savings += keyword.spend

        result.details["negative_candidates"] = len(candidates)
        result.details["estimated_monthly_savings"] = round(savings, 2)
        return result

    def _build_recommendation(self, keyword: PaidKeyword, relevance: int) -> ActionableRecommendation:
        if keyword.spend >= 20:
            priority = PRIORITY_URGENT
        elif keyword.spend >= 10:
            priority = PRIORITY_IMPORTANT
        else:
            priority = PRIORITY_INFO

        action = KeywordAction(
            keyword=keyword.keyword,
            operation="add_negative",
            current_cpc=round(keyword.cpc, 2),
            suggested_cpc=0.0,
            estimated_roas=0.0,
            campaign_name=keyword.campaign_name,
        )
        return ActionableRecommendation(
            id=f"neg_kw_{_slug(keyword.keyword)}",
            headline=create_keyword_headline(action),
            action=action,
            source=self.name,
            priority=priority,
            category="optimization",
            explanation=(
                f"\"{keyword.keyword}\" spent ${keyword.spend:.2f} with {keyword.clicks} clicks but zero conversions. "
                f"This keyword has low relevance to your product catalog ({relevance}% match)."
            ),
            data_points=(
                f"${keyword.spend:.2f} spent over {self.settings.search_lookback_days} days",
                f"{keyword.clicks} clicks, 0 conversions",
                f"{keyword.ctr:.1f}% CTR at ${keyword.cpc:.2f} CPC",
                f"Campaign: {keyword.campaign_name or 'unknown'}",
                f"Catalog relevance: {relevance}%",
            ),
            confidence=negative_confidence(keyword, relevance),
            estimated_impact=EstimatedImpact(
                metric="spend", value=round(keyword.spend, 2), direction="decrease", timeframe="30d",
            ),
            platform="google",
            tags=("negative-keyword", "waste-reduction", "optimization"),
        )
