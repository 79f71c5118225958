"""
Cross-Channel Analyzer

Correlates Google and Meta performance through order attribution:
last-touch revenue per channel, assisted conversions across platforms,
multi-channel journeys and a paid budget split recommendation.
"""
from datetime import timedelta, datetime
from typing import Dict, List, Optional

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.channels import normalize_channel
from marketing_copilot.analyzers.types import AnalysisResult, PRIORITY_IMPORTANT, PRIORITY_INFO
from marketing_copilot.utils.helpers import safe_divide

COUNTED_ORDER_STATUSES = ("completed", "processing")

AOV_ADVANTAGE = 1.3         # one paid channel's AOV must beat the other by 30%
BUDGET_SHIFT_POINTS = 10
BUDGET_SHARE_MIN = 30
BUDGET_SHARE_MAX = 70

MULTI_CHANNEL_PCT = 20
MIN_ASSISTS = 5
CONCENTRATION_PCT = 70


def empty_details() -> Dict:
    return {
        "channel_performance": [],
        "assisted_conversions": {"google_assisted_meta": 0, "meta_assisted_google": 0, "organic_assisted": 0},
        "channel_overlap": {
            "multi_channel": 0,
            "single_channel": 0,
            "multi_channel_revenue": 0.0,
            "avg_touchpoints_before_purchase": 1.0,
        },
        "budget_recommendation": None,
    }


def budget_recommendation(channel_performance: List[Dict], total_revenue: float) -> Optional[Dict]:
    """Recommend a Google/Meta split from the two channels' AOV."""
    google = next((c for c in channel_performance if c["channel"] == "google"), None)
    meta = next((c for c in channel_performance if c["channel"] == "meta"), None)
    if not google and not meta:
        return None

    google_revenue = google["revenue"] if google else 0
    meta_revenue = meta["revenue"] if meta else 0
    other_revenue = sum(c["revenue"] for c in channel_performance if c["channel"] not in ("google", "meta"))

    paid_total = google_revenue + meta_revenue
    if paid_total == 0:
        return None

    current_split = {
        "google": round(safe_divide(google_revenue, total_revenue) * 100),
        "meta": round(safe_divide(meta_revenue, total_revenue) * 100),
        "organic": round(safe_divide(other_revenue, total_revenue) * 100),
    }

    google_aov = google["aov"] if google else 0
    meta_aov = meta["aov"] if meta else 0

    if google_aov > meta_aov * AOV_ADVANTAGE and google_revenue > 0:
        split = {
            "google": min(BUDGET_SHARE_MAX, current_split["google"] + BUDGET_SHIFT_POINTS),
            "meta": max(BUDGET_SHARE_MIN, current_split["meta"] - BUDGET_SHIFT_POINTS),
        }
        lead = f"{round((safe_divide(google_aov, meta_aov, 1.0) - 1) * 100)}%" if meta_aov else "much"
        rationale = (
            f"Google has {lead} higher AOV (${google_aov} vs ${meta_aov}). "
            f"Consider shifting budget toward Google."
        )
    elif meta_aov > google_aov * AOV_ADVANTAGE and meta_revenue > 0:
        split = {
            "google": max(BUDGET_SHARE_MIN, current_split["google"] - BUDGET_SHIFT_POINTS),
            "meta": min(BUDGET_SHARE_MAX, current_split["meta"] + BUDGET_SHIFT_POINTS),
        }
        lead = f"{round((safe_divide(meta_aov, google_aov, 1.0) - 1) * 100)}%" if google_aov else "much"
        rationale = (
            f"Meta has {lead} higher AOV (${meta_aov} vs ${google_aov}). "
            f"Consider shifting budget toward Meta."
        )
    else:
        split = {"google": 50, "meta": 50}
        rationale = (
            f"Both channels perform similarly (Google AOV: ${google_aov}, Meta AOV: ${meta_aov}). "
            f"Maintain balanced allocation."
        )

    # Normalise to 100
    total = split["google"] + split["meta"]
    split["google"] = round(split["google"] / total * 100)
    split["meta"] = 100 - split["google"]

    if paid_total > 5000:
        confidence = "high"
    elif paid_total > 1000:
        confidence = "medium"
    else:
        confidence = "low"

    return {
        "current_split": current_split,
        "recommended_split": split,
        "rationale": rationale,
        "confidence": confidence,
    }


class CrossChannelAnalyzer(BaseAnalyzer):
    name = "cross_channel"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details=empty_details())

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        details = result.details

        start_date = datetime.utcnow() - timedelta(days=self.settings.cross_channel_lookback_days)
        orders = [
            o for o in await self.data_source.get_orders(account_id, start_date=start_date)
            if o.status in COUNTED_ORDER_STATUSES
        ]
        if not orders:
            return result

        purchases = await self.data_source.get_analytics_events(
            account_id, event_types=["purchase"], start_date=start_date
        )
        attribution = {}
        for event in purchases:
            if event.purchase and event.purchase.order_id:
                attribution[event.purchase.order_id] = (
                    normalize_channel(event.session.first_touch_source),
                    normalize_channel(event.session.last_touch_source),
                )

        channel_revenue: Dict[str, Dict[str, float]] = {}
        total_revenue = 0.0
        assists = details["assisted_conversions"]
        overlap = details["channel_overlap"]

        for order in orders:
            total_revenue += order.total
            touch = attribution.get(order.id)
            channel = touch[1] if touch else "direct"

            bucket = channel_revenue.setdefault(channel, {"revenue": 0.0, "orders": 0})
            bucket["revenue"] += order.total
            bucket["orders"] += 1

            if not touch:
                continue
            first, last = touch
            if first == last:
                overlap["single_channel"] += 1
                continue

            overlap["multi_channel"] += 1
            overlap["multi_channel_revenue"] += order.total
            if first == "google" and last == "meta":
                assists["google_assisted_meta"] += 1
            elif first == "meta" and last == "google":
                assists["meta_assisted_google"] += 1
            elif first in ("organic_search", "direct") and last in ("google", "meta"):
                assists["organic_assisted"] += 1

        details["channel_performance"] = sorted(
            (
                {
                    "channel": channel,
                    "revenue": round(data["revenue"], 2),
                    "orders": data["orders"],
                    "aov": round(safe_divide(data["revenue"], data["orders"]), 2),
                    "revenue_share": round(safe_divide(data["revenue"], total_revenue) * 100, 1),
                }
                for channel, data in channel_revenue.items()
            ),
            key=lambda c: c["revenue"],
            reverse=True,
        )
        result.has_data = True

        customers = overlap["multi_channel"] + overlap["single_channel"]
        if customers:
            # Multi-channel journeys count as two touchpoints
            overlap["avg_touchpoints_before_purchase"] = round(
                (overlap["multi_channel"] * 2 + overlap["single_channel"]) / customers, 1
            )

        details["budget_recommendation"] = budget_recommendation(details["channel_performance"], total_revenue)
        result.suggestions = self._build_suggestions(details)
        return result

    def _build_suggestions(self, details: Dict) -> list:
        suggestions = []
        assists = details["assisted_conversions"]
        overlap = details["channel_overlap"]
        budget = details["budget_recommendation"]
        performance = details["channel_performance"]

        journeys = overlap["multi_channel"] + overlap["single_channel"]
        multi_pct = round(overlap["multi_channel"] / journeys * 100) if journeys else 0
        if multi_pct > MULTI_CHANNEL_PCT:
            suggestions.append(self._suggestion(
                "multi_channel",
                f"{multi_pct}% of customers interact with multiple channels before purchase. "
                f"Don't evaluate channels in isolation; they work together.",
                category="audience",
                platform="both",
                confidence=60,
                data_points=[f"Multi-channel orders: {overlap['multi_channel']}",
                             f"Single-channel orders: {overlap['single_channel']}"],
                tags=["attribution", "journey"],
            ))

        google_meta = assists["google_assisted_meta"]
        meta_google = assists["meta_assisted_google"]
        if google_meta + meta_google > MIN_ASSISTS:
            if google_meta > meta_google * 2:
                suggestions.append(self._suggestion(
                    "google_assists_meta",
                    f"{google_meta} customers discovered you via Google but converted through Meta. "
                    f"Google may be undervalued in last-click attribution.",
                    priority=PRIORITY_IMPORTANT,
                    category="budget",
                    platform="google",
                    confidence=65,
                    tags=["attribution", "assists"],
                ))
            elif meta_google > google_meta * 2:
                suggestions.append(self._suggestion(
                    "meta_assists_google",
                    f"{meta_google} customers discovered you via Meta but converted through Google. "
                    f"Meta may be undervalued in last-click attribution.",
                    priority=PRIORITY_IMPORTANT,
                    category="budget",
                    platform="meta",
                    confidence=65,
                    tags=["attribution", "assists"],
                ))

        if budget and budget["confidence"] != "low":
            split = budget["recommended_split"]
            suggestions.append(self._suggestion(
                "budget_split",
                f"{budget['rationale']} (Confidence: {budget['confidence']})",
                priority=PRIORITY_IMPORTANT,
                category="budget",
                platform="both",
                confidence=75 if budget["confidence"] == "high" else 60,
                data_points=[f"Recommended split: Google {split['google']}% / Meta {split['meta']}%"],
                tags=["budget", "allocation"],
            ))

        top = performance[0] if performance else None
        if top and top["revenue_share"] > CONCENTRATION_PCT:
            suggestions.append(self._suggestion(
                "channel_concentration",
                f"{top['revenue_share']}% of revenue comes from {top['channel']}. "
                f"Consider diversifying to reduce platform dependency risk.",
                priority=PRIORITY_INFO,
                category="budget",
                platform="both",
                confidence=55,
                tags=["risk", "diversification"],
            ))
        return suggestions
