"""
Multi-Period Analyzer

Compares the current window of daily snapshots against the window before it,
per platform and per campaign. Produces trend directions that feed the rule
context, and anomaly alerts for sharp drops.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.types import AnalysisResult, PRIORITY_IMPORTANT, PRIORITY_URGENT
from marketing_copilot.models.records import CampaignSnapshot
from marketing_copilot.services.context_builder import Trends
from marketing_copilot.utils.helpers import calculate_percentage_change, safe_divide

TREND_THRESHOLD = 10            # percent
ROAS_CRITICAL_DROP = 30
ROAS_WARNING_DROP = 20
CTR_DROP = 40
CPA_SPIKE = 50
PLATFORMS = ("google", "meta")


def summarize_period(snapshots: List[CampaignSnapshot]) -> Dict[str, float]:
    spend = sum(s.spend for s in snapshots)
    revenue = sum(s.revenue for s in snapshots)
    clicks = sum(s.clicks for s in snapshots)
    impressions = sum(s.impressions for s in snapshots)
    conversions = sum(s.conversions for s in snapshots)
    return {
        "spend": spend,
        "revenue": revenue,
        "conversions": conversions,
        "roas": safe_divide(revenue, spend),
        "ctr": safe_divide(clicks, impressions) * 100,
        "cpa": safe_divide(spend, conversions),
    }


def trend_direction(change: Optional[float], higher_is_better: bool = True) -> str:
    if change is None:
        return "stable"
    if not higher_is_better:
        change = -change
    if change > TREND_THRESHOLD:
        return "improving"
    if change < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def compare_periods(current: Dict[str, float], previous: Dict[str, float]) -> Dict:
    changes = {
        metric: calculate_percentage_change(current[metric], previous[metric])
        for metric in ("spend", "revenue", "roas", "ctr", "cpa")
    }
    return {
        "current": {k: round(v, 2) for k, v in current.items()},
        "previous": {k: round(v, 2) for k, v in previous.items()},
        "changes": {k: (round(v, 1) if v is not None else None) for k, v in changes.items()},
        "trends": {
            "roas": trend_direction(changes["roas"]),
            "ctr": trend_direction(changes["ctr"]),
            "cpa": trend_direction(changes["cpa"], higher_is_better=False),
        },
    }


def detect_anomalies(scope: str, comparison: Dict) -> List[Dict]:
    """Drops and spikes large enough to alert on."""
    anomalies = []
    changes = comparison["changes"]
    current, previous = comparison["current"], comparison["previous"]

    roas_change = changes["roas"]
    if roas_change is not None and roas_change <= -ROAS_WARNING_DROP:
        anomalies.append({
            "scope": scope,
            "metric": "roas",
            "severity": "critical" if roas_change <= -ROAS_CRITICAL_DROP else "warning",
            "change": roas_change,
            "message": (f"{scope} ROAS dropped {abs(roas_change):.0f}% "
                        f"({previous['roas']:.1f}x -> {current['roas']:.1f}x)"),
        })

    ctr_change = changes["ctr"]
    if ctr_change is not None and ctr_change <= -CTR_DROP:
        anomalies.append({
            "scope": scope,
            "metric": "ctr",
            "severity": "warning",
            "change": ctr_change,
            "message": f"{scope} CTR dropped {abs(ctr_change):.0f}% ({previous['ctr']:.2f}% -> {current['ctr']:.2f}%)",
        })

    cpa_change = changes["cpa"]
    if cpa_change is not None and cpa_change >= CPA_SPIKE:
        anomalies.append({
            "scope": scope,
            "metric": "cpa",
            "severity": "warning",
            "change": cpa_change,
            "message": f"{scope} CPA spiked {cpa_change:.0f}% (${previous['cpa']:.2f} -> ${current['cpa']:.2f})",
        })
    return anomalies


def platform_trends(result: AnalysisResult, platform: str) -> Trends:
    """Platform-level Trends from a multi-period result; stable when absent."""
    comparison = result.details.get("platforms", {}).get(platform)
    if not comparison:
        return Trends()
    return Trends(roas=comparison["trends"]["roas"], ctr=comparison["trends"]["ctr"])


def campaign_trends(result: AnalysisResult) -> Dict[str, Trends]:
    return {
        campaign_id: Trends(roas=c["trends"]["roas"], ctr=c["trends"]["ctr"])
        for campaign_id, c in result.details.get("campaigns", {}).items()
    }


class MultiPeriodAnalyzer(BaseAnalyzer):
    name = "multi_period"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details={
            "window_days": self.settings.multi_period_window_days,
            "platforms": {},
            "campaigns": {},
            "anomalies": [],
        })

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        window = timedelta(days=self.settings.multi_period_window_days)
        today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        end = today + timedelta(days=1)

        snapshots = [
            s for s in await self.data_source.get_campaign_snapshots(
                account_id, start_date=end - 2 * window, end_date=end
            )
            if s.day is not None
        ]
        if not snapshots:
            return result

        boundary = (end - window).date()
        current = [s for s in snapshots if s.day >= boundary]
        previous = [s for s in snapshots if s.day < boundary]
        if not current or not previous:
            return result

        details = result.details
        for platform in PLATFORMS:
            cur = [s for s in current if s.platform == platform]
            prev = [s for s in previous if s.platform == platform]
            if not cur or not prev:
                continue
            comparison = compare_periods(summarize_period(cur), summarize_period(prev))
            details["platforms"][platform] = comparison
            details["anomalies"].extend(detect_anomalies(platform, comparison))

        for campaign_id in {s.campaign_id for s in current}:
            cur = [s for s in current if s.campaign_id == campaign_id]
            prev = [s for s in previous if s.campaign_id == campaign_id]
            if not prev:
                continue
            comparison = compare_periods(summarize_period(cur), summarize_period(prev))
            comparison["name"] = cur[-1].name
            comparison["platform"] = cur[-1].platform
            details["campaigns"][campaign_id] = comparison

        result.has_data = bool(details["platforms"] or details["campaigns"])
        result.suggestions = self._build_suggestions(details)
        return result

    def _build_suggestions(self, details: Dict) -> list:
        suggestions = []
        for anomaly in details["anomalies"]:
            critical = anomaly["severity"] == "critical"
            suggestions.append(self._suggestion(
                f"{anomaly['metric']}_{anomaly['scope']}",
                anomaly["message"],
                priority=PRIORITY_URGENT if critical else PRIORITY_IMPORTANT,
                category="performance",
                confidence=75 if critical else 60,
                platform=anomaly["scope"],
                data_points=[f"Window: last {details['window_days']} days vs the {details['window_days']} before"],
                tags=["trend", "declining", anomaly["metric"]],
            ))

        for platform, comparison in details["platforms"].items():
            change = comparison["changes"]["roas"]
            if comparison["trends"]["roas"] == "improving" and change is not None:
                suggestions.append(self._suggestion(
                    f"improving_{platform}",
                    f"{platform.title()} ROAS improved {change:.0f}% versus the previous period. "
                    f"Consider scaling what changed.",
                    category="performance",
                    confidence=50,
                    platform=platform,
                    tags=["trend", "improving"],
                ))
        return suggestions
