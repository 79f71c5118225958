"""
Funnel Analyzer

Judges each campaign on the metric that fits its funnel stage: awareness on
CPM, consideration on CPC, conversion and retention on ROAS. Flags campaigns
that look bad on ROAS but are doing their upper-funnel job.
"""
from datetime import datetime, timedelta
from typing import Dict, List

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.types import AnalysisResult, PRIORITY_IMPORTANT, PRIORITY_INFO
from marketing_copilot.models.records import aggregate_snapshots
from marketing_copilot.services.context_builder import (
    FUNNEL_STAGES,
    get_campaign_type,
    get_expected_roas_threshold,
    infer_funnel_stage,
    is_brand_campaign,
)
from marketing_copilot.utils.helpers import safe_divide

# ---------------------------------------------------------------------------
# Stage definitions
# ---------------------------------------------------------------------------

FUNNEL_STAGE_METRICS = {
    "awareness": {
        "primary": "cpm",
        "secondary": "reach",
        "benchmarks": {
            "cpm": {"good": 15, "warning": 30},
            "ctr": {"good": 0.5, "warning": 0.2},
            "frequency": {"good": 2, "warning": 5},
        },
    },
    "consideration": {
        "primary": "cpc",
        "secondary": "ctr",
        "benchmarks": {
            "cpc": {"good": 1.5, "warning": 3},
            "ctr": {"good": 2, "warning": 0.8},
        },
    },
    "conversion": {
        "primary": "roas",
        "secondary": "cpa",
        "benchmarks": {
            "roas": {"good": 3, "warning": 1.5},
            "cpa": {"good": 30, "warning": 60},
        },
    },
    "retention": {
        "primary": "roas",
        "secondary": "cpa",
        "benchmarks": {
            "roas": {"good": 5, "warning": 2},
            "cpa": {"good": 20, "warning": 40},
        },
    },
}

LOWER_IS_BETTER = ("cpm", "cpc", "cpa")
PERFORMANCE_SCORES = {"excellent": 4, "good": 3, "fair": 2, "poor": 1}
DEFAULT_MIN_ROAS = 1.5


def assess_performance(metric: str, value: float, benchmark: Dict[str, float]) -> str:
    """Classify a metric value as excellent / good / fair / poor."""
    good, warning = benchmark["good"], benchmark["warning"]
    if metric in LOWER_IS_BETTER:
        if value <= good:
            return "excellent"
        if value <= good * 1.5:
            return "good"
        if value <= warning:
            return "fair"
        return "poor"

    if value >= good * 1.5:
        return "excellent"
    if value >= good:
        return "good"
    if value >= warning:
        return "fair"
    return "poor"


def identify_issues(campaign: Dict) -> List[str]:
    issues = []
    stage = campaign["funnel_stage"]
    spend = campaign["spend"]

    if stage == "awareness":
        # Awareness is never judged on ROAS
        if campaign["cpm"] > 25:
            issues.append(f"High CPM (${campaign['cpm']:.2f}) - consider audience refinement")
        if campaign["ctr"] < 0.3 and spend > 100:
            issues.append(f"Low CTR ({campaign['ctr']:.2f}%) - creative may need refresh")
    elif stage == "consideration":
        if campaign["ctr"] < 1 and spend > 100:
            issues.append(f"Low CTR ({campaign['ctr']:.2f}%) for consideration stage")
    else:
        threshold = campaign["expected_roas"]
        min_roas = threshold["min"] if threshold else DEFAULT_MIN_ROAS
        if campaign["roas"] < min_roas and spend > 50:
            issues.append(
                f"ROAS ({campaign['roas']:.2f}x) below threshold ({min_roas}x) for {campaign['campaign_type']}"
            )
        if campaign["conversions"] == 0 and spend > 100:
            issues.append(f"No conversions with ${spend:.0f} spend - check conversion tracking")
    return issues


def stage_summaries(campaigns: List[Dict]) -> List[Dict]:
    total_spend = sum(c["spend"] for c in campaigns)
    summaries = []
    for stage in FUNNEL_STAGES:
        in_stage = [c for c in campaigns if c["funnel_stage"] == stage]
        if not in_stage:
            continue
        spend = sum(c["spend"] for c in in_stage)
        avg_perf = sum(PERFORMANCE_SCORES[c["performance"]] for c in in_stage) / len(in_stage)
        summaries.append({
            "stage": stage,
            "campaigns": len(in_stage),
            "spend": round(spend, 2),
            "spend_share": round(safe_divide(spend, total_spend) * 100, 1),
            "avg_performance": round(avg_perf, 1),
        })
    return summaries


def assess_funnel_health(summaries: List[Dict]) -> Dict:
    by_stage = {s["stage"]: s for s in summaries}
    awareness = by_stage.get("awareness")
    consideration = by_stage.get("consideration")
    conversion = by_stage.get("conversion") or by_stage.get("retention")

    awareness_share = awareness["spend_share"] if awareness else 0
    conversion_share = (
        (by_stage["conversion"]["spend_share"] if "conversion" in by_stage else 0)
        + (by_stage["retention"]["spend_share"] if "retention" in by_stage else 0)
    )

    if awareness_share > 50 and conversion_share < 20:
        balance = "top-heavy"
        recommendation = ("Heavy awareness spend but limited conversion focus. "
                          "Consider adding more bottom-funnel campaigns.")
    elif conversion_share > 80 and awareness_share < 10:
        balance = "bottom-heavy"
        recommendation = ("Mostly conversion-focused. "
                          "Consider awareness campaigns to grow your audience pool.")
    elif awareness_share > 15 and conversion_share > 30:
        balance = "healthy"
        recommendation = "Good balance across funnel stages."
    else:
        balance = "unbalanced"
        recommendation = "Review campaign mix to ensure coverage across customer journey stages."

    return {
        "has_awareness": bool(awareness and awareness["spend"] > 0),
        "has_consideration": bool(consideration and consideration["spend"] > 0),
        "has_conversion": bool(conversion and conversion["spend"] > 0),
        "balance": balance,
        "recommendation": recommendation,
    }


def misjudged_campaigns(campaigns: List[Dict]) -> List[Dict]:
    """Campaigns that look weak on ROAS but are serving their funnel purpose."""
    misjudged = []
    for c in campaigns:
        if c["funnel_stage"] == "awareness" and c["roas"] < 1 and c["spend"] > 200 and c["cpm"] < 20:
            misjudged.append({
                "campaign_name": c["campaign_name"],
                "issue": "ROAS appears low, but this is an awareness campaign",
                "correct_metric": f"CPM: ${c['cpm']:.2f} (good for awareness)",
            })
        if c["campaign_type"] == "prospecting" and c["roas"] < 2 and c["spend"] > 100 and c["ctr"] > 1:
            misjudged.append({
                "campaign_name": c["campaign_name"],
                "issue": "Prospecting campaigns have delayed ROAS - they fill the funnel",
                "correct_metric": f"CTR: {c['ctr']:.2f}% (indicates interest)",
            })
    return misjudged


class FunnelAnalyzer(BaseAnalyzer):
    name = "funnel"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details={
            "campaigns": [],
            "by_stage_summary": [],
            "funnel_health": {
                "has_awareness": False,
                "has_consideration": False,
                "has_conversion": False,
                "balance": "unbalanced",
                "recommendation": "",
            },
            "misjudged_campaigns": [],
        })

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        start_date = datetime.utcnow() - timedelta(days=self.settings.funnel_lookback_days)
        snapshots = aggregate_snapshots(
            await self.data_source.get_campaign_snapshots(account_id, start_date=start_date)
        )
        if not snapshots:
            return result

        campaigns = []
        for snap in snapshots:
            campaign_type = get_campaign_type(snap.name)
            stage = infer_funnel_stage(campaign_type)
            stage_metrics = FUNNEL_STAGE_METRICS[stage]
            primary = stage_metrics["primary"]
            expected = get_expected_roas_threshold(
                "brand" if is_brand_campaign(snap.name) else campaign_type
            ) or get_expected_roas_threshold(campaign_type)

            campaign = {
                "campaign_id": snap.campaign_id,
                "campaign_name": snap.name,
                "platform": snap.platform,
                "campaign_type": campaign_type,
                "funnel_stage": stage,
                "spend": snap.spend,
                "impressions": snap.impressions,
                "clicks": snap.clicks,
                "conversions": snap.conversions,
                "revenue": snap.revenue,
                "roas": snap.roas,
                "cpm": snap.cpm,
                "ctr": snap.ctr,
                "cpc": snap.cpc,
                "cpa": snap.cpa,
                "expected_roas": expected,
            }
            value = campaign[primary]
            campaign["primary_metric_value"] = value
            campaign["performance"] = assess_performance(primary, value, stage_metrics["benchmarks"][primary])
            campaign["primary_metric_assessment"] = f"{primary.upper()}: {value:.2f} ({campaign['performance']})"
            campaign["issues"] = identify_issues(campaign)
            campaigns.append(campaign)

        summaries = stage_summaries(campaigns)
        details = result.details
        details["campaigns"] = campaigns
        details["by_stage_summary"] = summaries
        details["funnel_health"] = assess_funnel_health(summaries)
        details["misjudged_campaigns"] = misjudged_campaigns(campaigns)
        result.has_data = True
        result.suggestions = self._build_suggestions(details)
        return result

    def _build_suggestions(self, details: Dict) -> list:
        suggestions = []
        health = details["funnel_health"]
        campaigns = details["campaigns"]
        misjudged = details["misjudged_campaigns"]

        if health["balance"] != "healthy":
            suggestions.append(self._suggestion(
                "balance",
                f"Funnel balance: {health['recommendation']}",
                category="structure",
                platform="both",
                confidence=55,
                data_points=[f"{s['stage'].title()}: {s['spend_share']}% of spend" for s in details["by_stage_summary"]],
                tags=["funnel", "balance"],
            ))

        poor_by_stage: Dict[str, int] = {}
        for c in campaigns:
            if c["performance"] == "poor" and c["spend"] > 100:
                poor_by_stage[c["funnel_stage"]] = poor_by_stage.get(c["funnel_stage"], 0) + 1
        for stage, count in poor_by_stage.items():
            suggestions.append(self._suggestion(
                f"poor_{stage}",
                f"{stage.title()} issues: {count} campaigns underperforming. Review targeting and creative.",
                priority=PRIORITY_IMPORTANT,
                category="performance",
                confidence=65,
                tags=["funnel", stage],
            ))

        if misjudged:
            first = misjudged[0]
            suggestions.append(self._suggestion(
                "misjudged",
                f"{len(misjudged)} campaign(s) may appear underperforming but are serving their funnel purpose. "
                f"Example: \"{first['campaign_name']}\" - {first['issue']}",
                priority=PRIORITY_INFO,
                category="structure",
                confidence=70,
                data_points=[m["correct_metric"] for m in misjudged],
                tags=["funnel", "context"],
            ))

        if not health["has_awareness"] and details["by_stage_summary"]:
            suggestions.append(self._suggestion(
                "no_awareness",
                "No awareness campaigns: you're only running lower-funnel campaigns. "
                "Consider adding awareness/video campaigns to expand your audience pool.",
                category="structure",
                confidence=50,
                tags=["funnel", "awareness"],
            ))

        excellent = [c for c in campaigns if c["performance"] == "excellent" and c["spend"] > 50]
        if excellent:
            best = max(excellent, key=lambda c: c["spend"])
            suggestions.append(self._suggestion(
                "top_performer",
                f"\"{best['campaign_name']}\" is excellent at {best['funnel_stage']} stage "
                f"({best['primary_metric_assessment']}). Consider scaling budget.",
                priority=PRIORITY_IMPORTANT,
                category="budget",
                platform=best["platform"],
                campaign_id=best["campaign_id"],
                campaign_name=best["campaign_name"],
                confidence=70,
                tags=["scaling", "funnel"],
            ))
        return suggestions
