"""
Audience Analyzer

Order performance by device, country and hour of day, with bid adjustment
recommendations for segments that beat or trail the account's average AOV.
"""
from datetime import datetime, timedelta
from typing import Dict, List

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.bidding import MIN_SEGMENT_SAMPLE, calculate_bid_adjustment
from marketing_copilot.analyzers.types import AnalysisResult, PRIORITY_IMPORTANT
from marketing_copilot.utils.helpers import safe_divide

COUNTED_ORDER_STATUSES = ("completed", "processing")
MIN_GEO_ORDERS = 5
MIN_GEO_ADJUSTMENT = 20
TOP_GEOS = 10
PEAK_HOUR_RATIO = 0.7


def normalize_device(device) -> str:
    if not device:
        return "unknown"
    d = device.lower()
    if any(token in d for token in ("mobile", "phone", "ios", "android")):
        return "mobile"
    if "tablet" in d or "ipad" in d:
        return "tablet"
    if any(token in d for token in ("desktop", "windows", "mac")):
        return "desktop"
    return "unknown"


def assess_segment(aov: float, avg_aov: float) -> str:
    ratio = aov / avg_aov if avg_aov > 0 else 1
    if ratio >= 1.3:
        return "excellent"
    if ratio >= 1.0:
        return "good"
    if ratio >= 0.7:
        return "fair"
    return "poor"


def _segment_rows(data: Dict[str, Dict], total_revenue: float, avg_aov: float, key: str) -> List[Dict]:
    rows = []
    for segment, stats in data.items():
        aov = safe_divide(stats["revenue"], stats["orders"])
        rows.append({
            key: segment,
            "orders": stats["orders"],
            "revenue": round(stats["revenue"], 2),
            "aov": round(aov, 2),
            "revenue_share": round(safe_divide(stats["revenue"], total_revenue) * 100, 1),
            "performance": assess_segment(aov, avg_aov),
            "bid_adjustment": calculate_bid_adjustment(aov, avg_aov),
        })
    return sorted(rows, key=lambda r: r["revenue"], reverse=True)


def device_insight(devices: List[Dict]) -> str:
    mobile = next((d for d in devices if d["device"] == "mobile"), None)
    desktop = next((d for d in devices if d["device"] == "desktop"), None)

    if mobile and desktop and mobile["orders"] >= 10 and desktop["orders"] >= 10:
        m, d = mobile["aov"], desktop["aov"]
        if d > m * 1.3:
            return (f"Desktop has {round((safe_divide(d, m, 1.0) - 1) * 100)}% higher AOV (${d} vs ${m}). "
                    f"Consider higher bids for desktop.")
        if m > d * 1.3:
            return (f"Mobile has {round((safe_divide(m, d, 1.0) - 1) * 100)}% higher AOV (${m} vs ${d}). "
                    f"Your audience converts better on mobile.")
        return f"Device performance is balanced. Mobile: ${m} AOV, Desktop: ${d} AOV."
    if mobile and mobile["revenue_share"] > 70:
        return f"{mobile['revenue_share']}% of revenue from mobile. Ensure mobile experience is optimized."
    if desktop and desktop["revenue_share"] > 70:
        return f"{desktop['revenue_share']}% of revenue from desktop. Consider if mobile experience needs improvement."
    return ""


def geo_insight(geos: List[Dict]) -> str:
    if not geos:
        return ""
    top = geos[0]
    if top["revenue_share"] > 80:
        return f"{top['revenue_share']}% of revenue from {top['country']}. Consider expansion opportunities."
    if len(geos) >= 3:
        top3 = geos[:3]
        share = sum(g["revenue_share"] for g in top3)
        return f"Top 3 markets ({', '.join(g['country'] for g in top3)}) represent {share:.0f}% of revenue."
    return ""


def bid_adjustments(devices: List[Dict], geos: List[Dict]) -> List[Dict]:
    adjustments = []
    for device in devices:
        if device["orders"] < MIN_SEGMENT_SAMPLE or device["bid_adjustment"] == 0:
            continue
        adjustments.append({
            "dimension": "device",
            "segment": device["device"],
            "current_performance": f"${device['aov']} AOV ({device['performance']})",
            "suggested_adjustment": device["bid_adjustment"],
            "rationale": (
                f"{device['device']} has higher AOV than average - increase bids to capture more"
                if device["bid_adjustment"] > 0
                else f"{device['device']} underperforms - reduce bids or improve experience"
            ),
        })

    for geo in geos[:5]:
        if geo["orders"] < MIN_GEO_ORDERS or geo["bid_adjustment"] < MIN_GEO_ADJUSTMENT:
            continue
        adjustments.append({
            "dimension": "geo",
            "segment": geo["country"],
            "current_performance": f"${geo['aov']} AOV ({geo['performance']})",
            "suggested_adjustment": geo["bid_adjustment"],
            "rationale": f"{geo['country']} has strong AOV - consider geo-targeting expansion",
        })
    return adjustments


class AudienceAnalyzer(BaseAnalyzer):
    name = "audience"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details={
            "device_performance": [],
            "device_insight": "",
            "geo_performance": [],
            "geo_insight": "",
            "peak_hours": [],
            "bid_adjustments": [],
        })

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        start_date = datetime.utcnow() - timedelta(days=self.settings.audience_lookback_days)

        orders = [
            o for o in await self.data_source.get_orders(account_id, start_date=start_date)
            if o.status in COUNTED_ORDER_STATUSES
        ]
        if not orders:
            return result

        purchases = await self.data_source.get_analytics_events(
            account_id, event_types=["purchase"], start_date=start_date
        )
        sessions = {
            e.purchase.order_id: e.session
            for e in purchases if e.purchase and e.purchase.order_id
        }

        devices: Dict[str, Dict] = {}
        countries: Dict[str, Dict] = {}
        hours: Dict[int, Dict] = {}
        total_revenue = 0.0

        for order in orders:
            total_revenue += order.total
            session = sessions.get(order.id)

            device = normalize_device(session.device_type if session else None)
            country = (session.country if session else None) or order.billing_country or "Unknown"
            for bucket, key in ((devices, device), (countries, country), (hours, order.created_at.hour)):
                stats = bucket.setdefault(key, {"orders": 0, "revenue": 0.0})
                stats["orders"] += 1
                stats["revenue"] += order.total

        avg_aov = safe_divide(total_revenue, len(orders))
        device_rows = _segment_rows(devices, total_revenue, avg_aov, "device")
        geo_rows = _segment_rows(countries, total_revenue, avg_aov, "country")[:TOP_GEOS]

        max_orders = max([h["orders"] for h in hours.values()] + [1])
        peak_hours = [
            {
                "hour": hour,
                "orders": stats["orders"],
                "revenue": round(stats["revenue"], 2),
                "is_optimal": stats["orders"] >= max_orders * PEAK_HOUR_RATIO,
            }
            for hour, stats in sorted(hours.items())
        ]

        details = result.details
        details["device_performance"] = device_rows
        details["geo_performance"] = geo_rows
        details["peak_hours"] = peak_hours
        details["device_insight"] = device_insight(device_rows)
        details["geo_insight"] = geo_insight(geo_rows)
        details["bid_adjustments"] = bid_adjustments(device_rows, geo_rows)
        result.has_data = True
        result.suggestions = self._build_suggestions(details)
        return result

    def _build_suggestions(self, details: Dict) -> list:
        suggestions = []
        adjustments = details["bid_adjustments"]

        if details["device_insight"]:
            suggestions.append(self._suggestion(
                "device_performance", f"Device performance: {details['device_insight']}",
                category="audience", confidence=55, tags=["device"],
            ))
        if details["geo_insight"]:
            suggestions.append(self._suggestion(
                "geo_performance", f"Geographic performance: {details['geo_insight']}",
                category="audience", confidence=50, tags=["geo"],
            ))

        high = next((b for b in adjustments if b["dimension"] == "device" and b["suggested_adjustment"] >= 20), None)
        if high:
            suggestions.append(self._suggestion(
                "device_bid_up",
                f"Bid opportunity: {high['segment']} {high['current_performance']}. "
                f"Consider +{high['suggested_adjustment']}% bid adjustment.",
                priority=PRIORITY_IMPORTANT,
                category="bid_strategy",
                confidence=65,
                data_points=[high["rationale"]],
                tags=["device", "bidding"],
            ))

        low = next((b for b in adjustments if b["dimension"] == "device" and b["suggested_adjustment"] <= -20), None)
        if low:
            suggestions.append(self._suggestion(
                "device_bid_down",
                f"{low['segment'].title()} underperforming: {low['current_performance']}. "
                f"Consider {low['suggested_adjustment']}% bid adjustment or UX improvements.",
                priority=PRIORITY_IMPORTANT,
                category="bid_strategy",
                confidence=60,
                data_points=[low["rationale"]],
                tags=["device", "bidding"],
            ))

        peak = [h for h in details["peak_hours"] if h["is_optimal"]]
        if 0 < len(peak) < 12:
            hours = ", ".join(f"{h['hour']:02d}:00" for h in peak)
            suggestions.append(self._suggestion(
                "peak_hours",
                f"Peak buying hours: most orders between {hours}. Consider ad scheduling to optimize spend.",
                category="bid_strategy",
                confidence=50,
                tags=["scheduling"],
            ))

        expansion = next(
            (g for g in details["geo_performance"] if g["performance"] == "excellent" and g["revenue_share"] < 30),
            None,
        )
        if expansion:
            suggestions.append(self._suggestion(
                "geo_expansion",
                f"{expansion['country']} has excellent AOV (${expansion['aov']}) but only "
                f"{expansion['revenue_share']}% revenue share. Consider increasing targeting.",
                category="audience",
                confidence=55,
                tags=["geo", "expansion"],
            ))
        return suggestions
