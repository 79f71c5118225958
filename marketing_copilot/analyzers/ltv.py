"""
LTV Analyzer

Customer lifetime value by first-touch acquisition channel, repeat rate,
purchase cadence and a projected 12-month LTV.
"""
from typing import Dict, List

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.bidding import MIN_SEGMENT_SAMPLE, calculate_bid_adjustment, format_adjustment
from marketing_copilot.analyzers.channels import PAID_CHANNELS, normalize_channel
from marketing_copilot.analyzers.types import AnalysisResult, PRIORITY_IMPORTANT, PRIORITY_INFO
from marketing_copilot.utils.helpers import safe_divide

COUNTED_ORDER_STATUSES = ("completed", "processing")
MAX_ORDERS_PER_YEAR = 12
MIN_SEGMENT_CUSTOMERS = 5


def empty_details() -> Dict:
    return {
        "channel_ltv": [],
        "overall": {"avg_ltv": 0.0, "avg_orders": 0.0, "repeat_rate": 0.0, "avg_days_between_orders": 0},
        "high_value_segments": [],
        "bid_adjustments": [],
    }


def project_ltv_12m(avg_ltv: float, avg_orders: float, avg_days_between: float) -> float:
    """AOV x expected orders in a year (capped at 12)."""
    avg_order_value = safe_divide(avg_ltv, avg_orders)
    orders_per_year = 365 / avg_days_between if avg_days_between > 0 else avg_orders
    return avg_order_value * min(orders_per_year, MAX_ORDERS_PER_YEAR)


def high_value_segments(channel_ltv: List[Dict], overall: Dict) -> List[Dict]:
    segments = []
    avg_ltv = overall["avg_ltv"]
    for channel in channel_ltv:
        if channel["customers"] < MIN_SEGMENT_CUSTOMERS:
            continue
        if channel["avg_ltv"] > avg_ltv * 1.3:
            segments.append({
                "channel": channel["channel"],
                "segment": "High LTV",
                "avg_ltv": channel["avg_ltv"],
                "customers": channel["customers"],
                "insight": f"{channel['channel']} customers have "
                           f"{round((safe_divide(channel['avg_ltv'], avg_ltv, 1.0) - 1) * 100)}% higher LTV than average",
            })
        if channel["repeat_rate"] > overall["repeat_rate"] * 1.5:
            segments.append({
                "channel": channel["channel"],
                "segment": "High Repeat",
                "avg_ltv": channel["avg_ltv"],
                "customers": channel["customers"],
                "insight": f"{channel['channel']} customers have {channel['repeat_rate']:.1f}% repeat rate "
                           f"vs {overall['repeat_rate']:.1f}% average",
            })
    return segments


class LTVAnalyzer(BaseAnalyzer):
    name = "ltv"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details=empty_details())

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)

        customers = await self.data_source.get_customers(account_id)
        if not customers:
            return result

        orders = sorted(
            (o for o in await self.data_source.get_orders(account_id) if o.status in COUNTED_ORDER_STATUSES),
            key=lambda o: o.created_at,
        )
        purchases = sorted(
            await self.data_source.get_analytics_events(account_id, event_types=["purchase"]),
            key=lambda e: e.occurred_at,
        )

        orders_by_id = {o.id: o for o in orders}

        # First purchase's first touch is the acquisition channel
        acquisition: Dict[str, str] = {}
        for event in purchases:
            if not event.purchase or not event.purchase.order_id:
                continue
            order = orders_by_id.get(event.purchase.order_id)
            email = (order.email if order else None) or event.purchase.email
            if email and email.lower() not in acquisition:
                acquisition[email.lower()] = normalize_channel(event.session.first_touch_source)

        order_dates: Dict[str, list] = {}
        for order in orders:
            if order.email:
                order_dates.setdefault(order.email.lower(), []).append(order.created_at)

        channels: Dict[str, Dict] = {}
        total_revenue = 0.0
        total_orders = 0
        repeat_customers = 0
        all_gaps: List[int] = []

        for customer in customers:
            email = customer.email.lower()
            channel = acquisition.get(email, "direct")
            order_count = customer.orders_count or 1

            total_revenue += customer.total_spent
            total_orders += order_count
            if order_count > 1:
                repeat_customers += 1

            data = channels.setdefault(channel, {
                "customers": 0, "revenue": 0.0, "orders": 0, "repeat": 0, "gaps": [],
            })
            data["customers"] += 1
            data["revenue"] += customer.total_spent
            data["orders"] += order_count
            if order_count > 1:
                data["repeat"] += 1

            dates = order_dates.get(email, [])
            for previous, current in zip(dates, dates[1:]):
                gap = round((current - previous).total_seconds() / 86400)
                if 0 < gap < 365:
                    data["gaps"].append(gap)
                    all_gaps.append(gap)

        channel_ltv = []
        for channel, data in channels.items():
            avg_ltv = safe_divide(data["revenue"], data["customers"])
            avg_orders = safe_divide(data["orders"], data["customers"])
            avg_days = safe_divide(sum(data["gaps"]), len(data["gaps"]))
            channel_ltv.append({
                "channel": channel,
                "customers": data["customers"],
                "total_revenue": round(data["revenue"], 2),
                "avg_ltv": round(avg_ltv, 2),
                "avg_orders": round(avg_orders, 2),
                "avg_days_between_orders": round(avg_days),
                "repeat_rate": round(safe_divide(data["repeat"], data["customers"]) * 100, 1),
                "projected_ltv_12m": round(project_ltv_12m(avg_ltv, avg_orders, avg_days), 2),
            })
        channel_ltv.sort(key=lambda c: c["avg_ltv"], reverse=True)

        count = len(customers)
        overall = {
            "avg_ltv": round(total_revenue / count, 2),
            "avg_orders": round(total_orders / count, 2),
            "repeat_rate": round(repeat_customers / count * 100, 1),
            "avg_days_between_orders": round(safe_divide(sum(all_gaps), len(all_gaps))),
        }

        result.has_data = True
        result.details["channel_ltv"] = channel_ltv
        result.details["overall"] = overall
        result.details["high_value_segments"] = high_value_segments(channel_ltv, overall)
        result.details["bid_adjustments"] = [
            {"channel": c["channel"], "adjustment": calculate_bid_adjustment(c["avg_ltv"], overall["avg_ltv"])}
            for c in channel_ltv
            if c["channel"] in PAID_CHANNELS and c["customers"] >= MIN_SEGMENT_SAMPLE
        ]
        result.suggestions = self._build_suggestions(result.details)
        return result

    def _build_suggestions(self, details: Dict) -> list:
        suggestions = []
        channel_ltv = details["channel_ltv"]
        overall = details["overall"]
        if not channel_ltv:
            return suggestions

        best, worst = channel_ltv[0], channel_ltv[-1]
        if best["avg_ltv"] > worst["avg_ltv"] * 1.5:
            lift = round((safe_divide(best["avg_ltv"], worst["avg_ltv"], 1.0) - 1) * 100)
            suggestions.append(self._suggestion(
                "ltv_leader",
                f"{best['channel']} customers have ${best['avg_ltv']} average LTV ({lift}% higher than "
                f"{worst['channel']}). Consider increasing acquisition spend on {best['channel']}.",
                priority=PRIORITY_IMPORTANT,
                category="budget",
                platform=best["channel"] if best["channel"] in PAID_CHANNELS else "both",
                confidence=65,
                data_points=[f"Customers: {best['customers']}", f"Repeat rate: {best['repeat_rate']}%"],
                tags=["ltv", "acquisition"],
            ))

        high_repeat = next((c for c in channel_ltv if c["repeat_rate"] > 30 and c["customers"] >= 10), None)
        if high_repeat:
            suggestions.append(self._suggestion(
                "high_repeat_channel",
                f"{high_repeat['repeat_rate']:.1f}% of {high_repeat['channel']} customers make repeat purchases. "
                f"These customers are worth investing more to acquire.",
                category="audience",
                confidence=60,
                tags=["ltv", "retention"],
            ))

        if overall["repeat_rate"] < 15 and overall["avg_orders"] < 1.3:
            suggestions.append(self._suggestion(
                "retention_opportunity",
                f"Only {overall['repeat_rate']:.1f}% repeat purchase rate. Consider email remarketing, "
                f"loyalty programs, or post-purchase engagement to increase LTV.",
                priority=PRIORITY_IMPORTANT,
                category="audience",
                confidence=60,
                tags=["ltv", "retention"],
            ))

        paid = [c for c in channel_ltv if c["channel"] in PAID_CHANNELS]
        if paid:
            paid_ltv = safe_divide(
                sum(c["avg_ltv"] * c["customers"] for c in paid), sum(c["customers"] for c in paid)
            )
            if paid_ltv > overall["avg_ltv"] * 0.8:
                suggestions.append(self._suggestion(
                    "ltv_justifies_cac",
                    f"Paid channel customers have ${paid_ltv:.0f} LTV. Even if immediate ROAS looks marginal, "
                    f"LTV value justifies acquisition cost.",
                    priority=PRIORITY_INFO,
                    category="budget",
                    confidence=55,
                    tags=["ltv", "cac"],
                ))

        growth = next(
            (c for c in channel_ltv if c["projected_ltv_12m"] > c["avg_ltv"] * 1.5 and c["repeat_rate"] > 20),
            None,
        )
        if growth:
            suggestions.append(self._suggestion(
                "growth_potential",
                f"{growth['channel']} customers are projected to reach ${growth['projected_ltv_12m']} LTV over "
                f"12 months (current: ${growth['avg_ltv']}). Factor this into CAC decisions.",
                category="budget",
                confidence=55,
                tags=["ltv", "projection"],
            ))

        for adjustment in details["bid_adjustments"]:
            if adjustment["adjustment"] == 0:
                continue
            suggestions.append(self._suggestion(
                f"bid_{adjustment['channel']}",
                f"Adjust {adjustment['channel']} acquisition bids by {format_adjustment(adjustment['adjustment'])} "
                f"to reflect customer lifetime value.",
                category="bid_strategy",
                platform=adjustment["channel"],
                confidence=55,
                tags=["ltv", "bidding"],
            ))
        return suggestions


def format_summary(result: AnalysisResult) -> str:
    if not result.has_data:
        return "No customer LTV data available."
    overall = result.details["overall"]
    lines = [
        f"Overall LTV: ${overall['avg_ltv']} ({overall['avg_orders']:.1f} orders avg)",
        f"Repeat Rate: {overall['repeat_rate']}%",
    ]
    if result.details["channel_ltv"]:
        top = result.details["channel_ltv"][0]
        lines.append(f"Best Channel: {top['channel']} (${top['avg_ltv']} LTV)")
    return "\n".join(lines)
