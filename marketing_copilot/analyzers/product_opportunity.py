"""
Product Opportunity Analyzer

Compares 30-day sales velocity against ad coverage. Products that sell on
their own but are not advertised get a start-advertising recommendation;
high-margin steady sellers get a visibility boost.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from marketing_copilot.analyzers.base import BaseAnalyzer
from marketing_copilot.analyzers.types import (
    ActionableRecommendation,
    AnalysisResult,
    EstimatedImpact,
    PRIORITY_IMPORTANT,
    PRIORITY_INFO,
    PRIORITY_URGENT,
    ProductAction,
    create_product_headline,
)
from marketing_copilot.utils.helpers import clamp, round_to_increment

COUNTED_ORDER_STATUSES = ("completed", "processing")
VELOCITY_DAYS = 30
MIN_UNPROMOTED_VELOCITY = 0.5       # units/day
MIN_MARGIN_VELOCITY = 0.3
HIGH_MARGIN = 40                    # percent
TOP_UNPROMOTED = 5
TOP_HIGH_MARGIN = 3
TARGET_ROAS = 3


@dataclass
class ProductVelocity:
    product_id: str
    title: str
    sku: str
    units_sold: int
    revenue: float
    velocity: float
    avg_price: float
    margin: Optional[float] = None


def suggested_daily_budget(product: ProductVelocity) -> float:
    """Daily budget for a 3x ROAS test, rounded to $5 within [$5, $50]."""
    expected_conversions = max(0.5, product.velocity * 0.3)
    budget = expected_conversions * product.avg_price / TARGET_ROAS
    if product.margin is not None and product.margin > 30:
        budget *= 1.2
    return clamp(round_to_increment(budget, 5), 5, 50)


def product_confidence(product: ProductVelocity) -> int:
    score = 50
    if product.velocity >= 3:
        score += 20
    elif product.velocity >= 1:
        score += 10

    if product.units_sold >= 30:
        score += 15
    elif product.units_sold >= 10:
        score += 8

    if product.margin is not None and product.margin > 20:
        score += 10
    return min(95, score)


def is_advertised(product: ProductVelocity, advertised: Set[str]) -> bool:
    return product.product_id.lower() in advertised or (
        bool(product.sku) and product.sku.lower() in advertised
    )


class ProductOpportunityAnalyzer(BaseAnalyzer):
    name = "product_opportunity"

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False, details={
            "total_products_analyzed": 0,
            "products_with_sales": 0,
            "products_in_ads": 0,
            "opportunity_count": 0,
        })

    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        result = self._create_empty_result(account_id)
        products = await self.data_source.get_products(account_id)
        result.details["total_products_analyzed"] = len(products)
        if not products:
            return result

        start_date = datetime.utcnow() - timedelta(days=VELOCITY_DAYS)
        orders = [
            o for o in await self.data_source.get_orders(account_id, start_date=start_date)
            if o.status in COUNTED_ORDER_STATUSES
        ]

        sales: Dict[str, Dict] = {}
        for order in orders:
            for item in order.line_items:
                if not item.product_id:
                    continue
                stats = sales.setdefault(item.product_id, {"units": 0, "revenue": 0.0, "prices": []})
                stats["units"] += item.quantity
                stats["revenue"] += item.price * item.quantity
                stats["prices"].append(item.price)

        velocity: List[ProductVelocity] = []
        for product in products:
            stats = sales.get(product.id)
            if not stats or stats["units"] == 0:
                continue
            avg_price = sum(stats["prices"]) / len(stats["prices"]) if stats["prices"] else product.price
            margin = None
            if product.cost and avg_price > 0:
                margin = (avg_price - product.cost) / avg_price * 100
            velocity.append(ProductVelocity(
                product_id=product.id,
                title=product.title or f"Product {product.id}",
                sku=product.sku or "",
                units_sold=stats["units"],
                revenue=stats["revenue"],
                velocity=stats["units"] / VELOCITY_DAYS,
                avg_price=avg_price,
                margin=margin,
            ))

        advertised = {str(a).lower() for a in await self.data_source.get_advertised_product_ids(account_id)}
        result.details["products_with_sales"] = len(velocity)
        result.details["products_in_ads"] = len(advertised)
        result.has_data = bool(velocity)

        unpromoted = sorted(
            (p for p in velocity if not is_advertised(p, advertised) and p.velocity >= MIN_UNPROMOTED_VELOCITY),
            key=lambda p: p.velocity,
            reverse=True,
        )[:TOP_UNPROMOTED]
        for product in unpromoted:
            result.actionable_recommendations.append(self._unpromoted(product))

        listed = {p.product_id for p in unpromoted}
        high_margin = sorted(
            (
                p for p in velocity
                if p.margin is not None and p.margin >= HIGH_MARGIN and p.velocity >= MIN_MARGIN_VELOCITY
            ),
            key=lambda p: p.margin,
            reverse=True,
        )[:TOP_HIGH_MARGIN]
        for product in high_margin:
            if product.product_id in listed:
                continue
            result.actionable_recommendations.append(self._high_margin(product))

        result.details["opportunity_count"] = len(result.actionable_recommendations)
        return result

    def _unpromoted(self, product: ProductVelocity) -> ActionableRecommendation:
        budget = suggested_daily_budget(product)
        action = ProductAction(
            product_id=product.product_id,
            product_title=product.title,
            operation="start_advertising",
            suggested_daily_budget=budget,
            sku=product.sku or None,
        )
        explanation = (
            f"This product is selling {product.velocity:.1f} units/day with no ad coverage. "
            f"Adding a Shopping campaign could significantly increase sales volume."
        )
        if product.margin is not None:
            explanation += f" Margin: {product.margin:.0f}%"

        return ActionableRecommendation(
            id=f"prod_opp_{product.product_id}",
            headline=create_product_headline(action),
            action=action,
            source=self.name,
            priority=PRIORITY_URGENT if product.velocity >= 2 else PRIORITY_IMPORTANT,
            category="optimization",
            explanation=explanation,
            data_points=(
                f"{product.units_sold} units sold in 30 days",
                f"${product.revenue:.0f} revenue",
                f"Avg price: ${product.avg_price:.2f}",
                "No current ad spend",
            ),
            confidence=product_confidence(product),
            estimated_impact=EstimatedImpact(
                metric="revenue", value=round(product.revenue * 0.5, 2), timeframe="30d",
            ),
            platform="google",
            tags=("shopping", "opportunity", "unpromoted"),
        )

    def _high_margin(self, product: ProductVelocity) -> ActionableRecommendation:
        action = ProductAction(
            product_id=product.product_id,
            product_title=product.title,
            operation="increase_budget",
            sku=product.sku or None,
        )
        return ActionableRecommendation(
            id=f"prod_margin_{product.product_id}",
            headline=f"Boost \"{product.title}\" - {product.margin:.0f}% margin product",
            action=action,
            source=self.name,
            priority=PRIORITY_INFO,
            category="optimization",
            explanation=(
                f"High margin product ({product.margin:.0f}%) with steady sales. "
                f"Increasing ad spend could be very profitable."
            ),
            data_points=(
                f"Margin: {product.margin:.0f}%",
                f"Velocity: {product.velocity:.1f} units/day",
                f"Revenue: ${product.revenue:.0f}/30d",
            ),
            confidence=65,
            platform="google",
            tags=("high-margin", "scaling"),
        )
