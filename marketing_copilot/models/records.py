"""
Typed ingestion records.

Raw metric and commerce blobs are validated into these models once, at the
data-source boundary. Analyzers only ever see validated records.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from marketing_copilot.utils.helpers import safe_divide


class CampaignSnapshot(BaseModel):
    """Metrics for one campaign over one day (or one pre-aggregated window)."""
    account_id: str
    platform: str                       # google, meta
    campaign_id: str
    name: str
    day: Optional[date] = None
    spend: float = 0.0
    clicks: int = 0
    impressions: int = 0
    conversions: float = 0.0
    revenue: float = 0.0
    days_since_launch: Optional[int] = None
    frequency: Optional[float] = None
    is_learning: Optional[bool] = None

    @property
    def roas(self) -> float:
        return safe_divide(self.revenue, self.spend)

    @property
    def ctr(self) -> float:
        """Click-through rate in percent."""
        return safe_divide(self.clicks, self.impressions) * 100

    @property
    def cpc(self) -> float:
        return safe_divide(self.spend, self.clicks)

    @property
    def cpa(self) -> float:
        return safe_divide(self.spend, self.conversions)

    @property
    def cpm(self) -> float:
        return safe_divide(self.spend, self.impressions) * 1000


def aggregate_snapshots(snapshots: List[CampaignSnapshot]) -> List[CampaignSnapshot]:
    """Sum daily snapshots into one window total per (platform, campaign)."""
    totals: Dict[tuple, CampaignSnapshot] = {}
    # Chronological so point-in-time fields reflect the most recent day
    for snap in sorted(snapshots, key=lambda s: s.day or date.min):
        key = (snap.platform, snap.campaign_id)
        current = totals.get(key)
        if current is None:
            totals[key] = snap.model_copy(update={"day": None})
            continue
        totals[key] = current.model_copy(update={
            "name": snap.name or current.name,
            "spend": current.spend + snap.spend,
            "clicks": current.clicks + snap.clicks,
            "impressions": current.impressions + snap.impressions,
            "conversions": current.conversions + snap.conversions,
            "revenue": current.revenue + snap.revenue,
            # Latest known values win for point-in-time fields
            "days_since_launch": _latest(current.days_since_launch, snap.days_since_launch),
            "frequency": _latest(current.frequency, snap.frequency),
            "is_learning": _latest(current.is_learning, snap.is_learning),
        })
    return list(totals.values())


def _latest(previous, new):
    return new if new is not None else previous


class LineItem(BaseModel):
    product_id: Optional[str] = None
    sku: Optional[str] = None
    title: str = ""
    quantity: int = 1
    price: float = 0.0


class Order(BaseModel):
    id: str
    account_id: str
    created_at: datetime
    total: float = 0.0
    email: Optional[str] = None
    status: str = "completed"       # completed, processing, refunded, cancelled
    billing_country: Optional[str] = None
    line_items: List[LineItem] = Field(default_factory=list)


class Customer(BaseModel):
    account_id: str
    email: str
    total_spent: float = 0.0
    orders_count: int = 0
    created_at: Optional[datetime] = None


class Product(BaseModel):
    id: str
    account_id: str
    title: str
    sku: Optional[str] = None
    price: float = 0.0
    cost: Optional[float] = None
    inventory: Optional[int] = None
    product_type: Optional[str] = None


class AnalyticsSession(BaseModel):
    session_id: str
    first_touch_source: Optional[str] = None
    last_touch_source: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    device_type: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None


class SearchPayload(BaseModel):
    term: Optional[str] = None


class PurchasePayload(BaseModel):
    value: float = 0.0
    order_id: Optional[str] = None
    email: Optional[str] = None


class AnalyticsEvent(BaseModel):
    """A site-analytics event. `search` and `purchase` payloads are typed."""
    account_id: str
    event_type: str                 # search, purchase, page_view, ...
    occurred_at: datetime
    session: AnalyticsSession
    search: Optional[SearchPayload] = None
    purchase: Optional[PurchasePayload] = None

    @model_validator(mode="before")
    @classmethod
    def _type_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "payload" not in data:
            return data
        data = dict(data)
        payload = data.pop("payload") or {}
        event_type = data.get("event_type")
        if event_type == "search":
            term = payload.get("query") or payload.get("search_term") or payload.get("q")
            data["search"] = {"term": term}
        elif event_type == "purchase":
            data["purchase"] = {
                "value": payload.get("value") or payload.get("revenue") or 0,
                "order_id": _as_str(payload.get("order_id") or payload.get("orderId")),
                "email": payload.get("email"),
            }
        return data


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class OrganicQuery(BaseModel):
    """Search-console style row for one organic query."""
    account_id: str
    query: str
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0                # percent
    position: float = 0.0


class PaidKeyword(BaseModel):
    """Paid search keyword or search term with window totals."""
    account_id: str
    keyword: str
    campaign_name: Optional[str] = None
    match_type: Optional[str] = None
    clicks: int = 0
    impressions: int = 0
    spend: float = 0.0
    conversions: float = 0.0
    conversion_value: float = 0.0
    is_active: bool = True

    @property
    def cpc(self) -> float:
        return safe_divide(self.spend, self.clicks)

    @property
    def ctr(self) -> float:
        return safe_divide(self.clicks, self.impressions) * 100

    @property
    def roas(self) -> float:
        return safe_divide(self.conversion_value, self.spend)
