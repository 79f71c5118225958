"""
In-memory data source.

Holds already-exported account data (for example JSON dumps from the
ingestion pipeline) and serves it through the AccountDataSource interface.
Raw dicts are validated into typed records on construction, so malformed
input fails here with a pydantic ValidationError.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from marketing_copilot.connectors.base import AccountDataSource
from marketing_copilot.models.records import (
    AnalyticsEvent,
    CampaignSnapshot,
    Customer,
    Order,
    OrganicQuery,
    PaidKeyword,
    Product,
)
from marketing_copilot.utils.logger import log


def _validate(model, rows: Optional[Iterable[Any]]) -> list:
    return [row if isinstance(row, model) else model.model_validate(row) for row in (rows or [])]


def _in_window(value: Optional[datetime], start: Optional[datetime], end: Optional[datetime]) -> bool:
    if value is None:
        return True
    if start and value < start:
        return False
    if end and value >= end:
        return False
    return True


class InMemoryDataSource(AccountDataSource):
    def __init__(
        self,
        snapshots: Optional[Iterable[Any]] = None,
        orders: Optional[Iterable[Any]] = None,
        customers: Optional[Iterable[Any]] = None,
        products: Optional[Iterable[Any]] = None,
        events: Optional[Iterable[Any]] = None,
        organic_queries: Optional[Iterable[Any]] = None,
        paid_keywords: Optional[Iterable[Any]] = None,
        advertised_product_ids: Optional[Dict[str, Iterable[str]]] = None,
    ):
        self.snapshots: List[CampaignSnapshot] = _validate(CampaignSnapshot, snapshots)
        self.orders: List[Order] = _validate(Order, orders)
        self.customers: List[Customer] = _validate(Customer, customers)
        self.products: List[Product] = _validate(Product, products)
        self.events: List[AnalyticsEvent] = _validate(AnalyticsEvent, events)
        self.organic_queries: List[OrganicQuery] = _validate(OrganicQuery, organic_queries)
        self.paid_keywords: List[PaidKeyword] = _validate(PaidKeyword, paid_keywords)
        self.advertised_product_ids = {
            account: set(ids) for account, ids in (advertised_product_ids or {}).items()
        }
        log.debug(
            f"InMemoryDataSource loaded {len(self.snapshots)} snapshots, "
            f"{len(self.orders)} orders, {len(self.events)} events"
        )

    async def get_campaign_snapshots(self, account_id, platform=None, start_date=None, end_date=None):
        rows = []
        for snap in self.snapshots:
            if snap.account_id != account_id:
                continue
            if platform and snap.platform != platform:
                continue
            day = datetime.combine(snap.day, datetime.min.time()) if snap.day else None
            if not _in_window(day, start_date, end_date):
                continue
            rows.append(snap)
        return rows

    async def get_orders(self, account_id, start_date=None, end_date=None):
        return [
            o for o in self.orders
            if o.account_id == account_id and _in_window(o.created_at, start_date, end_date)
        ]

    async def get_customers(self, account_id):
        return [c for c in self.customers if c.account_id == account_id]

    async def get_products(self, account_id):
        return [p for p in self.products if p.account_id == account_id]

    async def get_analytics_events(self, account_id, event_types=None, start_date=None, end_date=None):
        return [
            e for e in self.events
            if e.account_id == account_id
            and (not event_types or e.event_type in event_types)
            and _in_window(e.occurred_at, start_date, end_date)
        ]

    async def get_organic_queries(self, account_id):
        return [q for q in self.organic_queries if q.account_id == account_id]

    async def get_paid_keywords(self, account_id):
        return [k for k in self.paid_keywords if k.account_id == account_id]

    async def get_advertised_product_ids(self, account_id) -> Set[str]:
        return set(self.advertised_product_ids.get(account_id, set()))
