"""
Account Data Source

Analyzers and the recommendation engine read account history only through
this interface. Implementations own fetching, normalisation and timeouts;
everything they return is already validated into typed records.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Set

from marketing_copilot.models.records import (
    AnalyticsEvent,
    CampaignSnapshot,
    Customer,
    Order,
    OrganicQuery,
    PaidKeyword,
    Product,
)


class AccountDataSource(ABC):
    """
    Base class for all account data sources

    Every method is async and scoped to one account. A method that cannot
    reach its backing store should raise; the analyzer harness turns that
    into an empty result for the analyzer that asked.
    """

    @abstractmethod
    async def get_campaign_snapshots(
        self,
        account_id: str,
        platform: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[CampaignSnapshot]:
        """
        Get campaign metric snapshots

        Args:
            account_id: Account to read
            platform: 'google' or 'meta' (None for all)
            start_date: Inclusive window start
            end_date: Exclusive window end

        Returns:
            Daily (or pre-aggregated) snapshots
        """
        pass

    @abstractmethod
    async def get_orders(self, account_id: str, start_date: Optional[datetime] = None,
                         end_date: Optional[datetime] = None) -> List[Order]:
        pass

    @abstractmethod
    async def get_customers(self, account_id: str) -> List[Customer]:
        pass

    @abstractmethod
    async def get_products(self, account_id: str) -> List[Product]:
        pass

    @abstractmethod
    async def get_analytics_events(
        self,
        account_id: str,
        event_types: Optional[List[str]] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[AnalyticsEvent]:
        pass

    @abstractmethod
    async def get_organic_queries(self, account_id: str) -> List[OrganicQuery]:
        pass

    @abstractmethod
    async def get_paid_keywords(self, account_id: str) -> List[PaidKeyword]:
        pass

    @abstractmethod
    async def get_advertised_product_ids(self, account_id: str) -> Set[str]:
        """
        Get ids and SKUs of products currently in paid campaigns

        Returns:
            Set of product ids / SKUs (either form may match)
        """
        pass
