"""Account data sources for the recommendation core"""

from marketing_copilot.connectors.base import AccountDataSource
from marketing_copilot.connectors.memory import InMemoryDataSource

__all__ = [
    "AccountDataSource",
    "InMemoryDataSource",
]
