"""Pool source protocol: discovery and metrics abstraction."""
from typing import Protocol

from ..models import PoolRecord, PoolSnapshot


class PoolSource(Protocol):
    """Abstract interface for discovering pools and fetching fresh metrics."""

    @property
    def name(self) -> str: ...

    async def fetch_pools(self) -> list[PoolRecord]: ...

    def validate(self, pool: PoolRecord) -> bool: ...

    async def fetch_metrics(self, pool_id: str) -> PoolSnapshot | None: ...
