"""Upstream client interface."""

from abc import ABC, abstractmethod
from typing import List

from tezos_indexer.services.data.response_models import TzktDelegation

MAX_PAGE_LIMIT = 10_000


class DelegationSource(ABC):
    """Read access to the upstream delegations endpoint."""

    impl: str = "unknown"

    @abstractmethod
    async def fetch_page(self, limit: int, offset: int) -> List[TzktDelegation]:
        """Delegations ordered by ascending id, starting at ``offset``."""

    @abstractmethod
    async def fetch_above_level(self, level: int, limit: int) -> List[TzktDelegation]:
        """Delegations with a block level strictly above ``level``."""

    async def close(self) -> None:
        pass
