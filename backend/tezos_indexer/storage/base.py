"""Store interface and shared helpers."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from tezos_indexer.schemas.delegation import AccountRecord, DelegationRecord


def year_bounds(year: int) -> Tuple[int, int]:
    """Unix-second bounds ``[year-01-01, (year+1)-01-01)`` in UTC."""
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return int(start.timestamp()), int(end.timestamp())


class DelegationStore(ABC):
    """Durable, idempotent persistence of delegations keyed by upstream id."""

    impl: str = "unknown"

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreError when the store cannot be reached."""

    @abstractmethod
    async def save_delegations(self, batch: Sequence[DelegationRecord]) -> None:
        """Insert a batch in one transaction; existing upstream ids are ignored."""

    @abstractmethod
    async def save_accounts(self, accounts: Sequence[AccountRecord]) -> None:
        """Insert accounts in one transaction; existing addresses are ignored."""

    @abstractmethod
    async def get_highest_block_level(self) -> int:
        """Maximum stored block level, 0 when empty."""

    @abstractmethod
    async def list_delegations(
        self,
        page: int,
        limit: int,
        year: Optional[int] = None,
        delegator: Optional[str] = None,
    ) -> Tuple[List[DelegationRecord], int]:
        """One page ordered by timestamp descending, plus the filtered total."""

    @abstractmethod
    async def count_delegations(
        self, year: Optional[int] = None, delegator: Optional[str] = None
    ) -> int:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources. Safe to call more than once."""
