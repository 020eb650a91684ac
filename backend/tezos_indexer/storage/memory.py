"""In-memory store for ``database.impl: memory`` and tests."""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from tezos_indexer.core.errors import StoreError
from tezos_indexer.schemas.delegation import AccountRecord, DelegationRecord
from tezos_indexer.storage.base import DelegationStore, year_bounds


class MemoryDelegationStore(DelegationStore):
    """Keeps delegations keyed by upstream id and accounts keyed by address.

    Writes never await, so a batch is applied atomically with respect to
    other tasks on the same loop.
    """

    impl = "memory"

    def __init__(self):
        self.delegations: Dict[int, DelegationRecord] = {}
        self.accounts: Dict[str, AccountRecord] = {}
        self.closed = False

    def _check_open(self, operation: str) -> None:
        if self.closed:
            raise StoreError(operation, "store is closed")

    async def ping(self) -> None:
        self._check_open("ping")

    async def save_delegations(self, batch: Sequence[DelegationRecord]) -> None:
        self._check_open("save_delegations")
        now = datetime.now(timezone.utc)
        for d in batch:
            if d.upstream_id not in self.delegations:
                self.delegations[d.upstream_id] = d.model_copy(update={"created_at": now})

    async def save_accounts(self, accounts: Sequence[AccountRecord]) -> None:
        self._check_open("save_accounts")
        for a in accounts:
            self.accounts.setdefault(a.address, a)

    async def get_highest_block_level(self) -> int:
        self._check_open("get_highest_block_level")
        return max((d.block_level for d in self.delegations.values()), default=0)

    def _filtered(self, year: Optional[int], delegator: Optional[str]) -> List[DelegationRecord]:
        rows = list(self.delegations.values())
        if year is not None:
            start, end = year_bounds(year)
            rows = [d for d in rows if start <= d.unix_timestamp < end]
        if delegator:
            rows = [d for d in rows if d.delegator == delegator]
        return rows

    async def list_delegations(
        self,
        page: int,
        limit: int,
        year: Optional[int] = None,
        delegator: Optional[str] = None,
    ) -> Tuple[List[DelegationRecord], int]:
        self._check_open("list_delegations")
        rows = self._filtered(year, delegator)
        rows.sort(key=lambda d: (d.unix_timestamp, d.upstream_id), reverse=True)
        offset = (page - 1) * limit
        return rows[offset:offset + limit], len(rows)

    async def count_delegations(
        self, year: Optional[int] = None, delegator: Optional[str] = None
    ) -> int:
        self._check_open("count_delegations")
        return len(self._filtered(year, delegator))

    async def close(self) -> None:
        self.closed = True
