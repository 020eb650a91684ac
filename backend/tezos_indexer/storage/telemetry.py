"""Metrics wrapper around a store."""

import time
from typing import Awaitable, List, Optional, Sequence, Tuple, TypeVar

from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.schemas.delegation import AccountRecord, DelegationRecord
from tezos_indexer.storage.base import DelegationStore

T = TypeVar("T")

SYNC_TYPE_REPOSITORY = "repository"


class TelemetryDelegationStore(DelegationStore):
    """Records duration and outcome of every store call.

    A successful ``save_delegations`` also feeds the business counters with
    the batch size and its total amount in tez.
    """

    def __init__(self, store: DelegationStore, metrics: Optional[MetricsAdapter]):
        self.store = store
        self.metrics = metrics
        self.impl = store.impl

    async def _observe(self, operation: str, call: Awaitable[T]) -> T:
        if self.metrics is None:
            return await call
        start = time.monotonic()
        error: Optional[Exception] = None
        try:
            return await call
        except Exception as e:
            error = e
            raise
        finally:
            self.metrics.record_repository_operation(
                operation, self.impl, time.monotonic() - start, error
            )

    async def ping(self) -> None:
        await self._observe("ping", self.store.ping())

    async def save_delegations(self, batch: Sequence[DelegationRecord]) -> None:
        await self._observe("save_delegations", self.store.save_delegations(batch))
        if self.metrics is not None:
            amount = float(sum(d.amount_tez for d in batch))
            self.metrics.record_delegations_sync(SYNC_TYPE_REPOSITORY, len(batch), amount)

    async def save_accounts(self, accounts: Sequence[AccountRecord]) -> None:
        await self._observe("save_accounts", self.store.save_accounts(accounts))

    async def get_highest_block_level(self) -> int:
        return await self._observe("get_highest_block_level", self.store.get_highest_block_level())

    async def list_delegations(
        self,
        page: int,
        limit: int,
        year: Optional[int] = None,
        delegator: Optional[str] = None,
    ) -> Tuple[List[DelegationRecord], int]:
        return await self._observe(
            "list_delegations", self.store.list_delegations(page, limit, year, delegator)
        )

    async def count_delegations(
        self, year: Optional[int] = None, delegator: Optional[str] = None
    ) -> int:
        return await self._observe("count_delegations", self.store.count_delegations(year, delegator))

    async def close(self) -> None:
        await self.store.close()
