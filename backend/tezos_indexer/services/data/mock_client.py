"""In-memory upstream used for ``tzktapi.impl: mock`` and in tests."""

import asyncio
from typing import Iterable, List, Optional, Tuple

from tezos_indexer.services.data.base import MAX_PAGE_LIMIT, DelegationSource
from tezos_indexer.services.data.response_models import TzktDelegation


class MockTzktClient(DelegationSource):
    """Serves delegations from a list, with the same paging rules as TzKT.

    ``calls`` records every request as ``(method, arg, limit)`` and
    ``fail_with`` makes the next request raise the given error.
    """

    impl = "mock"

    def __init__(self, delegations: Optional[Iterable[TzktDelegation]] = None):
        self._delegations: List[TzktDelegation] = []
        self.calls: List[Tuple[str, int, int]] = []
        self.fail_with: Optional[BaseException] = None
        self.closed = False
        if delegations:
            self.add(delegations)

    def add(self, delegations: Iterable[TzktDelegation]) -> None:
        """Append delegations; ids already present are replaced."""
        by_id = {d.id: d for d in self._delegations}
        for d in delegations:
            by_id[d.id] = d
        self._delegations = sorted(by_id.values(), key=lambda d: d.id)

    def _raise_pending(self) -> None:
        if self.fail_with is not None:
            exc, self.fail_with = self.fail_with, None
            raise exc

    async def fetch_page(self, limit: int, offset: int) -> List[TzktDelegation]:
        if not 1 <= limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}, got {limit}")
        self.calls.append(("fetch_page", offset, limit))
        await asyncio.sleep(0)
        self._raise_pending()
        return list(self._delegations[offset:offset + limit])

    async def fetch_above_level(self, level: int, limit: int) -> List[TzktDelegation]:
        if not 1 <= limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}, got {limit}")
        self.calls.append(("fetch_above_level", level, limit))
        await asyncio.sleep(0)
        self._raise_pending()
        return [d for d in self._delegations if d.level > level][:limit]

    async def close(self) -> None:
        self.closed = True
