"""Metrics wrapper around an upstream client."""

import time
from typing import List, Optional

from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.services.data.base import DelegationSource
from tezos_indexer.services.data.response_models import TzktDelegation


class TelemetryDelegationSource(DelegationSource):
    """Times every upstream call and records it under the wrapped impl tag.

    Without a metrics sink every method is a direct call.
    """

    def __init__(self, source: DelegationSource, metrics: Optional[MetricsAdapter]):
        self.source = source
        self.metrics = metrics
        self.impl = source.impl

    def _record(self, endpoint: str, start: float, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_tzkt_api_request(
                endpoint, self.impl, time.monotonic() - start, success
            )

    async def fetch_page(self, limit: int, offset: int) -> List[TzktDelegation]:
        start = time.monotonic()
        success = False
        try:
            result = await self.source.fetch_page(limit, offset)
            success = True
            return result
        finally:
            self._record("delegations", start, success)

    async def fetch_above_level(self, level: int, limit: int) -> List[TzktDelegation]:
        start = time.monotonic()
        success = False
        try:
            result = await self.source.fetch_above_level(level, limit)
            success = True
            return result
        finally:
            self._record("delegations_from_level", start, success)

    async def close(self) -> None:
        await self.source.close()
