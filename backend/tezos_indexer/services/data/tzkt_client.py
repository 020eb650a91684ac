"""TzKT API client.

API Reference: https://api.tzkt.io
Base URL: https://api.tzkt.io (public, no authentication)

Only the delegations endpoint is used:
- ``/v1/operations/delegations?limit=&offset=&sort.asc=id`` for offset pages
- ``/v1/operations/delegations?level.gt=&limit=`` for the incremental tail

A failed call is never retried here; the sync cycle aborts and the next poll
tick starts over from the stored watermark.
"""

import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from tezos_indexer.core.config import TzktApiSettings
from tezos_indexer.core.errors import (
    UPSTREAM_EOF,
    TzktDecodeError,
    TzktStatusError,
    TzktTransportError,
)
from tezos_indexer.services.data.base import MAX_PAGE_LIMIT, DelegationSource
from tezos_indexer.services.data.response_models import DelegationList, TzktDelegation

logger = structlog.get_logger()

DELEGATIONS_ENDPOINT = "/v1/operations/delegations"


def _check_limit(limit: int) -> None:
    if not 1 <= limit <= MAX_PAGE_LIMIT:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}, got {limit}")


class TzktClient(DelegationSource):
    """Async client for the TzKT delegations endpoint.

    One ``httpx.AsyncClient`` is kept for the lifetime of the process so
    connections are pooled between poll cycles. Cancelling the awaiting task
    aborts the in-flight request.
    """

    impl = "api"

    def __init__(
        self,
        base_url: str,
        timeout: timedelta = timedelta(seconds=30),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("TzKT API URL is required")
        self.base_url = base_url.rstrip("/")
        seconds = timeout.total_seconds() or 30.0
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(seconds),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: TzktApiSettings) -> "TzktClient":
        return cls(settings.url, timeout=settings.timeout)

    async def _get_delegations(self, params: Dict[str, Any]) -> List[TzktDelegation]:
        """GET the delegations endpoint and decode the JSON array.

        Raises:
            TzktTransportError: connection failure or timeout
            TzktStatusError: any status other than 200
            TzktDecodeError: malformed body; an empty body decodes to the
                ``EOF`` end-of-data sentinel
        """
        start_time = time.monotonic()
        logger.debug("TzKT request", endpoint=DELEGATIONS_ENDPOINT, params=params)

        try:
            response = await self._client.get(DELEGATIONS_ENDPOINT, params=params)
        except httpx.HTTPError as e:
            raise TzktTransportError(
                f"error fetching delegations: {e}", endpoint=DELEGATIONS_ENDPOINT
            ) from e

        latency_ms = (time.monotonic() - start_time) * 1000

        if response.status_code != 200:
            body = response.text[:500]
            logger.error(
                "TzKT API error",
                status=response.status_code,
                endpoint=DELEGATIONS_ENDPOINT,
                body=body,
            )
            raise TzktStatusError(
                f"unexpected status code: {response.status_code}",
                status_code=response.status_code,
                endpoint=DELEGATIONS_ENDPOINT,
            )

        if not response.content.strip():
            raise TzktDecodeError(UPSTREAM_EOF, status_code=200, endpoint=DELEGATIONS_ENDPOINT)

        try:
            delegations = DelegationList.validate_json(response.content)
        except ValidationError as e:
            raise TzktDecodeError(
                f"error decoding response: {e}", status_code=200, endpoint=DELEGATIONS_ENDPOINT
            ) from e

        logger.debug(
            "TzKT response",
            endpoint=DELEGATIONS_ENDPOINT,
            count=len(delegations),
            latency_ms=round(latency_ms, 1),
        )
        return delegations

    async def fetch_page(self, limit: int, offset: int) -> List[TzktDelegation]:
        _check_limit(limit)
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        return await self._get_delegations(
            {"limit": limit, "offset": offset, "sort.asc": "id"}
        )

    async def fetch_above_level(self, level: int, limit: int) -> List[TzktDelegation]:
        _check_limit(limit)
        return await self._get_delegations({"level.gt": level, "limit": limit})

    async def close(self) -> None:
        await self._client.aclose()
