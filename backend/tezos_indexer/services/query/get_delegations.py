"""Get-delegations use case: parameter parsing, store read, pagination."""

import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from tezos_indexer.core.errors import ParameterValidationError
from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.schemas.common import PaginationInfo
from tezos_indexer.schemas.delegation import (
    DelegationOut,
    DelegationsResponse,
    is_valid_wallet_address,
)
from tezos_indexer.storage.base import DelegationStore

logger = structlog.get_logger(usecase="get_delegations")

MAX_LIMIT = 100
# Row offsets are signed 64-bit in the store
MAX_OFFSET = 2**63 - 1

_YEAR = re.compile(r"^\d{4}$")


@dataclass(frozen=True)
class DelegationsQuery:
    """Validated query parameters."""
    page: int
    limit: int
    year: Optional[int] = None
    delegator: Optional[str] = None


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ParameterValidationError(name, f"invalid {name}: {raw!r} is not a number") from e


def parse_delegations_query(
    page: Optional[str],
    limit: Optional[str],
    year: Optional[str],
    delegator: Optional[str],
    default_limit: int,
    current_year: Optional[int] = None,
) -> DelegationsQuery:
    """Validate raw query-string values.

    Raises:
        ParameterValidationError: page < 1 or past the largest row offset,
            limit outside 1..100, a year that is not four digits or lies in
            the future, or a malformed delegator address
    """
    page_num = 1
    if page not in (None, ""):
        page_num = _parse_int("page", page)
        if page_num < 1:
            raise ParameterValidationError("page", "page must be a positive number")

    limit_num = default_limit
    if limit not in (None, ""):
        limit_num = _parse_int("limit", limit)
    if not 1 <= limit_num <= MAX_LIMIT:
        raise ParameterValidationError(
            "limit", f"limit must be between 1 and {MAX_LIMIT}, got {limit_num}"
        )
    if (page_num - 1) * limit_num > MAX_OFFSET:
        raise ParameterValidationError("page", f"page {page_num} is out of range")

    year_num = None
    if year not in (None, ""):
        if not _YEAR.match(year.strip()):
            raise ParameterValidationError("year", "year must be a four-digit number")
        year_num = int(year)
        if year_num <= 0:
            raise ParameterValidationError("year", "year must be a positive number")
        if current_year is None:
            current_year = datetime.now(timezone.utc).year
        if year_num > current_year:
            raise ParameterValidationError("year", "year cannot exceed the current year")

    if not delegator:
        delegator = None
    elif not is_valid_wallet_address(delegator):
        raise ParameterValidationError("delegator", f"invalid wallet address: {delegator}")

    return DelegationsQuery(page=page_num, limit=limit_num, year=year_num, delegator=delegator)


class GetDelegationsUseCase:
    """Reads one page of delegations, newest first."""

    def __init__(self, store: DelegationStore, metrics: Optional[MetricsAdapter] = None):
        self.store = store
        self.metrics = metrics

    async def execute(self, query: DelegationsQuery) -> DelegationsResponse:
        """Run the query, recorded as the ``GetDelegations`` service operation."""
        start = time.monotonic()
        error: Optional[Exception] = None
        try:
            response = await self._execute(query)
        except Exception as e:
            error = e
            raise
        finally:
            if self.metrics is not None:
                self.metrics.record_service_operation(
                    "GetDelegations", "UseCase", time.monotonic() - start, error
                )

        if self.metrics is not None:
            self.metrics.record_delegations_fetched(len(response.data))
        return response

    async def _execute(self, query: DelegationsQuery) -> DelegationsResponse:
        records, total = await self.store.list_delegations(
            query.page, query.limit, year=query.year, delegator=query.delegator
        )
        logger.debug(
            "Delegations fetched",
            page=query.page,
            limit=query.limit,
            year=query.year,
            count=len(records),
            total=total,
        )
        return DelegationsResponse(
            data=[DelegationOut.from_record(r) for r in records],
            pagination=PaginationInfo.build(query.page, query.limit, total),
        )
