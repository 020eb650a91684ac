"""Delegations read endpoint."""

import hashlib
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from tezos_indexer.api.deps import get_app_settings, get_metrics, get_store
from tezos_indexer.core.config import Settings
from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.schemas.common import ErrorResponse
from tezos_indexer.schemas.delegation import DelegationsResponse
from tezos_indexer.services.query.get_delegations import (
    DelegationsQuery,
    GetDelegationsUseCase,
    parse_delegations_query,
)
from tezos_indexer.storage.base import DelegationStore

router = APIRouter()

CACHE_MAX_AGE_YEAR = 3600
CACHE_MAX_AGE_DEFAULT = 300


def compute_etag(body: bytes, query: DelegationsQuery) -> str:
    """Strong ETag over the body, salted with the pagination parameters."""
    hasher = hashlib.sha256()
    hasher.update(body)
    hasher.update(f"page:{query.page}".encode())
    hasher.update(f"limit:{query.limit}".encode())
    if query.year is not None:
        hasher.update(f"year:{query.year}".encode())
    if query.delegator:
        hasher.update(f"delegator:{query.delegator}".encode())
    return f'"{hasher.hexdigest()}"'


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    """Weak comparison of an If-None-Match list against the current ETag."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


@router.get(
    "/delegations",
    response_model=DelegationsResponse,
    responses={
        304: {"description": "Not Modified"},
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def get_delegations(
    request: Request,
    page: Optional[str] = Query(default=None, description="Page number, starting at 1"),
    limit: Optional[str] = Query(default=None, description="Page size, 1 to 100"),
    year: Optional[str] = Query(default=None, description="Four-digit year filter"),
    delegator: Optional[str] = Query(default=None, description="Sender wallet address"),
    settings: Settings = Depends(get_app_settings),
    store: DelegationStore = Depends(get_store),
    metrics: MetricsAdapter = Depends(get_metrics),
) -> Response:
    """List delegations, newest first.

    Parameters are validated here rather than by FastAPI so every bad value
    maps to a 400 ``{"error": ...}`` body.
    """
    query = parse_delegations_query(
        page, limit, year, delegator, default_limit=settings.pagination.limit
    )
    result = await GetDelegationsUseCase(store, metrics).execute(query)

    body = result.model_dump_json().encode()
    pagination = result.pagination
    etag = compute_etag(body, query)

    max_age = CACHE_MAX_AGE_YEAR if query.year is not None else CACHE_MAX_AGE_DEFAULT
    headers = {
        "Cache-Control": f"public, max-age={max_age}",
        "ETag": etag,
        "X-Page-Current": str(pagination.current_page),
        "X-Page-Per-Page": str(pagination.per_page),
    }
    if pagination.has_prev_page:
        headers["X-Page-Prev"] = str(pagination.prev_page)
    if pagination.has_next_page:
        headers["X-Page-Next"] = str(pagination.next_page)

    if etag_matches(request.headers.get("if-none-match"), etag):
        return Response(status_code=304, headers=headers)

    return Response(content=body, media_type="application/json", headers=headers)
