"""Health check endpoints: liveness, readiness and a diagnostic summary."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tezos_indexer.api.deps import get_health, get_poller, get_store
from tezos_indexer.core.errors import StoreError
from tezos_indexer.core.health import HealthState
from tezos_indexer.core.scheduler import DelegationPoller
from tezos_indexer.schemas.common import HealthResponse, ProbeResponse, SyncStatus
from tezos_indexer.storage.base import DelegationStore

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _probe(status_code: int, probe: ProbeResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=probe.model_dump(exclude_none=True),
        headers=NO_CACHE_HEADERS,
    )


@router.get("/health/live", response_model=ProbeResponse)
async def liveness(health: HealthState = Depends(get_health)) -> JSONResponse:
    """200 while the process runs, 503 once shutdown has started."""
    uptime = round(health.uptime_seconds, 3)
    if health.is_shutting_down:
        return _probe(
            503,
            ProbeResponse(
                status="shutting_down",
                message="Service is shutting down",
                uptime_seconds=uptime,
            ),
        )
    return _probe(200, ProbeResponse(status="alive", uptime_seconds=uptime))


@router.get("/health/ready", response_model=ProbeResponse)
async def readiness(
    health: HealthState = Depends(get_health),
    store: DelegationStore = Depends(get_store),
) -> JSONResponse:
    """200 only when started, not shutting down, and the store answers."""
    if not health.is_ready:
        if health.is_shutting_down:
            return _probe(
                503, ProbeResponse(status="shutting_down", message="Service is shutting down")
            )
        return _probe(503, ProbeResponse(status="not_ready", message="Service is starting up"))

    try:
        await store.ping()
    except StoreError as e:
        return _probe(
            503,
            ProbeResponse(
                status="database_error",
                message="Database connection failed",
                error=str(e),
            ),
        )

    return _probe(200, ProbeResponse(status="ready"))


@router.get("/health", response_model=HealthResponse)
async def health_check(
    health: HealthState = Depends(get_health),
    store: DelegationStore = Depends(get_store),
    poller: Optional[DelegationPoller] = Depends(get_poller),
) -> JSONResponse:
    """Overall status; always 200, ``degraded`` when not fully serving."""
    try:
        await store.ping()
        db_status = "ok"
    except StoreError:
        db_status = "error"

    ready = health.is_ready
    shutting_down = health.is_shutting_down

    response = HealthResponse(
        status="ok" if ready and not shutting_down and db_status == "ok" else "degraded",
        uptime_seconds=round(health.uptime_seconds, 3),
        database=db_status,
        ready=ready,
        shutdown=shutting_down,
        last_sync=SyncStatus(**poller.last_sync) if poller is not None else None,
    )
    return JSONResponse(
        content=response.model_dump(exclude_none=True),
        headers=NO_CACHE_HEADERS,
    )
