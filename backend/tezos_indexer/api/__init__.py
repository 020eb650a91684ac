"""API routers."""

from fastapi import APIRouter

from tezos_indexer.api import delegations, health, metrics

# Served by the api and service roles
query_router = APIRouter()
query_router.include_router(delegations.router, prefix="/xtz", tags=["Delegations"])

# Served by every role
ops_router = APIRouter()
ops_router.include_router(health.router, tags=["Health"])
ops_router.include_router(metrics.router, tags=["Metrics"])
