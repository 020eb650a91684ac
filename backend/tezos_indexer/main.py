"""FastAPI application factory.

One factory serves the three deployment shapes:

- ``api``: the read API over the store
- ``job``: the poller, with health and metrics endpoints only
- ``service``: both in one process
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tezos_indexer import __version__
from tezos_indexer.api import ops_router, query_router
from tezos_indexer.core.config import Settings, get_settings
from tezos_indexer.core.errors import (
    ConfigError,
    ParameterValidationError,
    StartupError,
    StoreError,
)
from tezos_indexer.core.health import HealthState
from tezos_indexer.core.logging import bind_context, clear_context
from tezos_indexer.core.metrics import create_metrics
from tezos_indexer.core.scheduler import DelegationPoller
from tezos_indexer.services.data.factory import create_delegation_source
from tezos_indexer.services.sync.delegation_sync import DelegationSyncService
from tezos_indexer.storage.factory import create_store

logger = structlog.get_logger()

ROLE_API = "api"
ROLE_JOB = "job"
ROLE_SERVICE = "service"
ROLES = (ROLE_API, ROLE_JOB, ROLE_SERVICE)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(role: str = ROLE_SERVICE, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app for ``role``; nothing connects until the lifespan starts."""
    if role not in ROLES:
        raise ValueError(f"unknown role {role!r}, expected one of {', '.join(ROLES)}")
    settings = settings or get_settings()
    runs_poller = role in (ROLE_JOB, ROLE_SERVICE)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        logger.info("Starting Tezos delegation indexer", role=role, version=__version__)
        health: HealthState = app.state.health

        store = create_store(settings.database, app.state.metrics)
        try:
            await store.ping()
        except StoreError as e:
            await store.close()
            raise StartupError(f"database unreachable: {e}") from e
        app.state.store = store
        logger.info("Database connected", impl=store.impl)

        source = None
        poller = None
        if runs_poller:
            try:
                source = create_delegation_source(settings.tzktapi, app.state.metrics)
            except ConfigError:
                await store.close()
                raise
            sync_service = DelegationSyncService(source, store, app.state.metrics)
            poller = DelegationPoller(
                sync_service,
                polling_interval=settings.tzktapi.polling_interval,
                shutdown_timeout=settings.shutdown_timeout,
            )
            app.state.poller = poller
            poller.start()

        health.set_ready(True)
        logger.info("Service ready", role=role)

        try:
            yield
        finally:
            # Shutdown
            logger.info("Shutting down...")
            health.start_shutdown()
            if poller is not None:
                await poller.stop()
            if source is not None:
                await source.close()
            await store.close()
            logger.info("Cleanup complete")

    app = FastAPI(
        title="Tezos Delegation Indexer API",
        description="Indexes Tezos delegation operations from TzKT and serves them paginated",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs" if role != ROLE_JOB else None,
        redoc_url="/api/redoc" if role != ROLE_JOB else None,
    )

    app.state.settings = settings
    app.state.role = role
    app.state.health = HealthState()
    app.state.metrics = create_metrics(settings.metrics.impl)
    app.state.poller = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Accept-Encoding", REQUEST_ID_HEADER],
        expose_headers=[
            "ETag",
            REQUEST_ID_HEADER,
            "X-Page-Current",
            "X-Page-Per-Page",
            "X-Page-Prev",
            "X-Page-Next",
        ],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Propagate X-Request-ID and record request metrics."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        bind_context(request_id=request_id)
        start = time.monotonic()
        try:
            try:
                response = await call_next(request)
            except Exception as e:
                logger.exception("Unhandled error", path=request.url.path, error=str(e))
                response = JSONResponse(status_code=500, content={"error": "internal server error"})

            route = request.scope.get("route")
            path = getattr(route, "path", request.url.path)
            response.headers[REQUEST_ID_HEADER] = request_id
            request.app.state.metrics.record_api_request(
                request.method,
                path,
                response.status_code,
                time.monotonic() - start,
                int(response.headers.get("content-length", 0)),
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(ParameterValidationError)
    async def validation_error_handler(request: Request, exc: ParameterValidationError):
        logger.debug("Invalid request parameter", parameter=exc.parameter, error=str(exc))
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("Store error", operation=exc.operation, path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "internal server error"})

    if role != ROLE_JOB:
        app.include_router(query_router)
    app.include_router(ops_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Tezos Delegation Indexer",
            "version": __version__,
            "role": role,
            "health": "/health",
        }

    return app
