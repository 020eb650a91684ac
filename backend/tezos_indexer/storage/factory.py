"""Build the store for ``database.impl``."""

from typing import Optional

import structlog

from tezos_indexer.core.config import DatabaseImpl, DatabaseSettings
from tezos_indexer.core.errors import ConfigError
from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.storage.base import DelegationStore
from tezos_indexer.storage.memory import MemoryDelegationStore
from tezos_indexer.storage.sql import SqlDelegationStore
from tezos_indexer.storage.telemetry import TelemetryDelegationStore

logger = structlog.get_logger()


def create_store(
    settings: DatabaseSettings, metrics: Optional[MetricsAdapter] = None
) -> DelegationStore:
    """Create the configured store wrapped with telemetry."""
    if settings.impl == DatabaseImpl.PSQL:
        store: DelegationStore = SqlDelegationStore.from_settings(settings)
        logger.info(
            "Database store initialized",
            impl=store.impl,
            host=settings.psql.host if not settings.url else None,
            dbname=settings.psql.dbname if not settings.url else None,
        )
    elif settings.impl == DatabaseImpl.MEMORY:
        store = MemoryDelegationStore()
        logger.info("Database store initialized", impl=store.impl)
    else:
        raise ConfigError(f"unsupported database implementation: {settings.impl!r}")

    return TelemetryDelegationStore(store, metrics)
