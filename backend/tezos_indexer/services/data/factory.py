"""Build the upstream client for ``tzktapi.impl``."""

from typing import Optional

import structlog

from tezos_indexer.core.config import TzktImpl, TzktSettings
from tezos_indexer.core.errors import ConfigError
from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.services.data.base import DelegationSource
from tezos_indexer.services.data.mock_client import MockTzktClient
from tezos_indexer.services.data.telemetry import TelemetryDelegationSource
from tezos_indexer.services.data.tzkt_client import TzktClient

logger = structlog.get_logger()


def create_delegation_source(
    settings: TzktSettings, metrics: Optional[MetricsAdapter] = None
) -> DelegationSource:
    """Create the configured upstream client wrapped with telemetry."""
    if settings.impl == TzktImpl.API:
        try:
            source: DelegationSource = TzktClient.from_settings(settings.api)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    elif settings.impl == TzktImpl.MOCK:
        source = MockTzktClient()
    else:
        raise ConfigError(f"unsupported tzktapi implementation: {settings.impl!r}")

    logger.info(
        "TzKT client initialized",
        impl=source.impl,
        url=settings.api.url if settings.impl == TzktImpl.API else None,
    )
    return TelemetryDelegationSource(source, metrics)
