"""Request dependencies backed by ``app.state``.

``create_app`` stores the process components on ``app.state``; routes reach
them through these functions so tests can swap them with
``app.dependency_overrides``.
"""

from typing import Optional

from fastapi import Request

from tezos_indexer.core.config import Settings
from tezos_indexer.core.health import HealthState
from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.core.scheduler import DelegationPoller
from tezos_indexer.storage.base import DelegationStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DelegationStore:
    return request.app.state.store


def get_metrics(request: Request) -> MetricsAdapter:
    return request.app.state.metrics


def get_health(request: Request) -> HealthState:
    return request.app.state.health


def get_poller(request: Request) -> Optional[DelegationPoller]:
    return getattr(request.app.state, "poller", None)
