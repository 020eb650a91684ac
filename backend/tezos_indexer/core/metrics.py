"""Metrics adapters for observability.

Every component records through a ``MetricsAdapter``. The prometheus
implementation owns its own registry so several apps (and tests) can live in
one process without duplicate-collector errors.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from tezos_indexer.core.config import MetricsImpl
from tezos_indexer.core.errors import ConfigError

logger = structlog.get_logger()

PLAIN_TEXT = "text/plain; charset=utf-8"


class MetricsAdapter(ABC):
    """Sink for request, storage, upstream and business metrics."""

    @abstractmethod
    def record_api_request(
        self, method: str, path: str, status: int, duration: float, response_size: int
    ) -> None:
        ...

    @abstractmethod
    def record_repository_operation(
        self, operation: str, impl: str, duration: float, error: Optional[BaseException]
    ) -> None:
        ...

    @abstractmethod
    def record_service_operation(
        self, operation: str, service_type: str, duration: float, error: Optional[BaseException]
    ) -> None:
        ...

    @abstractmethod
    def record_tzkt_api_request(
        self, endpoint: str, impl: str, duration: float, success: bool
    ) -> None:
        ...

    @abstractmethod
    def record_delegations_sync(self, sync_type: str, count: int, amount: float) -> None:
        ...

    @abstractmethod
    def record_delegations_fetched(self, count: int) -> None:
        ...

    @abstractmethod
    def render(self) -> Tuple[bytes, str]:
        """Return the exposition body and its content type."""


# ==================== Prometheus ====================


class PrometheusMetrics(MetricsAdapter):
    """prometheus_client metrics named ``tezos_delegation_*``."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        r = self.registry

        # HTTP API
        self.api_requests_total = Counter(
            "tezos_delegation_api_requests_total",
            "Total number of API requests",
            ["method", "path", "status"],
            registry=r,
        )
        self.api_request_duration = Histogram(
            "tezos_delegation_api_request_duration_seconds",
            "API request duration in seconds",
            ["method", "path"],
            registry=r,
        )
        self.api_response_size = Histogram(
            "tezos_delegation_api_response_size_bytes",
            "API response size in bytes",
            ["method", "path"],
            buckets=[100, 1_000, 10_000, 100_000, 1_000_000],
            registry=r,
        )

        # Storage
        self.repository_operations_total = Counter(
            "tezos_delegation_repository_operations_total",
            "Total number of repository operations",
            ["operation", "repository_type"],
            registry=r,
        )
        self.repository_operation_duration = Histogram(
            "tezos_delegation_repository_operation_duration_seconds",
            "Repository operation duration in seconds",
            ["operation", "repository_type"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=r,
        )
        self.repository_errors = Counter(
            "tezos_delegation_repository_errors_total",
            "Total number of repository errors",
            ["operation", "repository_type", "error_type"],
            registry=r,
        )

        # Use cases
        self.service_operations_total = Counter(
            "tezos_delegation_service_operations_total",
            "Total number of service operations",
            ["operation", "service_type"],
            registry=r,
        )
        self.service_operation_duration = Histogram(
            "tezos_delegation_service_operation_duration_seconds",
            "Service operation duration in seconds",
            ["operation", "service_type"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0],
            registry=r,
        )
        self.service_errors = Counter(
            "tezos_delegation_service_errors_total",
            "Total number of service errors",
            ["operation", "service_type", "error_type"],
            registry=r,
        )

        # TzKT upstream
        self.tzkt_api_requests_total = Counter(
            "tezos_delegation_tzkt_api_requests_total",
            "Total number of TzKT API requests",
            ["endpoint", "implementation", "status"],
            registry=r,
        )
        self.tzkt_api_request_duration = Histogram(
            "tezos_delegation_tzkt_api_request_duration_seconds",
            "TzKT API request duration in seconds",
            ["endpoint", "implementation"],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=r,
        )
        self.tzkt_delegations_sync = Counter(
            "tezos_delegation_tzkt_delegations_sync_total",
            "Total number of delegations synced from TzKT API",
            ["sync_type"],
            registry=r,
        )

        # Business
        self.delegations_total = Counter(
            "tezos_delegation_delegations_total",
            "Total number of delegations processed",
            registry=r,
        )
        self.delegations_amount = Counter(
            "tezos_delegation_amount_total",
            "Total amount delegated in tez",
            registry=r,
        )
        self.delegations_fetched = Counter(
            "tezos_delegation_fetched_total",
            "Total number of delegations fetched from the API",
            registry=r,
        )

    def record_api_request(self, method, path, status, duration, response_size):
        self.api_requests_total.labels(method, path, str(status)).inc()
        self.api_request_duration.labels(method, path).observe(duration)
        self.api_response_size.labels(method, path).observe(response_size)

    def record_repository_operation(self, operation, impl, duration, error):
        self.repository_operations_total.labels(operation, impl).inc()
        self.repository_operation_duration.labels(operation, impl).observe(duration)
        if error is not None:
            self.repository_errors.labels(operation, impl, type(error).__name__).inc()

    def record_service_operation(self, operation, service_type, duration, error):
        self.service_operations_total.labels(operation, service_type).inc()
        self.service_operation_duration.labels(operation, service_type).observe(duration)
        if error is not None:
            self.service_errors.labels(operation, service_type, type(error).__name__).inc()

    def record_tzkt_api_request(self, endpoint, impl, duration, success):
        status = "success" if success else "error"
        self.tzkt_api_requests_total.labels(endpoint, impl, status).inc()
        self.tzkt_api_request_duration.labels(endpoint, impl).observe(duration)

    def record_delegations_sync(self, sync_type, count, amount):
        self.tzkt_delegations_sync.labels(sync_type).inc(count)
        self.delegations_total.inc(count)
        self.delegations_amount.inc(amount)

    def record_delegations_fetched(self, count):
        self.delegations_fetched.inc(count)

    def render(self) -> Tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


# ==================== In-memory ====================


@dataclass
class OperationStats:
    """Call statistics for one labelled operation."""
    count: int = 0
    error_count: int = 0
    total_duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "error_count": self.error_count,
            "total_duration": round(self.total_duration, 6),
        }


@dataclass
class MemoryMetrics(MetricsAdapter):
    """Plain counters kept in process memory."""

    api_requests: Dict[Tuple[str, str, int], OperationStats] = field(
        default_factory=lambda: defaultdict(OperationStats)
    )
    repository_operations: Dict[Tuple[str, str], OperationStats] = field(
        default_factory=lambda: defaultdict(OperationStats)
    )
    service_operations: Dict[Tuple[str, str], OperationStats] = field(
        default_factory=lambda: defaultdict(OperationStats)
    )
    tzkt_requests: Dict[Tuple[str, str], OperationStats] = field(
        default_factory=lambda: defaultdict(OperationStats)
    )
    synced: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    delegations_total: int = 0
    delegations_amount: float = 0.0
    delegations_fetched: int = 0

    def __post_init__(self):
        self._lock = threading.Lock()

    @staticmethod
    def _observe(stats: OperationStats, duration: float, failed: bool) -> None:
        stats.count += 1
        stats.total_duration += duration
        if failed:
            stats.error_count += 1

    def record_api_request(self, method, path, status, duration, response_size):
        with self._lock:
            self._observe(self.api_requests[(method, path, status)], duration, status >= 500)

    def record_repository_operation(self, operation, impl, duration, error):
        with self._lock:
            self._observe(self.repository_operations[(operation, impl)], duration, error is not None)

    def record_service_operation(self, operation, service_type, duration, error):
        with self._lock:
            self._observe(self.service_operations[(operation, service_type)], duration, error is not None)

    def record_tzkt_api_request(self, endpoint, impl, duration, success):
        with self._lock:
            self._observe(self.tzkt_requests[(endpoint, impl)], duration, not success)

    def record_delegations_sync(self, sync_type, count, amount):
        with self._lock:
            self.synced[sync_type] += count
            self.delegations_total += count
            self.delegations_amount += amount

    def record_delegations_fetched(self, count):
        with self._lock:
            self.delegations_fetched += count

    def snapshot(self) -> Dict[str, Any]:
        """Get all counters as plain data."""
        with self._lock:
            return {
                "api_requests": {
                    f"{m} {p} {s}": v.to_dict() for (m, p, s), v in self.api_requests.items()
                },
                "repository_operations": {
                    f"{o}/{i}": v.to_dict() for (o, i), v in self.repository_operations.items()
                },
                "service_operations": {
                    f"{o}/{t}": v.to_dict() for (o, t), v in self.service_operations.items()
                },
                "tzkt_requests": {
                    f"{e}/{i}": v.to_dict() for (e, i), v in self.tzkt_requests.items()
                },
                "delegations_synced": dict(self.synced),
                "delegations_total": self.delegations_total,
                "delegations_amount": self.delegations_amount,
                "delegations_fetched": self.delegations_fetched,
            }

    def render(self) -> Tuple[bytes, str]:
        snap = self.snapshot()
        lines = [
            f"delegations_total {snap['delegations_total']}",
            f"delegations_amount {snap['delegations_amount']}",
            f"delegations_fetched {snap['delegations_fetched']}",
        ]
        for sync_type, count in sorted(snap["delegations_synced"].items()):
            lines.append(f'delegations_synced{{sync_type="{sync_type}"}} {count}')
        return ("\n".join(lines) + "\n").encode(), PLAIN_TEXT


# ==================== No-op ====================


class NoopMetrics(MetricsAdapter):
    """Discards everything."""

    def record_api_request(self, method, path, status, duration, response_size):
        pass

    def record_repository_operation(self, operation, impl, duration, error):
        pass

    def record_service_operation(self, operation, service_type, duration, error):
        pass

    def record_tzkt_api_request(self, endpoint, impl, duration, success):
        pass

    def record_delegations_sync(self, sync_type, count, amount):
        pass

    def record_delegations_fetched(self, count):
        pass

    def render(self) -> Tuple[bytes, str]:
        return b"", PLAIN_TEXT


def create_metrics(impl: Any) -> MetricsAdapter:
    """Build the metrics adapter for ``metrics.impl``."""
    try:
        kind = MetricsImpl(impl)
    except ValueError as e:
        raise ConfigError(f"unsupported metrics implementation: {impl!r}") from e

    if kind == MetricsImpl.PROMETHEUS:
        adapter: MetricsAdapter = PrometheusMetrics()
    elif kind == MetricsImpl.MEMORY:
        adapter = MemoryMetrics()
    else:
        adapter = NoopMetrics()

    logger.info("Metrics initialized", impl=kind.value)
    return adapter
