"""Pytest configuration and fixtures for the delegation indexer tests."""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add backend to Python path
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

# Point any accidental settings load at throwaway backends so collection
# never reaches a real database or TzKT
os.environ.setdefault("TZINDEX_DATABASE__IMPL", "memory")
os.environ.setdefault("TZINDEX_TZKTAPI__IMPL", "mock")
os.environ.setdefault("TZINDEX_METRICS__IMPL", "memory")

BASE_TIME = datetime(2023, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def address(n: int, prefix: str = "tz1") -> str:
    """Deterministic, valid 36-character wallet address."""
    return f"{prefix}{n:033d}"


@pytest.fixture
def make_delegation():
    """Factory for upstream TzKT delegation records."""
    from tezos_indexer.services.data.response_models import TzktDelegation

    def _make(
        id: int,
        level: int,
        amount: int = 1_000_000,
        status: str = "applied",
        timestamp=None,
        sender: int = 1,
        delegate=100,
        sender_alias=None,
        delegate_alias=None,
    ) -> TzktDelegation:
        payload = {
            "type": "delegation",
            "id": id,
            "level": level,
            "timestamp": (timestamp or BASE_TIME + timedelta(minutes=level)).isoformat(),
            "hash": f"oo{id}",
            "sender": {"address": address(sender), "alias": sender_alias},
            "newDelegate": (
                {"address": address(delegate), "alias": delegate_alias}
                if delegate is not None
                else None
            ),
            "amount": amount,
            "status": status,
        }
        return TzktDelegation.model_validate(payload)

    return _make


@pytest.fixture
def make_record():
    """Factory for canonical delegation records."""
    from decimal import Decimal

    from tezos_indexer.schemas.delegation import DelegationRecord

    def _make(
        upstream_id: int,
        level: int = 1,
        timestamp=None,
        amount_tez: str = "1",
        delegator: int = 1,
        delegate: int = 100,
    ) -> DelegationRecord:
        return DelegationRecord(
            upstream_id=upstream_id,
            delegator=address(delegator),
            delegate=address(delegate),
            amount_tez=Decimal(amount_tez),
            block_level=level,
            timestamp=timestamp or BASE_TIME,
        )

    return _make


@pytest.fixture
def memory_metrics():
    from tezos_indexer.core.metrics import MemoryMetrics

    return MemoryMetrics()


@pytest.fixture
def memory_store():
    from tezos_indexer.storage.memory import MemoryDelegationStore

    return MemoryDelegationStore()


@pytest.fixture
def test_settings():
    """Settings wired to in-process backends."""
    from tezos_indexer.core.config import Settings

    return Settings(
        database={"impl": "memory"},
        tzktapi={"impl": "mock", "polling_interval": "1h"},
        metrics={"impl": "memory"},
        pagination={"limit": 50},
        shutdown_timeout="5s",
    )
