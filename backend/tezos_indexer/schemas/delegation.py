"""Delegation schemas: the canonical record and the read API payloads."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from tezos_indexer.schemas.common import PaginationInfo

MUTEZ_PER_TEZ = Decimal("1000000")

WALLET_ADDRESS_LENGTH = 36
WALLET_ADDRESS_PREFIXES = ("tz1", "tz2", "tz3", "KT1")

ACCOUNT_TYPE_USER = "user"
ACCOUNT_TYPE_DELEGATE = "delegate"


def is_valid_wallet_address(address: str) -> bool:
    """Check the length and prefix of a Tezos address."""
    return len(address) == WALLET_ADDRESS_LENGTH and address.startswith(WALLET_ADDRESS_PREFIXES)


def mutez_to_tez(mutez: int) -> Decimal:
    return Decimal(mutez) / MUTEZ_PER_TEZ


class DelegationRecord(BaseModel):
    """A delegation as the indexer persists it.

    Only applied operations become records; ``amount_tez`` is the upstream
    mutez amount divided by one million.
    """
    upstream_id: int
    delegator: str
    delegate: str = ""
    amount_tez: Decimal = Decimal("0")
    block_level: int
    timestamp: datetime
    created_at: Optional[datetime] = None

    @property
    def unix_timestamp(self) -> int:
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return int(ts.timestamp())


class AccountRecord(BaseModel):
    """A wallet derived from a delegation's sender or new delegate."""
    address: str
    alias: str = ""
    type: str = ACCOUNT_TYPE_USER


class DelegationOut(BaseModel):
    """Delegation as returned by ``GET /xtz/delegations``."""
    timestamp: str = Field(description="RFC3339 UTC instant")
    amount: float = Field(description="Amount in tez")
    delegator: str
    delegate: str = ""
    level: int

    @classmethod
    def from_record(cls, record: DelegationRecord) -> "DelegationOut":
        ts = record.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            timestamp=ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            amount=float(record.amount_tez),
            delegator=record.delegator,
            delegate=record.delegate,
            level=record.block_level,
        )


class DelegationsResponse(BaseModel):
    """Paginated delegations."""
    data: List[DelegationOut]
    pagination: PaginationInfo
