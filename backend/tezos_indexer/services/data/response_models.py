"""Pydantic models for TzKT API responses.

They don't need to capture every field, just the ones the indexer uses.
Unknown fields are ignored.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from tezos_indexer.schemas.delegation import (
    ACCOUNT_TYPE_DELEGATE,
    ACCOUNT_TYPE_USER,
    AccountRecord,
    DelegationRecord,
    mutez_to_tez,
)

STATUS_APPLIED = "applied"


def parse_tzkt_timestamp(value: Any) -> datetime:
    """Parse an RFC3339 timestamp into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Cannot parse timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class TzktAddress(BaseModel):
    """Address object (``sender``, ``newDelegate``)."""
    model_config = ConfigDict(extra="ignore")

    address: str = ""
    alias: Optional[str] = None


class TzktDelegation(BaseModel):
    """Delegation operation from /v1/operations/delegations."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = "delegation"
    id: int
    level: int
    timestamp: datetime
    block: Optional[str] = None
    hash: Optional[str] = None
    sender: TzktAddress = Field(default_factory=TzktAddress)
    new_delegate: Optional[TzktAddress] = Field(default=None, alias="newDelegate")
    prev_delegate: Optional[TzktAddress] = Field(default=None, alias="prevDelegate")
    amount: int = 0  # mutez
    status: str = ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> datetime:
        return parse_tzkt_timestamp(v)

    @property
    def is_applied(self) -> bool:
        return self.status == STATUS_APPLIED

    @property
    def delegate_address(self) -> str:
        return self.new_delegate.address if self.new_delegate else ""

    def to_record(self) -> DelegationRecord:
        """Convert to the canonical delegation record."""
        return DelegationRecord(
            upstream_id=self.id,
            delegator=self.sender.address,
            delegate=self.delegate_address,
            amount_tez=mutez_to_tez(self.amount),
            block_level=self.level,
            timestamp=self.timestamp,
        )

    def to_accounts(self) -> List[AccountRecord]:
        """Accounts for the sender and, when present, the new delegate."""
        accounts = [
            AccountRecord(
                address=self.sender.address,
                alias=self.sender.alias or "",
                type=ACCOUNT_TYPE_USER,
            )
        ]
        if self.new_delegate and self.new_delegate.address:
            accounts.append(
                AccountRecord(
                    address=self.new_delegate.address,
                    alias=self.new_delegate.alias or "",
                    type=ACCOUNT_TYPE_DELEGATE,
                )
            )
        return accounts


DelegationList = TypeAdapter(List[TzktDelegation])
