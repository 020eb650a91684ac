"""Delegation and account models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from tezos_indexer.core.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns
_PK = BigInteger().with_variant(Integer, "sqlite")


class Delegation(Base):
    """An applied delegation operation ingested from TzKT.

    ``upstream_id`` is the TzKT operation id and the idempotence key:
    re-inserting the same id is ignored. ``timestamp`` holds unix seconds.
    """

    __tablename__ = "delegations"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    upstream_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    delegator: Mapped[str] = mapped_column(String(36), nullable=False)
    delegate: Mapped[str] = mapped_column(String(36), nullable=False, default="")

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(24, 6), nullable=False, default=Decimal("0")
    )  # tez
    level: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_delegations_level", "level"),
        Index("ix_delegations_delegator", "delegator"),
    )

    def __repr__(self) -> str:
        return f"<Delegation {self.upstream_id} {self.delegator} -> {self.delegate or '-'} @ {self.level}>"


Index("ix_delegations_timestamp_desc", Delegation.timestamp.desc())


class Account(Base):
    """A wallet seen as sender or new delegate of a delegation."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    alias: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # 'user' or 'delegate'

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Account {self.address} ({self.type})>"
