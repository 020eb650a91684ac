"""SQLAlchemy store for PostgreSQL (asyncpg), also usable on SQLite (aiosqlite).

Every write runs in its own transaction. Idempotence comes from the unique
constraint on ``upstream_id`` (and ``accounts.address``) with
``ON CONFLICT DO NOTHING``.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import func, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from tezos_indexer.core.config import DatabaseSettings
from tezos_indexer.core.database import create_engine, create_session_factory
from tezos_indexer.core.errors import StoreError
from tezos_indexer.models.delegation import Account, Delegation
from tezos_indexer.schemas.delegation import AccountRecord, DelegationRecord
from tezos_indexer.storage.base import DelegationStore, year_bounds

logger = structlog.get_logger()


class SqlDelegationStore(DelegationStore):
    """Delegation store on an async SQLAlchemy engine."""

    impl = "psql"

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._closed = False

        dialect = engine.dialect.name
        if dialect == "postgresql":
            self._insert = postgresql.insert
        elif dialect == "sqlite":
            self._insert = sqlite.insert
        else:
            raise StoreError("init", f"unsupported database dialect: {dialect}")

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "SqlDelegationStore":
        return cls(create_engine(settings))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def ping(self) -> None:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise StoreError("ping", str(e)) from e

    async def _insert_ignore(self, model: Any, key: str, rows: List[dict], operation: str) -> None:
        stmt = self._insert(model).values(rows).on_conflict_do_nothing(index_elements=[key])
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(operation, f"{len(rows)} rows: {e}") from e

    async def save_delegations(self, batch: Sequence[DelegationRecord]) -> None:
        if not batch:
            return
        rows = [
            {
                "upstream_id": d.upstream_id,
                "delegator": d.delegator,
                "delegate": d.delegate,
                "timestamp": d.unix_timestamp,
                "amount": d.amount_tez,
                "level": d.block_level,
            }
            for d in batch
        ]
        await self._insert_ignore(Delegation, "upstream_id", rows, "save_delegations")

    async def save_accounts(self, accounts: Sequence[AccountRecord]) -> None:
        if not accounts:
            return
        rows = [{"address": a.address, "alias": a.alias, "type": a.type} for a in accounts]
        await self._insert_ignore(Account, "address", rows, "save_accounts")

    async def get_highest_block_level(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.coalesce(func.max(Delegation.level), 0))
                )
                return int(result.scalar_one())
        except (SQLAlchemyError, OSError) as e:
            raise StoreError("get_highest_block_level", str(e)) from e

    @staticmethod
    def _filters(year: Optional[int], delegator: Optional[str]) -> list:
        filters = []
        if year is not None:
            start, end = year_bounds(year)
            filters.append(Delegation.timestamp >= start)
            filters.append(Delegation.timestamp < end)
        if delegator:
            filters.append(Delegation.delegator == delegator)
        return filters

    @staticmethod
    def _to_record(row: Delegation) -> DelegationRecord:
        return DelegationRecord(
            upstream_id=row.upstream_id,
            delegator=row.delegator,
            delegate=row.delegate or "",
            amount_tez=row.amount,
            block_level=row.level,
            timestamp=datetime.fromtimestamp(row.timestamp, timezone.utc),
            created_at=row.created_at,
        )

    async def list_delegations(
        self,
        page: int,
        limit: int,
        year: Optional[int] = None,
        delegator: Optional[str] = None,
    ) -> Tuple[List[DelegationRecord], int]:
        filters = self._filters(year, delegator)
        query = (
            select(Delegation)
            .where(*filters)
            .order_by(Delegation.timestamp.desc(), Delegation.upstream_id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count()).select_from(Delegation).where(*filters)

        try:
            async with self._session_factory() as session:
                total = int((await session.execute(count_query)).scalar_one())
                rows = (await session.execute(query)).scalars().all()
        except (SQLAlchemyError, OSError) as e:
            raise StoreError("list_delegations", f"page={page} limit={limit} year={year}: {e}") from e

        return [self._to_record(r) for r in rows], total

    async def count_delegations(
        self, year: Optional[int] = None, delegator: Optional[str] = None
    ) -> int:
        query = select(func.count()).select_from(Delegation).where(*self._filters(year, delegator))
        try:
            async with self._session_factory() as session:
                return int((await session.execute(query)).scalar_one())
        except (SQLAlchemyError, OSError) as e:
            raise StoreError("count_delegations", f"year={year}: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._engine.dispose()
        logger.info("Database connections closed")
