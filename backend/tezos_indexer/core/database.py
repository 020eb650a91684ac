"""Database engine and session factory helpers.

Engines are created explicitly by the store factory, never at import time,
so tests can point the store at SQLite before any connection is made.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tezos_indexer.core.config import DatabaseSettings


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def create_engine(settings: DatabaseSettings, echo: bool = False) -> AsyncEngine:
    """Create the async engine for the configured database."""
    url = settings.sqlalchemy_url
    kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}

    if url.startswith("postgresql"):
        kwargs["pool_size"] = settings.psql.pool_size
        kwargs["max_overflow"] = settings.psql.max_overflow
        if not settings.url and settings.psql.sslmode:
            kwargs["connect_args"] = {"ssl": settings.psql.sslmode}

    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
