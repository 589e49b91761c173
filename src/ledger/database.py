"""Async database engine and session factory for the SQLite ledger."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from src.ledger.models import Base

if TYPE_CHECKING:
    from src.config.settings import LedgerSettings

logger = structlog.get_logger()


def ledger_url(settings: LedgerSettings) -> str:
    return f"sqlite+aiosqlite:///{settings.path}"


async def create_db_engine(settings: LedgerSettings) -> AsyncEngine:
    """Create an async SQLAlchemy engine from LedgerSettings."""
    settings.path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(ledger_url(settings))
    logger.info("db_engine_created", path=str(settings.path))
    return engine


async def ensure_schema(engine: AsyncEngine) -> None:
    """Create all ledger tables. Idempotent: existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db_schema_ensured")


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create an async session factory bound to the engine."""
    return async_sessionmaker(engine, expire_on_commit=False)
