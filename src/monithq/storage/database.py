from __future__ import annotations

from pathlib import Path

import structlog
from sqlmodel import SQLModel
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from monithq.config import get_settings

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_kwargs(url: str) -> dict:
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return {}
    if parsed.database in (None, "", ":memory:"):
        # Webhook delivery opens its own sessions; they must all see one in-memory database
        return {"poolclass": StaticPool}
    Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return {}


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        url = get_settings().database_url
        _engine = create_async_engine(url, echo=False, **_engine_kwargs(url))
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_factory


async def init_db() -> None:
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_ready", driver=engine.url.drivername, database=engine.url.database)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_session() -> AsyncSession:
    factory = get_session_factory()
    async with factory() as session:
        yield session
