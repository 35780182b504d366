"""
Async engine and session handling.

CRUD classes open their own unit of work with `transaction()`; everything
inside the block commits together or rolls back on any exception.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from hallbookings import settings


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(url: str | None = None, create_tables: bool | None = None) -> None:
    global _engine, _session_factory
    url = url or settings.db_url
    create_tables = settings.CREATE_TABLES if create_tables is None else create_tables

    engine_kwargs: dict = {"echo": settings.DB_ECHO}
    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # one shared connection, so an in-memory database survives across sessions
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True

    _engine = create_async_engine(url, **engine_kwargs)
    _session_factory = async_sessionmaker(
        bind=_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    if create_tables:
        # registers every table on Base.metadata
        from hallbookings import models  # noqa: F401

        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    logger.info("Database engine ready: {}", _engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database is not initialised; call init_db() first")
    async with _session_factory() as session:
        async with session.begin():
            yield session
