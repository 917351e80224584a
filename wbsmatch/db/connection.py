"""Database engine and session management for WBSMatch.

The CLI uses the process-wide engine built from ``AppConfig``; tests and
embedding callers can build their own engine and session provider from a
``DBConfig``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wbsmatch.config import DBConfig, get_config
from wbsmatch.db.models import Base

# Global engine instance
_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def _is_sqlite(url: str) -> bool:
    return url.lower().startswith("sqlite")


def build_engine(db_config: DBConfig) -> AsyncEngine:
    """Create an async engine for ``db_config``.

    SQLite gets foreign keys switched on so items and match rows cascade with
    their parent; an in-memory SQLite URL is pinned to a single connection.
    """
    if not _is_sqlite(db_config.url):
        return create_async_engine(
            db_config.url,
            echo=db_config.echo,
            pool_size=db_config.pool_size,
            max_overflow=db_config.pool_max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    engine_kwargs: dict = {"echo": db_config.echo}
    if ":memory:" in db_config.url:
        engine_kwargs["poolclass"] = StaticPool

    engine = create_async_engine(db_config.url, **engine_kwargs)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def make_session_provider(
    factory: sessionmaker,
) -> Callable[[], AbstractAsyncContextManager[AsyncSession]]:
    """Wrap a session factory as a one-transaction-per-call context manager.

    Commits on success, rolls back on error.
    """

    @asynccontextmanager
    async def provider() -> AsyncIterator[AsyncSession]:
        session = factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    return provider


def get_engine() -> AsyncEngine:
    """Get or create the process-wide engine.

    Raises:
        KeyError: If DATABASE_URL is not configured
    """
    global _engine

    if _engine is None:
        _engine = build_engine(get_config().db)
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on the process-wide engine.

    Usage:
        async with get_session() as session:
            result = await session.execute(query)
    """
    async with make_session_provider(get_session_factory())() as session:
        yield session


async def create_schema(engine: AsyncEngine, drop: bool = False) -> None:
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def init_db(drop: bool = False) -> None:
    """Create all tables on the configured database."""
    await create_schema(get_engine(), drop=drop)


async def close_db() -> None:
    """Dispose the engine. Call this on application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
