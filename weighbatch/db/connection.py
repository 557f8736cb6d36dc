"""Database engine and sessions for weighbatch.

One engine per process. The services that own a transaction (reconciler,
item mutations, transmission) commit or roll back on the session they are
given; ``get_session`` only adds a final commit for read-mostly callers
such as the API routes and the CLI.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from weighbatch.config import get_config
from weighbatch.db.models import Base

_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> AsyncEngine:
    """Engine for ``DATABASE_URL``, created on first use.

    asyncpg engines get a pre-pinged, recycled pool sized from ``DB_POOL_*``;
    aiosqlite (tests, local runs) uses SQLAlchemy's default pool.

    Raises:
        KeyError: If DATABASE_URL is not set
    """
    global _engine

    if _engine is None:
        db_config = get_config().db
        engine_kwargs = {"echo": db_config.echo}

        if "sqlite" not in db_config.url.lower():
            engine_kwargs.update({
                "pool_size": db_config.pool_size,
                "max_overflow": db_config.pool_max_overflow,
                "pool_timeout": db_config.pool_timeout,
                "pool_pre_ping": True,
                "pool_recycle": 3600,
            })

        _engine = create_async_engine(db_config.url, **engine_kwargs)

    return _engine


def get_session_factory() -> sessionmaker:
    """Session factory shared by the API, the CLI and the arq worker.

    Objects stay loaded after commit: transmission reads the batch it just
    committed to ``sending``, and the reconciler reads its counters after the
    run commits.
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session scoped to one request or command.

    Usage:
        async with get_session() as session:
            return await promote_batch(session, batch_id, actor=actor)

    Commits whatever is still pending on exit and rolls back if the body
    raises, so a rejected mutation or transition leaves nothing behind.
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session per request."""
    async with get_session() as session:
        yield session


async def init_db(drop: bool = False) -> None:
    """Create the schema from the ORM models (``weighbatch init``).

    Creates the replicated reference tables too, which production leaves to
    the ERP; use the Alembic revision there.
    """
    async with get_engine().begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine (app lifespan end, worker shutdown, CLI exit)."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
