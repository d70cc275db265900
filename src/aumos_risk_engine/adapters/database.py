"""Primary database engine and session management.

Key exports:
- init_database(...)    — Call at startup to create the engine and session factory
- close_database()      — Call at shutdown to dispose the engine
- session_scope()       — Async context manager for one unit of work

Only used when the SQL storage backend is selected.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from aumos_risk_engine.adapters.orm import Base
from aumos_risk_engine.observability import get_logger

logger = get_logger(__name__)

# Module-level engine and session factory, initialized by init_database()
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_database(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
    create_schema: bool = False,
) -> None:
    """Initialize the database engine and session factory.

    Must be called once at application startup (in the lifespan handler)
    before any repository is used.

    Args:
        database_url: Async SQLAlchemy URL of the primary database.
        pool_size: Connection pool size.
        max_overflow: Max overflow connections above pool_size.
        pool_timeout: Seconds to wait for a connection before raising.
        create_schema: Create missing risk_* tables on startup.
    """
    global _engine, _session_factory  # noqa: PLW0603

    logger.info("Initializing database engine", pool_size=pool_size, max_overflow=max_overflow)

    _engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        echo=False,
        pool_pre_ping=True,
    )
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    if create_schema:
        async with _engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    logger.info("Database engine initialized")


async def close_database() -> None:
    """Dispose the database engine."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        logger.info("Disposing database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Open one session as a unit of work: commit on success, roll back on error.

    Raises:
        RuntimeError: If init_database() has not been called yet.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database has not been initialized. Call init_database() in the application lifespan handler."
        )

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
