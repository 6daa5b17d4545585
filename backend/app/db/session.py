"""
Database session configuration.

Builds the async SQLAlchemy engine and session factory for the dormitory
database. The engine is constructed through ``build_engine`` so tests and
scripts can create an isolated instance; request handlers only ever receive
a session through the ``get_db`` dependency.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings


def build_engine(database_url: str = None) -> AsyncEngine:
    """Create an engine with the configured bounded connection pool."""
    url = database_url or settings.database_url

    # SQLite (used by local tooling) does not accept pool sizing arguments
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.db_echo, future=True)

    return create_async_engine(
        url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        future=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine()

AsyncSessionLocal = build_session_factory(engine)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    The connection is checked out up front so pool exhaustion is retried
    here instead of failing halfway through a handler.
    """
    from backend.app.core.reliability import retry_transient

    async with AsyncSessionLocal() as session:
        try:
            await retry_transient(session.connection)
            yield session
        finally:
            await session.close()
