"""Database configuration and session management.

Provides the declarative base and a factory for the async engine and
session maker. Nothing here is created at import time: the service
container builds one engine per process and passes it down.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

# Base class for models
Base = declarative_base()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine.

    Args:
        database_url: SQLAlchemy URL, e.g. ``postgresql+asyncpg://...``.
        echo: Log emitted SQL.

    Returns:
        Configured AsyncEngine.
    """
    kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables. Used for tests and local development."""
    # Import models so their tables are registered on Base.metadata
    from storebridge.infrastructure import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(engine: AsyncEngine) -> None:
    """Run a trivial query, raising if the database is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
