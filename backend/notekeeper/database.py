"""
Notekeeper Backend - Database Engine Construction
==================================================

What:  Builds the async SQLAlchemy engine and session factory behind the SQL
       storage engine, and declares the ORM base class.
How:   Creates an async engine with connection pooling from Settings. The
       engine is owned by whoever built it (the application lifespan, a test
       fixture, Alembic); nothing here is created at import time.
Who:   Called by notekeeper.storage.create_storage_client and alembic/env.py.

Connection Pooling Strategy:
    pool_size=20:     Persistent connections for normal load
    max_overflow=10:  Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:    Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour

    SQLite (used by tests) manages its own pool, so pool sizing is only
    passed for server databases.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from notekeeper.config import Settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class so that they share one metadata
    object, which Alembic and create_all() read.
    """
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    """
    What:    Creates the async engine described by `settings.database_url`.
    Returns: A new AsyncEngine; the caller disposes it at shutdown.
    """
    options = {
        # Echo SQL queries in DEBUG mode for development visibility
        "echo": settings.log_level == "DEBUG",
    }
    if not make_url(settings.database_url).get_backend_name().startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,          # Persistent connections (default: 20)
            max_overflow=settings.db_max_overflow,     # Extra connections for spikes (default: 10)
            pool_pre_ping=settings.db_pool_pre_ping,  # Validate before use (default: True)
            pool_recycle=3600,                         # Recycle after 1 hour
        )
    return create_async_engine(settings.database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    What:    Session factory bound to `engine`.

    expire_on_commit=False: attributes stay readable after commit, which the
    storage engine relies on when it converts ORM rows back to entities.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """
    What:  Creates any missing tables registered on Base.metadata.
    When:  At startup for the SQL backend, and in tests against SQLite.
    Note:  Production schema changes go through Alembic migrations.
    """
    # Import models so they register with Base.metadata
    from notekeeper.models import entity  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
