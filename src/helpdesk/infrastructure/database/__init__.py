"""
Database Infrastructure
=======================

Engine and session factory for the SQL repositories.

Uses SQLAlchemy 2.0 async. PostgreSQL (asyncpg) in deployments, SQLite
(aiosqlite) for local runs and tests.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """
    Declarative base shared by the SLA policy and ticket tables.
    """
    pass


def init_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Create the database engine.

    Should be called during application startup; the caller owns the
    returned engine and disposes it on shutdown.

    Returns:
        AsyncEngine owned by the caller
    """
    if database_url.startswith("sqlite"):
        # One shared connection, so ":memory:" databases survive across sessions
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # asyncpg expects "ssl" where libpq URLs carry "sslmode"
    database_url = database_url.replace("sslmode=", "ssl=")

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,  # Drop connections the server closed
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Rows are read after the session closes
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """
    Create missing tables and indexes.

    Meant for local runs and tests; deployed databases are migrated.
    """
    # Register the models on Base.metadata
    from helpdesk.sla.infrastructure import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_database(engine: AsyncEngine) -> None:
    """Dispose of pooled connections."""
    await engine.dispose()
