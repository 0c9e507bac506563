"""Async SQLAlchemy engine factory, session factory, and Base declaration.

No engine is created at import time: the application lifespan (or a script,
or a test fixture) builds one and hands the session factory to a
PersistenceGateway.
"""

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
    pass


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for database_url.

    SQLite needs explicit BEGIN handling so that SAVEPOINTs behave; settlement
    relies on nested transactions for the points-crediting steps.
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, echo=echo)

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            # disable the driver's own BEGIN so ours is the only one
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to engine; objects stay usable after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables (idempotent)."""
    from storefront import models  # noqa: F401  registers the models

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db_connectivity(
    session_factory: async_sessionmaker[AsyncSession],
) -> bool:
    """Return True if a simple SELECT 1 succeeds."""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
