"""Durable store setup with async SQLAlchemy (SQLite unless DATABASE_URL says otherwise)."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from order_tracking.config import get_config


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        config = get_config()
        url = make_url(config.sqlalchemy_url)
        # SQLite only; other drivers reject the argument
        connect_args = {"check_same_thread": False} if url.get_backend_name() == "sqlite" else {}
        _engine = create_async_engine(
            url,
            echo=config.log_level == "DEBUG",
            connect_args=connect_args,
        )
    return _engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to *engine*."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: yields an async DB session."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables on *engine* if they don't exist."""
    async with engine.begin() as conn:
        # Import all models so they register with Base.metadata
        import order_tracking.models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Create all tables if they don't exist."""
    await create_tables(get_engine())


async def close_db() -> None:
    """Dispose of the engine connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
