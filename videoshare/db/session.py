"""Async SQLAlchemy session management."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ..core.config import Settings


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


def get_engine(settings: Settings) -> AsyncEngine:
    """Return an async engine bound to the configured database."""

    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    return create_async_engine(settings.database_url, future=True)


def get_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory whose objects stay usable after commit."""

    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create tables for all registered models if they do not exist."""

    # Import models to ensure metadata is populated before create_all.
    from .. import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
