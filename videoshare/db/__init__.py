"""Database session and metadata helpers."""

from .session import Base, get_engine, get_sessionmaker, init_db

__all__ = [
    "Base",
    "get_engine",
    "get_sessionmaker",
    "init_db",
]
