"""Helpers shared by the store implementations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import InterfaceError, OperationalError

from ..domain.errors import StoreUnavailable

logger = structlog.get_logger(__name__)


class KeyedLock:
    """One ``asyncio.Lock`` per key, discarded once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@asynccontextmanager
async def translate_store_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise connectivity failures from the database as ``StoreUnavailable``."""

    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.warning("store.unavailable", operation=operation, error=str(exc))
        raise StoreUnavailable(f"{operation} failed: {exc}") from exc
