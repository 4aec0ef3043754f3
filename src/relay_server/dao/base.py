"""Shared unit-of-work plumbing for all DAOs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from contextvars import ContextVar
from weakref import WeakKeyDictionary

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from relay_server.errors import InternalError

logger = logging.getLogger(__name__)

# One active connection per unit of work, shared by every DAO so that a
# command update and its audit event commit or roll back together.
_active_conn: ContextVar[AsyncSession | None] = ContextVar("_dao_conn", default=None)

# Pools whose sessions all share one connection run one unit of work at a time.
_serial_locks: WeakKeyDictionary[async_sessionmaker[AsyncSession], asyncio.Lock] = (
    WeakKeyDictionary()
)


def _serial_lock(pool: async_sessionmaker[AsyncSession]) -> asyncio.Lock | None:
    """Return the pool's unit-of-work lock, or None if sessions get their own connection."""
    bind = pool.kw.get("bind")
    if bind is None or not isinstance(bind.pool, StaticPool):
        return None
    lock = _serial_locks.get(pool)
    if lock is None:
        lock = _serial_locks[pool] = asyncio.Lock()
    return lock


class BaseDAO:
    """Data access built once at startup with the connection pool.

    Use transaction() to wrap a group of operations in one unit of work.
    A transaction opened on any DAO is visible to all the others.
    """

    def __init__(self, pool: async_sessionmaker[AsyncSession]) -> None:
        self._pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Open a unit of work, or join the one already active.

        Store failures surface as InternalError. Anything not committed
        when the block exits is rolled back. On a single-connection pool
        (in-memory SQLite) outer units of work are serialized.
        """
        if _active_conn.get() is not None:
            yield
            return
        async with AsyncExitStack() as stack:
            lock = _serial_lock(self._pool)
            if lock is not None:
                await stack.enter_async_context(lock)
            connection = await stack.enter_async_context(self._pool())
            context_token = _active_conn.set(connection)
            try:
                yield
            except SQLAlchemyError as error:
                logger.exception("Store failure, rolling back unit of work")
                raise InternalError("Database operation failed") from error
            finally:
                _active_conn.reset(context_token)

    def _conn(self) -> AsyncSession:
        """Return the current unit-of-work connection."""
        connection = _active_conn.get()
        assert connection is not None, "DAO used outside transaction()"
        return connection

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._conn().commit()
