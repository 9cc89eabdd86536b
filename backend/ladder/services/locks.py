"""Single-writer locks scoped to a league.

Every mutation of a league's ledger or aggregates (commit, delete, edit,
replay, confirmation transitions, season changes) runs while holding that
league's lock. Reads never take it.
"""

from __future__ import annotations

from asyncio import Lock
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession


class LeagueLocks:
    """Registry of one ``asyncio.Lock`` per league id."""

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = {}

    def get(self, league_id: str) -> Lock:
        lock = self._locks.get(league_id)
        if lock is None:
            lock = Lock()
            self._locks[league_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, league_id: str) -> AsyncIterator[None]:
        async with self.get(league_id):
            yield

    def locked(self, league_id: str) -> bool:
        lock = self._locks.get(league_id)
        return bool(lock and lock.locked())

    def reset(self) -> None:
        self._locks.clear()


league_locks = LeagueLocks()


@asynccontextmanager
async def league_write(session: AsyncSession, league_id: str) -> AsyncIterator[None]:
    """Hold the league lock for one all-or-nothing unit of work.

    The session is committed when the block exits cleanly and rolled back
    on any exception, which is then re-raised.
    """

    async with league_locks.hold(league_id):
        try:
            yield
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
