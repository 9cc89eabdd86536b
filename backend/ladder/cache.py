from __future__ import annotations

from asyncio import Lock
from collections.abc import Iterable
import time
from typing import Any


class TTLCache:
    """In-memory TTL cache for read models derived from player aggregates.

    Keys are tuples whose first element is the player id they describe, so
    every entry touching a player can be dropped when a ledger mutation
    changes that player's aggregates.
    """

    def __init__(self, ttl_seconds: float = 30.0) -> None:
        self._ttl = ttl_seconds
        self._lock = Lock()
        self._store: dict[tuple, tuple[Any, float]] = {}

    async def get(self, key: tuple) -> Any | None:
        now = time.monotonic()
        async with self._lock:
            entry = self._store.get(key)
            if not entry:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._store[key]
                return None
            return value

    async def set(self, key: tuple, value: Any) -> None:
        if self._ttl <= 0:
            return
        async with self._lock:
            self._store[key] = (value, time.monotonic() + self._ttl)

    async def invalidate_players(self, player_ids: Iterable[str]) -> None:
        ids = {pid for pid in player_ids if pid}
        if not ids:
            return
        async with self._lock:
            for key in [k for k in self._store if k and k[0] in ids]:
                del self._store[key]

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


player_stats_cache = TTLCache(ttl_seconds=30.0)
