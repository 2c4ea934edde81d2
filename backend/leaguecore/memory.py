from __future__ import annotations

import asyncio
from asyncio import Lock
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .exceptions import ConcurrentUpdateConflict
from .schemas import AggregateStats
from .scopes import ScopeKey


class _MemoryStatsTransaction:
    def __init__(self, store: "InMemoryStatsStore") -> None:
        self._store = store
        self.versions: dict[tuple[str, str], int] = {}
        self.staged: dict[tuple[str, str], AggregateStats] = {}
        self.applied: list[tuple[str, str]] = []

    async def is_applied(self, player_id: str, match_id: str) -> bool:
        await asyncio.sleep(0)
        return (player_id, match_id) in self._store._applied

    async def load(self, player_id: str, scope: ScopeKey) -> Optional[AggregateStats]:
        key = (player_id, scope.key)
        entry = self._store._rows.get(key)
        self.versions[key] = entry[1] if entry else 0
        # Reads suspend like a round-trip to a real store.
        await asyncio.sleep(0)
        return entry[0] if entry else None

    def stage(self, player_id: str, scope: ScopeKey, stats: AggregateStats) -> None:
        key = (player_id, scope.key)
        if key not in self.versions:
            raise ValueError(f"stats for {key} must be loaded before they are staged")
        self.staged[key] = stats

    def mark_applied(self, player_id: str, match_id: str) -> None:
        self.applied.append((player_id, match_id))


class InMemoryStatsStore:
    """In-process stats store with the same optimistic versioning as the SQL one.

    The lock is only held while a commit checks versions and swaps values in,
    never across a read.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._rows: dict[tuple[str, str], tuple[AggregateStats, int]] = {}
        self._applied: set[tuple[str, str]] = set()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_MemoryStatsTransaction]:
        txn = _MemoryStatsTransaction(self)
        yield txn
        await self._commit(txn)

    async def _commit(self, txn: _MemoryStatsTransaction) -> None:
        async with self._lock:
            for key in txn.staged:
                entry = self._rows.get(key)
                current = entry[1] if entry else 0
                if current != txn.versions[key]:
                    raise ConcurrentUpdateConflict(key[0], key[1])
            for player_id, match_id in txn.applied:
                if (player_id, match_id) in self._applied:
                    raise ConcurrentUpdateConflict(player_id)

            for key, stats in txn.staged.items():
                self._rows[key] = (stats, txn.versions[key] + 1)
            self._applied.update(txn.applied)

    async def get_stats(self, player_id: str, scope: ScopeKey) -> Optional[AggregateStats]:
        async with self._lock:
            entry = self._rows.get((player_id, scope.key))
        return entry[0] if entry else None

    async def list_player_stats(self, player_id: str) -> dict[str, AggregateStats]:
        async with self._lock:
            return {
                scope_key: stats
                for (pid, scope_key), (stats, _) in sorted(self._rows.items())
                if pid == player_id
            }

    async def clear(self) -> None:
        async with self._lock:
            self._rows.clear()
            self._applied.clear()
