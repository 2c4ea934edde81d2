"""Persistence of aggregate stats with optimistic concurrency.

A store hands out transactions. Inside one transaction the caller reads the
current stats of each scope, stages the new values and marks the match as
applied for the player; everything is written together when the transaction
commits. If another writer changed any of those rows in the meantime the
commit raises :class:`~leaguecore.exceptions.ConcurrentUpdateConflict` and
nothing is written.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_sessionmaker
from ..db_errors import is_write_conflict
from ..exceptions import ConcurrentUpdateConflict
from ..models import AppliedStatsMatch, ParticipantStats
from ..schemas import AggregateStats
from ..scopes import ScopeKey
from ..time_utils import naive_utc

logger = logging.getLogger(__name__)


class StatsTransaction(Protocol):
    async def is_applied(self, player_id: str, match_id: str) -> bool: ...

    async def load(self, player_id: str, scope: ScopeKey) -> Optional[AggregateStats]: ...

    def stage(self, player_id: str, scope: ScopeKey, stats: AggregateStats) -> None: ...

    def mark_applied(self, player_id: str, match_id: str) -> None: ...


class StatsStore(Protocol):
    def transaction(self): ...

    async def get_stats(self, player_id: str, scope: ScopeKey) -> Optional[AggregateStats]: ...

    async def list_player_stats(self, player_id: str) -> dict[str, AggregateStats]: ...


class _SqlStatsTransaction:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._versions: dict[tuple[str, str], Optional[int]] = {}
        self._staged: dict[tuple[str, str], tuple[ScopeKey, AggregateStats]] = {}
        self._applied: list[tuple[str, str]] = []

    async def is_applied(self, player_id: str, match_id: str) -> bool:
        row = await self._session.get(AppliedStatsMatch, (player_id, match_id))
        return row is not None

    async def load(self, player_id: str, scope: ScopeKey) -> Optional[AggregateStats]:
        row = (
            await self._session.execute(
                select(ParticipantStats.stats, ParticipantStats.version).where(
                    ParticipantStats.player_id == player_id,
                    ParticipantStats.scope_key == scope.key,
                )
            )
        ).first()
        if row is None:
            self._versions[(player_id, scope.key)] = None
            return None
        self._versions[(player_id, scope.key)] = row.version
        return AggregateStats.from_document(row.stats)

    def stage(self, player_id: str, scope: ScopeKey, stats: AggregateStats) -> None:
        key = (player_id, scope.key)
        if key not in self._versions:
            raise ValueError(f"stats for {key} must be loaded before they are staged")
        self._staged[key] = (scope, stats)

    def mark_applied(self, player_id: str, match_id: str) -> None:
        self._applied.append((player_id, match_id))

    async def commit(self) -> None:
        session = self._session
        player_id = None
        try:
            for (player_id, scope_key), (scope, stats) in self._staged.items():
                expected = self._versions[(player_id, scope_key)]
                values = {
                    "stats": stats.to_document(),
                    "last_updated": naive_utc(stats.last_updated),
                }
                if expected is None:
                    session.add(
                        ParticipantStats(
                            player_id=player_id,
                            scope_key=scope_key,
                            scope_kind=scope.kind.value,
                            family_key=scope.family_key,
                            sport_id=scope.sport_id,
                            league_id=scope.league_id,
                            version=1,
                            **values,
                        )
                    )
                    continue
                result = await session.execute(
                    update(ParticipantStats)
                    .where(
                        ParticipantStats.player_id == player_id,
                        ParticipantStats.scope_key == scope_key,
                        ParticipantStats.version == expected,
                    )
                    .values(version=expected + 1, **values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConcurrentUpdateConflict(player_id, scope_key)

            for applied_player, match_id in self._applied:
                player_id = applied_player
                session.add(AppliedStatsMatch(player_id=applied_player, match_id=match_id))

            await session.commit()
        except DBAPIError as exc:
            if not is_write_conflict(exc):
                raise
            raise ConcurrentUpdateConflict(player_id or "?") from exc


class SqlStatsStore:
    """Stats store backed by the ``participant_stats`` table.

    Every transaction runs in its own session; rows carry a ``version`` that
    is checked and bumped on update, and brand new rows rely on the primary
    key to detect a concurrent insert.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None) -> None:
        self._session_factory = session_factory

    def _new_session(self) -> AsyncSession:
        factory = self._session_factory or get_sessionmaker()
        return factory()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_SqlStatsTransaction]:
        async with self._new_session() as session:
            txn = _SqlStatsTransaction(session)
            try:
                yield txn
            except BaseException:
                await session.rollback()
                raise
            await txn.commit()

    async def get_stats(self, player_id: str, scope: ScopeKey) -> Optional[AggregateStats]:
        async with self._new_session() as session:
            document = (
                await session.execute(
                    select(ParticipantStats.stats).where(
                        ParticipantStats.player_id == player_id,
                        ParticipantStats.scope_key == scope.key,
                    )
                )
            ).scalar_one_or_none()
        return None if document is None else AggregateStats.from_document(document)

    async def list_player_stats(self, player_id: str) -> dict[str, AggregateStats]:
        """Return every scope's stats for ``player_id`` keyed by scope key."""
        async with self._new_session() as session:
            rows = (
                await session.execute(
                    select(ParticipantStats.scope_key, ParticipantStats.stats)
                    .where(ParticipantStats.player_id == player_id)
                    .order_by(ParticipantStats.scope_key)
                )
            ).all()
        return {row.scope_key: AggregateStats.from_document(row.stats) for row in rows}
