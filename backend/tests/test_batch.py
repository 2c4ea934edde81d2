import asyncio
from contextlib import asynccontextmanager

import pytest

from leaguecore.exceptions import BatchCancelled, ConcurrentUpdateConflict
from leaguecore.memory import InMemoryStatsStore
from leaguecore.schemas import RawMatchInput
from leaguecore.scopes import scopes_for_record
from leaguecore.services import (
    ApplyStatus,
    SqlStatsStore,
    apply_match_to_all_participants,
    build_match_record,
    complete_match,
    get_match_record,
    seed_rule_sets,
)
from leaguecore.services import batch as batch_module


def _match(rules, played_at, match_id, winner="A", loser="B", league_id="office"):
    return build_match_record(
        rules,
        RawMatchInput(
            match_id=match_id,
            sport_id=rules.sport_id,
            league_id=league_id,
            played_at=played_at,
            participants=[
                {"id": winner, "stats": {"Goals": 5}},
                {"id": loser, "stats": {"Goals": 2}},
            ],
        ),
    )


class _ConflictingStore(InMemoryStatsStore):
    """Every commit loses the race."""

    def __init__(self):
        super().__init__()
        self.commits = 0

    async def _commit(self, txn):
        self.commits += 1
        raise ConcurrentUpdateConflict("?")


class _GatedTransaction:
    def __init__(self, txn, blocked, gate):
        self._txn = txn
        self._blocked = blocked
        self._gate = gate

    async def is_applied(self, player_id, match_id):
        if player_id in self._blocked:
            await self._gate.wait()
        return await self._txn.is_applied(player_id, match_id)

    async def load(self, player_id, scope):
        return await self._txn.load(player_id, scope)

    def stage(self, player_id, scope, stats):
        self._txn.stage(player_id, scope, stats)

    def mark_applied(self, player_id, match_id):
        self._txn.mark_applied(player_id, match_id)


class _GatedStore:
    """Wraps a store so the listed players wait on ``gate`` before reading."""

    def __init__(self, store, blocked):
        self.store = store
        self.blocked = set(blocked)
        self.gate = asyncio.Event()

    @asynccontextmanager
    async def transaction(self):
        async with self.store.transaction() as txn:
            yield _GatedTransaction(txn, self.blocked, self.gate)

    async def get_stats(self, player_id, scope):
        return await self.store.get_stats(player_id, scope)

    async def list_player_stats(self, player_id):
        return await self.store.list_player_stats(player_id)


class _BrokenStore(InMemoryStatsStore):
    def __init__(self, broken_player):
        super().__init__()
        self.broken_player = broken_player

    @asynccontextmanager
    async def transaction(self):
        async with super().transaction() as txn:
            original = txn.load

            async def load(player_id, scope):
                if player_id == self.broken_player:
                    raise RuntimeError("stats backend unavailable")
                return await original(player_id, scope)

            txn.load = load
            yield txn


def test_match_updates_every_scope_of_every_player(goals_rules, played_at):
    record = _match(goals_rules, played_at, "m1")
    store = InMemoryStatsStore()

    async def run_test():
        result = await apply_match_to_all_participants(record, store)
        stats = {pid: await store.list_player_stats(pid) for pid in ("A", "B")}
        return result, stats

    result, stats = asyncio.run(run_test())

    assert result.ok
    assert [e.status for e in result.entries] == [ApplyStatus.APPLIED, ApplyStatus.APPLIED]
    assert sorted(stats["A"]) == [
        "foosball",
        "foosball/foosball",
        "foosball/foosball/office",
    ]
    assert all(s.matches_won == 1 for s in stats["A"].values())
    assert all(s.matches_lost == 1 for s in stats["B"].values())


def test_league_less_match_skips_league_scope(goals_rules, played_at):
    record = _match(goals_rules, played_at, "m1", league_id=None)
    store = InMemoryStatsStore()

    async def run_test():
        await apply_match_to_all_participants(record, store)
        return await store.list_player_stats("A")

    assert sorted(asyncio.run(run_test())) == ["foosball", "foosball/foosball"]


def test_reapplying_a_match_is_a_no_op(goals_rules, played_at):
    record = _match(goals_rules, played_at, "m1")
    store = InMemoryStatsStore()
    scope = scopes_for_record(record)[0]

    async def run_test():
        await apply_match_to_all_participants(record, store)
        again = await apply_match_to_all_participants(record, store)
        return again, await store.get_stats("A", scope)

    again, stats = asyncio.run(run_test())

    assert again.ok
    assert {e.status for e in again.entries} == {ApplyStatus.ALREADY_APPLIED}
    assert stats.matches_played == 1


def test_concurrent_matches_for_same_player_both_count(goals_rules, played_at):
    first = _match(goals_rules, played_at, "m1", winner="A", loser="B")
    second = _match(goals_rules, played_at, "m2", winner="C", loser="A")
    store = InMemoryStatsStore()

    async def run_test():
        results = await asyncio.gather(
            apply_match_to_all_participants(first, store, max_attempts=10, backoff_base=0),
            apply_match_to_all_participants(second, store, max_attempts=10, backoff_base=0),
        )
        return results, await store.list_player_stats("A")

    results, stats = asyncio.run(run_test())

    assert all(r.ok for r in results)
    assert len(stats) == 3
    for scope_stats in stats.values():
        assert scope_stats.matches_played == 2
        assert (scope_stats.matches_won, scope_stats.matches_lost) == (1, 1)


def test_conflicts_exhaust_retries(goals_rules, played_at):
    record = _match(goals_rules, played_at, "m1")
    store = _ConflictingStore()

    result = asyncio.run(
        apply_match_to_all_participants(record, store, max_attempts=3, backoff_base=0)
    )

    assert not result.ok
    assert sorted(result.retry_ids) == ["A", "B"]
    entry = result.entry("A")
    assert entry.status is ApplyStatus.FAILED
    assert entry.attempts == 3
    assert entry.error_code == "concurrent_update_conflict"
    assert store.commits == 6


def test_retry_ids_can_be_redriven(goals_rules, played_at):
    record = _match(goals_rules, played_at, "m1")
    store = InMemoryStatsStore()

    async def run_test():
        await apply_match_to_all_participants(record, store, players=["A"])
        partial = await store.list_player_stats("B")
        rest = await apply_match_to_all_participants(record, store, players=["B"])
        return partial, rest, await store.list_player_stats("B")

    partial, rest, stats = asyncio.run(run_test())

    assert partial == {}
    assert [e.player_id for e in rest.entries] == ["B"]
    assert len(stats) == 3


def test_unexpected_error_fails_only_that_player(goals_rules, played_at, monkeypatch):
    record = _match(goals_rules, played_at, "m1")
    store = _BrokenStore("B")
    reported = []
    monkeypatch.setattr(
        batch_module,
        "report_stats_failure",
        lambda exc, *, match_id, player_id: reported.append((match_id, player_id)),
    )

    result = asyncio.run(apply_match_to_all_participants(record, store, backoff_base=0))

    assert result.entry("A").status is ApplyStatus.APPLIED
    failed = result.entry("B")
    assert failed.status is ApplyStatus.FAILED
    assert failed.error_code == "RuntimeError"
    assert result.retry_ids == ["B"]
    assert reported == [("m1", "B")]


def test_cancelled_batch_reports_partial_result(goals_rules, played_at):
    record = _match(goals_rules, played_at, "m1")
    inner = InMemoryStatsStore()
    store = _GatedStore(inner, blocked=["B"])
    scope = scopes_for_record(record)[0]
    captured = {}

    async def run_test():
        async def runner():
            try:
                await apply_match_to_all_participants(record, store)
            except BatchCancelled as exc:
                captured["result"] = exc.result
                raise

        task = asyncio.create_task(runner())
        while await inner.get_stats("A", scope) is None:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return await inner.get_stats("B", scope)

    b_stats = asyncio.run(run_test())

    result = captured["result"]
    assert result.entry("A").status is ApplyStatus.APPLIED
    assert result.entry("B").status is ApplyStatus.CANCELLED
    assert result.retry_ids == ["B"]
    assert b_stats is None


def test_complete_match_with_sql_store(sqlite_sessionmaker, goals_rules, played_at):
    raw = RawMatchInput(
        match_id="m-sql",
        sport_id="foosball",
        league_id="office",
        played_at=played_at,
        participants=[
            {"id": "T1", "member_ids": ["p1", "p2"], "stats": {"Goals": 10}},
            {"id": "T2", "member_ids": ["p3"], "stats": {"Goals": 0}},
        ],
    )

    async def run_test():
        async with sqlite_sessionmaker() as maker:
            store = SqlStatsStore(maker)
            async with maker() as session:
                await seed_rule_sets(session)
                await session.commit()
                record, result = await complete_match(goals_rules, raw, store, session=session)
            again = await apply_match_to_all_participants(record, store)
            async with maker() as session:
                stored = await get_match_record(session, "m-sql")
            return (
                result,
                again,
                stored,
                await store.list_player_stats("p1"),
                await store.list_player_stats("p3"),
            )

    result, again, stored, p1_stats, p3_stats = asyncio.run(run_test())

    assert result.ok
    assert {e.status for e in again.entries} == {ApplyStatus.ALREADY_APPLIED}
    assert stored.finishing_order == ("T1", "T2")
    assert sorted(p1_stats) == ["foosball", "foosball/foosball", "foosball/foosball/office"]
    for stats in p1_stats.values():
        assert stats.matches_played == 1
        assert stats.shutouts == 1
        assert stats.average_score == 10
        assert stats.last_updated == played_at
    assert all(s.matches_lost == 1 for s in p3_stats.values())


def test_sql_store_retries_concurrent_writers(sqlite_sessionmaker, goals_rules, played_at):
    first = _match(goals_rules, played_at, "m1", winner="A", loser="B")
    second = _match(goals_rules, played_at, "m2", winner="A", loser="C")

    async def run_test():
        async with sqlite_sessionmaker() as maker:
            store = SqlStatsStore(maker)
            results = await asyncio.gather(
                apply_match_to_all_participants(first, store, max_attempts=10, backoff_base=0.01),
                apply_match_to_all_participants(second, store, max_attempts=10, backoff_base=0.01),
            )
            return results, await store.list_player_stats("A")

    results, stats = asyncio.run(run_test())

    assert all(r.ok for r in results)
    assert all(s.matches_won == 2 for s in stats.values())
