"""Apply a completed match to the stats of every player in it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..exceptions import BatchCancelled, ConcurrentUpdateConflict, EngineError
from ..rules import SportRuleSet
from ..schemas import MatchRecord, ParticipantOutcome, RawMatchInput
from ..scopes import ScopeKey, scopes_for_record
from ..utils.sentry import report_stats_failure
from .match_records import build_match_record, outcomes_for_record, save_match_record
from .stats import apply_match
from .stats_store import StatsStore

logger = logging.getLogger(__name__)


class ApplyStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PlayerApplyResult:
    player_id: str
    participant_id: str
    status: ApplyStatus
    attempts: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class BatchResult:
    """Per-player outcome of applying one match.

    Every player of the match has exactly one entry, so a caller can re-drive
    just ``retry_ids`` without touching players that already succeeded.
    """

    match_id: str
    entries: list[PlayerApplyResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[PlayerApplyResult]:
        return [
            e
            for e in self.entries
            if e.status in (ApplyStatus.APPLIED, ApplyStatus.ALREADY_APPLIED)
        ]

    @property
    def failed(self) -> list[PlayerApplyResult]:
        return [
            e
            for e in self.entries
            if e.status in (ApplyStatus.FAILED, ApplyStatus.CANCELLED)
        ]

    @property
    def retry_ids(self) -> list[str]:
        return [e.player_id for e in self.failed]

    @property
    def ok(self) -> bool:
        return not self.failed

    def entry(self, player_id: str) -> PlayerApplyResult:
        for e in self.entries:
            if e.player_id == player_id:
                return e
        raise KeyError(player_id)


async def apply_outcome(
    store: StatsStore,
    outcome: ParticipantOutcome,
    scopes: Sequence[ScopeKey],
    *,
    max_attempts: int,
    backoff_base: float,
) -> PlayerApplyResult:
    """Read-modify-write every scope of one player as a single unit.

    A conflict on commit discards the whole attempt and starts over from
    fresh reads, backing off exponentially between attempts.
    """

    attempt = 0
    while True:
        attempt += 1
        try:
            async with store.transaction() as txn:
                if await txn.is_applied(outcome.player_id, outcome.match_id):
                    return PlayerApplyResult(
                        outcome.player_id,
                        outcome.participant_id,
                        ApplyStatus.ALREADY_APPLIED,
                        attempts=attempt,
                    )
                for scope in scopes:
                    prior = await txn.load(outcome.player_id, scope)
                    txn.stage(outcome.player_id, scope, apply_match(scope, prior, outcome))
                txn.mark_applied(outcome.player_id, outcome.match_id)
        except ConcurrentUpdateConflict as exc:
            if attempt >= max_attempts:
                logger.warning(
                    "Giving up on player %s for match %s after %d attempts",
                    outcome.player_id,
                    outcome.match_id,
                    attempt,
                )
                return PlayerApplyResult(
                    outcome.player_id,
                    outcome.participant_id,
                    ApplyStatus.FAILED,
                    attempts=attempt,
                    error=str(exc),
                    error_code=exc.code,
                )
            delay = backoff_base * (2 ** (attempt - 1))
            logger.info(
                "Stats conflict for player %s (match %s); retrying in %.3fs",
                outcome.player_id,
                outcome.match_id,
                delay,
            )
            await asyncio.sleep(delay)
            continue

        return PlayerApplyResult(
            outcome.player_id,
            outcome.participant_id,
            ApplyStatus.APPLIED,
            attempts=attempt,
        )


async def _run_player(
    store: StatsStore,
    outcome: ParticipantOutcome,
    scopes: Sequence[ScopeKey],
    max_attempts: int,
    backoff_base: float,
) -> PlayerApplyResult:
    try:
        return await apply_outcome(
            store,
            outcome,
            scopes,
            max_attempts=max_attempts,
            backoff_base=backoff_base,
        )
    except Exception as exc:
        logger.error(
            "Failed to apply match %s for player %s",
            outcome.match_id,
            outcome.player_id,
            exc_info=exc,
        )
        report_stats_failure(exc, match_id=outcome.match_id, player_id=outcome.player_id)
        return PlayerApplyResult(
            outcome.player_id,
            outcome.participant_id,
            ApplyStatus.FAILED,
            attempts=1,
            error=str(exc),
            error_code=exc.code if isinstance(exc, EngineError) else type(exc).__name__,
        )


def _collect(
    record: MatchRecord,
    outcomes: Sequence[ParticipantOutcome],
    tasks: dict[str, asyncio.Task],
) -> BatchResult:
    result = BatchResult(match_id=record.id)
    for outcome in outcomes:
        task = tasks[outcome.player_id]
        if task.cancelled():
            result.entries.append(
                PlayerApplyResult(
                    outcome.player_id, outcome.participant_id, ApplyStatus.CANCELLED
                )
            )
        else:
            result.entries.append(task.result())
    return result


async def apply_match_to_all_participants(
    record: MatchRecord,
    store: StatsStore,
    *,
    players: Optional[Sequence[str]] = None,
    max_attempts: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> BatchResult:
    """Update the stats of every player of ``record`` concurrently.

    ``players`` restricts the batch to a subset, typically the ``retry_ids``
    of an earlier result. If the batch itself is cancelled, unfinished
    players are cancelled too and :class:`BatchCancelled` is raised carrying
    the result so far.
    """

    max_attempts = max_attempts or config.STATS_MAX_ATTEMPTS
    backoff_base = config.STATS_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base

    outcomes = outcomes_for_record(record)
    if players is not None:
        wanted = set(players)
        outcomes = [o for o in outcomes if o.player_id in wanted]
    scopes = scopes_for_record(record)

    tasks = {
        o.player_id: asyncio.create_task(
            _run_player(store, o, scopes, max_attempts, backoff_base)
        )
        for o in outcomes
    }
    if not tasks:
        return BatchResult(match_id=record.id)

    try:
        await asyncio.wait(tasks.values())
    except asyncio.CancelledError:
        for task in tasks.values():
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        result = _collect(record, outcomes, tasks)
        logger.warning(
            "Stats batch for match %s cancelled; %d of %d players applied",
            record.id,
            len(result.succeeded),
            len(result.entries),
        )
        raise BatchCancelled(result)

    result = _collect(record, outcomes, tasks)
    if result.ok:
        logger.info("Applied match %s to %d players", record.id, len(result.entries))
    else:
        logger.warning(
            "Match %s applied with failures: %s", record.id, ", ".join(result.retry_ids)
        )
    return result


async def complete_match(
    rules: SportRuleSet,
    raw: RawMatchInput,
    store: StatsStore,
    *,
    session: Optional[AsyncSession] = None,
    allow_unresolved: bool = False,
) -> tuple[MatchRecord, BatchResult]:
    """Build the record of a finished match, store it and update all stats.

    When ``session`` is given the record is inserted and committed before any
    stats are touched.
    """

    record = build_match_record(rules, raw, allow_unresolved=allow_unresolved)
    if session is not None:
        await save_match_record(session, record)
        await session.commit()
    result = await apply_match_to_all_participants(record, store)
    return record, result
